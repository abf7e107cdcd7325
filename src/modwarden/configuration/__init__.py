"""
Configuration management for modwarden.

- **app_configuration.py**: File-locked YAML configuration loader for global
  settings (log channel, mute role, rate limits, invite timings, voice watch,
  database path). Falls back to defaults on missing or malformed config files.
"""
