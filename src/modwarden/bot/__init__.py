"""
Discord integration for modwarden.

- **services.py**: Container wiring the engine, attribution, scheduler and
  notifier together; handed to every cog.
- **cogs/**: Slash commands and gateway event listeners.
"""
