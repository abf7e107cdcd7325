"""
Punishment lifecycle for modwarden.

- **sanction_registry.py**: In-memory sets of users under an active timeout or
  mute, with atomic check-and-remove.
- **rate_limiter.py**: Per-moderator sliding-window counter for punitive actions.
- **platform.py**: Platform-agnostic interface the engine drives, plus the
  py-cord implementation and its typed errors.
- **notifier.py**: Audit channel and direct-message delivery.
- **punishment_engine.py**: Issue, reverse, auto-expiry and rejoin re-application.
"""
