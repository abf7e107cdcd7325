"""
Timed task execution for modwarden.

- **deferred_scheduler.py**: Min-heap scheduler for one-shot delayed callbacks
  keyed by string (auto-reversal of timeouts and mutes, voice dwell timers).
  Rescheduling a key replaces the pending job; jobs can be cancelled.

- **guild_sync_scheduler.py**: Periodic per-guild task runner used to refresh
  invite snapshots.
"""
