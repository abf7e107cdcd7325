"""
Invite tracking for modwarden.

- **invite_cache.py**: Per-guild invite snapshots refreshed on invite events,
  after joins, on startup and periodically.
- **invite_attribution.py**: Infers the invite behind a member join by diffing
  snapshots, and hands the result back when the member leaves.
"""
