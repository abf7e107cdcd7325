"""
modwarden - Discord moderation and server-activity logging bot

modwarden handles manual moderation commands and keeps a durable audit trail
of everything it does, together with membership and invite activity.

Core Components:

- **Punishment Lifecycle Engine**: Issues and reverses timeouts, mutes, bans and
  kicks, enforces a per-moderator rate limit, persists an append-only
  punishment history and auto-reverses temporary sanctions
- **Invite Attribution**: Keeps per-guild invite snapshots and infers which
  invite a new member used by diffing usage counters after a settle delay
- **Audit Emitter**: Posts audit embeds to the log channel and notifies members
  by direct message

Usage:
    from modwarden.main import main
    main()
"""
