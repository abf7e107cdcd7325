"""
Display helpers for modwarden.

- **audit_embeds.py**: Builders for audit-log, confirmation and direct-message
  embeds. Pure formatting; no Discord calls.
"""
