"""
Persistence layer for modwarden.

- **db_connection.py**: Single long-lived aiosqlite connection with serialised
  write transactions.
- **db_schema.py**: Table creation for the punishment history.
- **punishment_store.py**: Append-only per-user punishment history, loaded at
  startup and written wholesale after every append.
"""
