"""Adapters — persistence implementations of the core interfaces.

Contains:
- repositories.py  — SQLAlchemy repositories on the request-scoped session
- memory.py        — In-memory repositories guarded by asyncio locks
"""

__all__: list[str] = []
