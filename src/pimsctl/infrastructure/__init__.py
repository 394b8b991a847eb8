"""Infrastructure layer — SQLite persistence, rule stores, login client.

This layer depends on stdlib and third-party libs (SQLAlchemy, httpx).
It may import domain models but never services, commands, or output.
The service layer drives infrastructure on behalf of the reconciler.
"""
