"""
Entity store for Wagerbook.

Repository-style abstraction layer providing:
- Testability with injected stores
- One transaction per lifecycle operation
- Transient failure classification in one place
"""

from wagerbook.store.base import EntityStore, StoreTransaction
from wagerbook.store.sqlalchemy_store import SqlAlchemyEntityStore, SqlAlchemyTransaction

__all__ = [
    "EntityStore",
    "StoreTransaction",
    "SqlAlchemyEntityStore",
    "SqlAlchemyTransaction",
]
