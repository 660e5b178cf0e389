"""Case and link storage.

Usage:
    from app.stores import LinkStore, SqlLinkStore

    store: LinkStore = SqlLinkStore(db)
    link = await store.find_by_token(case_id=case_id, token_hash=token_hash)
"""

from app.stores.base import CaseRecord, CaseStore, LinkRecord, LinkStore
from app.stores.memory import InMemoryCaseStore, InMemoryLinkStore
from app.stores.sql import SqlCaseStore, SqlLinkStore

__all__ = [
    "CaseRecord",
    "CaseStore",
    "InMemoryCaseStore",
    "InMemoryLinkStore",
    "LinkRecord",
    "LinkStore",
    "SqlCaseStore",
    "SqlLinkStore",
]
