"""
Physical store backends.

Document stores:
- InMemoryDocumentStore
- SQLDocumentStore (SQLAlchemy async engine)

Wide-column tables:
- InMemoryWideColumnTable
- SQLiteWideColumnTable (aiosqlite)
"""

from storefront.stores.documents import Document, DocumentStore, InMemoryDocumentStore
from storefront.stores.sql_documents import SQLDocumentStore
from storefront.stores.sqlite_wide_column import SQLiteWideColumnTable
from storefront.stores.wide_column import (
    InMemoryWideColumnTable,
    ItemPage,
    WideColumnTable,
    query_all,
    scan_all,
)

__all__ = [
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "InMemoryWideColumnTable",
    "ItemPage",
    "SQLDocumentStore",
    "SQLiteWideColumnTable",
    "WideColumnTable",
    "query_all",
    "scan_all",
]
