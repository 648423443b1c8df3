"""
Online migration from the document store to the wide-column store.

Phases (advisory order):
    DOCUMENT_ONLY -> DUAL_WRITE_DOCUMENT_PRIMARY
        -> DUAL_WRITE_WIDECOL_PRIMARY -> WIDECOL_ONLY

Components:
- PhaseController: current phase and per-phase repository routing
- DualWriteCoordinator: primary-then-background-secondary writes
- Replicator: tracked background tasks feeding failures to the ErrorLog
- ConsistencyVerifier: sampled cross-store comparison
- ErrorLog: in-memory replication and verification failures
- MigrationManager: operational surface over all of the above
"""

from storefront.migration.consistency import (
    COMPARED_FIELDS,
    ConsistencyReport,
    ConsistencyVerifier,
    Discrepancy,
)
from storefront.migration.dual_write import (
    READ_OPERATIONS,
    WRITE_OPERATIONS,
    DualWriteCoordinator,
)
from storefront.migration.error_log import ErrorLog, ErrorLogEntry
from storefront.migration.manager import MigrationManager, build_migration_manager
from storefront.migration.models import MigrationPhase, PhaseChange, StoreRole
from storefront.migration.replication import Replicator
from storefront.migration.router import PhaseController

__all__ = [
    # Models
    "MigrationPhase",
    "PhaseChange",
    "StoreRole",
    # Routing and dual-write
    "PhaseController",
    "DualWriteCoordinator",
    "READ_OPERATIONS",
    "WRITE_OPERATIONS",
    "Replicator",
    # Verification and errors
    "COMPARED_FIELDS",
    "ConsistencyReport",
    "ConsistencyVerifier",
    "Discrepancy",
    "ErrorLog",
    "ErrorLogEntry",
    # Operations
    "MigrationManager",
    "build_migration_manager",
]
