"""
MigrationManager - operational surface for the storefront migration.

Deployment and operations tooling uses this class to inspect and steer the
migration. Apart from ``set_phase`` and ``clear_error_log`` its operations
have no side effects on either store.

Usage:
    >>> manager = build_migration_manager(settings, document_store, table)
    >>> report = await manager.verify_consistency(50)
    >>> if report.is_consistent:
    ...     manager.set_phase(MigrationPhase.DUAL_WRITE_WIDECOL_PRIMARY)
    >>> stats = await manager.get_statistics()
    >>> print(stats["error_count"])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from storefront.domain.entities import EntityKind
from storefront.migration.consistency import ConsistencyReport, ConsistencyVerifier
from storefront.migration.error_log import ErrorLog, ErrorLogEntry
from storefront.migration.models import MigrationPhase, PhaseChange, StoreRole
from storefront.migration.router import PhaseController
from storefront.observability import ATTR_MIGRATION_PHASE, Tracer, create_tracer
from storefront.repositories import document_repositories, wide_column_repositories
from storefront.schema.mapper import SchemaMapper
from storefront.stores.documents import DocumentStore
from storefront.stores.wide_column import WideColumnTable

if TYPE_CHECKING:
    from storefront.config import MigrationSettings

logger = logging.getLogger(__name__)


class MigrationManager:
    """
    Facade over the phase controller, verifier and error log.

    Args:
        controller: Phase controller routing repository requests
        verifier: Consistency verifier for the two stores
        error_log: Shared replication and verification failure log
        tracer: Optional custom Tracer instance
        enable_tracing: If True and OpenTelemetry is available, emit traces
    """

    def __init__(
        self,
        controller: PhaseController,
        verifier: ConsistencyVerifier,
        error_log: ErrorLog,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._controller = controller
        self._verifier = verifier
        self._error_log = error_log

    @property
    def controller(self) -> PhaseController:
        return self._controller

    def get_repository(self, kind: EntityKind | str) -> Any:
        """Repository for ``kind`` under the current phase."""
        return self._controller.get_repository(kind)

    # =========================================================================
    # Phase
    # =========================================================================

    def get_current_phase(self) -> MigrationPhase:
        return self._controller.get_phase()

    def set_phase(self, phase: MigrationPhase | str) -> PhaseChange:
        """
        Switch the migration phase.

        Raises:
            InvalidPhaseError: If ``phase`` names no phase
        """
        return self._controller.set_phase(phase)

    def get_phase_history(self) -> list[PhaseChange]:
        return self._controller.history()

    # =========================================================================
    # Verification and error log
    # =========================================================================

    async def verify_consistency(
        self,
        sample_size: int | None = None,
        kind: EntityKind | str = EntityKind.PRODUCT,
        *,
        randomize: bool = False,
    ) -> ConsistencyReport:
        """Compare a sample of records across both stores."""
        return await self._verifier.verify(sample_size, kind, randomize=randomize)

    def get_error_log(self) -> list[ErrorLogEntry]:
        return self._error_log.list()

    def clear_error_log(self) -> int:
        """Empty the error log. Returns the number of entries removed."""
        return self._error_log.clear()

    async def get_statistics(self) -> dict[str, Any]:
        """
        Snapshot of the migration state.

        Returns:
            Dictionary with the current phase, per-kind record counts for each
            store, the error log size and in-flight replication count
        """
        phase = self._controller.get_phase()
        with self._tracer.span(
            "storefront.migration.get_statistics", {ATTR_MIGRATION_PHASE: phase.value}
        ):
            counts: dict[str, dict[str, int]] = {}
            for role in StoreRole:
                counts[role.value] = {
                    kind.value: await self._controller.adapter(role, kind).count()
                    for kind in EntityKind
                }

        return {
            "phase": phase.value,
            "document": counts[StoreRole.DOCUMENT.value],
            "wide_column": counts[StoreRole.WIDE_COLUMN.value],
            "error_count": len(self._error_log),
            "pending_replications": self._controller.pending_replications,
            "phase_changes": len(self._controller.history()),
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def wait_for_replication(self) -> None:
        """Wait for every in-flight secondary write to finish."""
        await self._controller.drain()

    async def close(self) -> None:
        """Finish outstanding replication and stop background tasks."""
        await self._controller.close()
        logger.debug("Migration manager closed")


def build_migration_manager(
    settings: MigrationSettings | None,
    document_store: DocumentStore,
    table: WideColumnTable,
    *,
    tracer: Tracer | None = None,
) -> MigrationManager:
    """
    Wire adapters, controller, verifier and error log from settings.

    Args:
        settings: Migration settings (defaults when None)
        document_store: Document store backend
        table: Wide-column table backend
        tracer: Optional tracer shared by every component

    Returns:
        A ready MigrationManager starting in ``settings.initial_phase``
    """
    if settings is None:
        from storefront.config import MigrationSettings

        settings = MigrationSettings()

    if table.table_name != settings.table_name:
        logger.warning(
            "Wide-column table is %s but settings name %s",
            table.table_name,
            settings.table_name,
        )
    tracer = tracer or create_tracer(__name__, settings.enable_tracing)
    mapper = SchemaMapper(settings.asset_base_url)
    documents = document_repositories(
        document_store, default_page_size=settings.default_page_size, tracer=tracer
    )
    wide_columns = wide_column_repositories(
        table, mapper, default_page_size=settings.default_page_size, tracer=tracer
    )
    error_log = ErrorLog()

    controller = PhaseController(
        documents,
        wide_columns,
        error_log,
        initial_phase=settings.initial_phase,
        tracer=tracer,
    )
    verifier = ConsistencyVerifier(
        documents,
        wide_columns,
        error_log,
        default_sample_size=settings.verify_sample_size,
        tracer=tracer,
    )
    logger.info(
        "Migration manager ready in phase %s (table %s)",
        settings.initial_phase.value,
        table.table_name,
    )
    return MigrationManager(controller, verifier, error_log, tracer=tracer)


__all__ = ["MigrationManager", "build_migration_manager"]
