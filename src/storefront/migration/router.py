"""
PhaseController - routes repository requests by migration phase.

Routing by phase:
    - DOCUMENT_ONLY: document-store adapter
    - DUAL_WRITE_DOCUMENT_PRIMARY: coordinator(primary=document, secondary=wide-column)
    - DUAL_WRITE_WIDECOL_PRIMARY: coordinator(primary=wide-column, secondary=document)
    - WIDECOL_ONLY: wide-column adapter

The current phase is a single reference swapped by ``set_phase``. Requests
resolve their repository when they call ``get_repository``, so a request
racing a phase change is served by whichever phase it saw. A request that
must not straddle a change can pin a phase explicitly.

Phase changes are not restricted to the intended progression. Jumping over
a dual-write step is allowed (operators may need it for rollback) but is
logged as a warning and flagged in the phase history.

Usage:
    >>> controller = PhaseController(document_repos, wide_column_repos, error_log)
    >>> controller.set_phase("dual_write_document_primary")
    >>> products = controller.get_repository(EntityKind.PRODUCT)
    >>> await products.create({"name": "Notebook", "price": 120000, "category": "Books"})
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from storefront.domain.entities import EntityKind
from storefront.migration.dual_write import DualWriteCoordinator
from storefront.migration.error_log import ErrorLog
from storefront.migration.models import MigrationPhase, PhaseChange, StoreRole
from storefront.migration.replication import Replicator
from storefront.observability import Tracer, create_tracer

logger = logging.getLogger(__name__)


class PhaseController:
    """
    Owns the current migration phase and hands out repositories for it.

    Args:
        document_repositories: Document-store adapter per entity kind
        wide_column_repositories: Wide-column adapter per entity kind
        error_log: Destination for replication failures
        initial_phase: Phase to start in
        tracer: Optional custom Tracer instance, shared with coordinators
        enable_tracing: If True and OpenTelemetry is available, emit traces
    """

    def __init__(
        self,
        document_repositories: Mapping[EntityKind, Any],
        wide_column_repositories: Mapping[EntityKind, Any],
        error_log: ErrorLog,
        *,
        initial_phase: MigrationPhase | str = MigrationPhase.DOCUMENT_ONLY,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._repositories: dict[StoreRole, dict[EntityKind, Any]] = {
            StoreRole.DOCUMENT: dict(document_repositories),
            StoreRole.WIDE_COLUMN: dict(wide_column_repositories),
        }
        self._error_log = error_log
        self._replicators: dict[StoreRole, Replicator] = {
            role: Replicator(error_log, secondary_name=role.value, tracer=self._tracer)
            for role in StoreRole
        }
        self._coordinators: dict[tuple[EntityKind, MigrationPhase], DualWriteCoordinator] = {}
        self._phase = MigrationPhase.parse(initial_phase)
        self._history: list[PhaseChange] = []

    # =========================================================================
    # Phase management
    # =========================================================================

    @property
    def phase(self) -> MigrationPhase:
        return self._phase

    def get_phase(self) -> MigrationPhase:
        """Current migration phase."""
        return self._phase

    def set_phase(self, phase: MigrationPhase | str) -> PhaseChange:
        """
        Switch to another phase.

        Args:
            phase: A MigrationPhase, or its value or name

        Returns:
            The recorded change

        Raises:
            InvalidPhaseError: If ``phase`` names no phase; the current phase is kept
        """
        target = MigrationPhase.parse(phase)
        current = self._phase
        skipped = not current.is_adjacent_to(target)
        if skipped:
            logger.warning(
                "Migration phase jumps from %s to %s, skipping intermediate phases",
                current.value,
                target.value,
            )

        change = PhaseChange(from_phase=current, to_phase=target, skipped_steps=skipped)
        self._phase = target
        self._history.append(change)
        logger.info("Migration phase changed from %s to %s", current.value, target.value)
        return change

    def history(self) -> list[PhaseChange]:
        """Every phase change made through this controller, oldest first."""
        return list(self._history)

    # =========================================================================
    # Routing
    # =========================================================================

    def adapter(self, role: StoreRole, kind: EntityKind | str) -> Any:
        """The raw adapter for ``kind`` on one store, bypassing routing."""
        return self._repositories[role][EntityKind.parse(kind)]

    def get_repository(
        self,
        kind: EntityKind | str,
        phase: MigrationPhase | str | None = None,
    ) -> Any:
        """
        Repository for ``kind`` under the current or a pinned phase.

        Args:
            kind: Entity kind
            phase: Phase to route by instead of the current one

        Returns:
            A store adapter, or a DualWriteCoordinator in dual-write phases
        """
        kind = EntityKind.parse(kind)
        phase = self._phase if phase is None else MigrationPhase.parse(phase)

        secondary = phase.secondary
        if secondary is None:
            return self.adapter(phase.primary, kind)

        key = (kind, phase)
        coordinator = self._coordinators.get(key)
        if coordinator is None:
            coordinator = DualWriteCoordinator(
                self.adapter(phase.primary, kind),
                self.adapter(secondary, kind),
                self._replicators[secondary],
                kind=kind,
                primary_role=phase.primary,
                tracer=self._tracer,
            )
            self._coordinators[key] = coordinator
            logger.debug(
                "Created %s coordinator (primary=%s, secondary=%s)",
                kind.value,
                phase.primary.value,
                secondary.value,
            )
        return coordinator

    def products(self, phase: MigrationPhase | str | None = None) -> Any:
        return self.get_repository(EntityKind.PRODUCT, phase)

    def orders(self, phase: MigrationPhase | str | None = None) -> Any:
        return self.get_repository(EntityKind.ORDER, phase)

    def users(self, phase: MigrationPhase | str | None = None) -> Any:
        return self.get_repository(EntityKind.USER, phase)

    def categories(self, phase: MigrationPhase | str | None = None) -> Any:
        return self.get_repository(EntityKind.CATEGORY, phase)

    # =========================================================================
    # Replication lifecycle
    # =========================================================================

    @property
    def pending_replications(self) -> int:
        return sum(r.pending for r in self._replicators.values())

    async def drain(self) -> None:
        """Wait for every in-flight secondary write and its failure logging."""
        for replicator in self._replicators.values():
            await replicator.drain()

    async def close(self) -> None:
        for replicator in self._replicators.values():
            await replicator.close()


__all__ = ["PhaseController"]
