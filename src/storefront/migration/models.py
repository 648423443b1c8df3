"""
Data models for the online store migration.

Models in this module:

Enums:
    - MigrationPhase: Which store(s) back the repositories
    - StoreRole: Names of the two physical stores

Records:
    - PhaseChange: Audit record of an operator phase change
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from storefront.exceptions import InvalidPhaseError


class StoreRole(Enum):
    """The two physical stores taking part in the migration."""

    DOCUMENT = "document"
    WIDE_COLUMN = "wide_column"


class MigrationPhase(Enum):
    """
    Migration phases.

    Intended progression:
        DOCUMENT_ONLY -> DUAL_WRITE_DOCUMENT_PRIMARY
            -> DUAL_WRITE_WIDECOL_PRIMARY -> WIDECOL_ONLY

    The progression is advisory. Operators may move to any phase at any
    time, including backwards for rollback.

    Attributes:
        DOCUMENT_ONLY: Reads and writes use the document store only.
        DUAL_WRITE_DOCUMENT_PRIMARY: Document store serves reads and takes
            writes synchronously; the wide-column store is replicated.
        DUAL_WRITE_WIDECOL_PRIMARY: Wide-column store serves reads and takes
            writes synchronously; the document store is replicated.
        WIDECOL_ONLY: Reads and writes use the wide-column store only.
    """

    DOCUMENT_ONLY = "document_only"
    """Reads and writes use the document store only."""

    DUAL_WRITE_DOCUMENT_PRIMARY = "dual_write_document_primary"
    """Document store is primary, wide-column store is replicated."""

    DUAL_WRITE_WIDECOL_PRIMARY = "dual_write_widecol_primary"
    """Wide-column store is primary, document store is replicated."""

    WIDECOL_ONLY = "widecol_only"
    """Reads and writes use the wide-column store only."""

    @classmethod
    def parse(cls, value: Any) -> MigrationPhase:
        """
        Resolve a phase from an enum member, its value or its name.

        Args:
            value: A MigrationPhase, or a string matching a value or name
                (case-insensitive)

        Returns:
            The matching MigrationPhase

        Raises:
            InvalidPhaseError: If the value names no phase
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            candidate = value.strip()
            for phase in cls:
                if candidate.lower() == phase.value or candidate.upper() == phase.name:
                    return phase
        raise InvalidPhaseError(value)

    @property
    def is_dual_write(self) -> bool:
        """True when writes go to both stores."""
        return self in (
            MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY,
            MigrationPhase.DUAL_WRITE_WIDECOL_PRIMARY,
        )

    @property
    def primary(self) -> StoreRole:
        """The store serving reads and synchronous writes in this phase."""
        if self in (MigrationPhase.DOCUMENT_ONLY, MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY):
            return StoreRole.DOCUMENT
        return StoreRole.WIDE_COLUMN

    @property
    def secondary(self) -> StoreRole | None:
        """The replicated store, or None outside dual-write phases."""
        if self == MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY:
            return StoreRole.WIDE_COLUMN
        if self == MigrationPhase.DUAL_WRITE_WIDECOL_PRIMARY:
            return StoreRole.DOCUMENT
        return None

    @property
    def ordinal(self) -> int:
        """Position of this phase in the intended progression."""
        return _PHASE_ORDER.index(self)

    def is_adjacent_to(self, other: MigrationPhase) -> bool:
        """
        Check whether moving to ``other`` stays within one step of the progression.

        Args:
            other: The target phase

        Returns:
            True if the phases are equal or neighbours in the progression
        """
        return abs(self.ordinal - other.ordinal) <= 1


_PHASE_ORDER: tuple[MigrationPhase, ...] = (
    MigrationPhase.DOCUMENT_ONLY,
    MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY,
    MigrationPhase.DUAL_WRITE_WIDECOL_PRIMARY,
    MigrationPhase.WIDECOL_ONLY,
)


@dataclass(frozen=True)
class PhaseChange:
    """
    Record of a phase change made through the controller.

    Attributes:
        from_phase: Phase before the change
        to_phase: Phase after the change
        changed_at: When the change was applied
        skipped_steps: True if the change jumped over an intermediate phase
    """

    from_phase: MigrationPhase
    to_phase: MigrationPhase
    changed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    skipped_steps: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "from_phase": self.from_phase.value,
            "to_phase": self.to_phase.value,
            "changed_at": self.changed_at.isoformat(),
            "skipped_steps": self.skipped_steps,
        }


__all__ = [
    "MigrationPhase",
    "PhaseChange",
    "StoreRole",
]
