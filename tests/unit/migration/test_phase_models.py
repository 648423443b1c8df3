"""
Unit tests for migration phase models.
"""

import pytest

from storefront.exceptions import InvalidPhaseError
from storefront.migration.models import MigrationPhase, PhaseChange, StoreRole


class TestMigrationPhaseParse:
    @pytest.mark.parametrize(
        "value",
        [
            MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY,
            "dual_write_document_primary",
            "DUAL_WRITE_DOCUMENT_PRIMARY",
            "  Dual_Write_Document_Primary ",
        ],
    )
    def test_accepts_member_value_and_name(self, value) -> None:
        assert MigrationPhase.parse(value) is MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY

    @pytest.mark.parametrize("value", ["", "mongo_only", None, 2])
    def test_rejects_unknown_values(self, value) -> None:
        with pytest.raises(InvalidPhaseError) as exc_info:
            MigrationPhase.parse(value)

        assert exc_info.value.value == value


class TestRouting:
    @pytest.mark.parametrize(
        ("phase", "primary", "secondary"),
        [
            (MigrationPhase.DOCUMENT_ONLY, StoreRole.DOCUMENT, None),
            (MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY, StoreRole.DOCUMENT, StoreRole.WIDE_COLUMN),
            (MigrationPhase.DUAL_WRITE_WIDECOL_PRIMARY, StoreRole.WIDE_COLUMN, StoreRole.DOCUMENT),
            (MigrationPhase.WIDECOL_ONLY, StoreRole.WIDE_COLUMN, None),
        ],
    )
    def test_primary_and_secondary(self, phase, primary, secondary) -> None:
        assert phase.primary is primary
        assert phase.secondary is secondary
        assert phase.is_dual_write is (secondary is not None)


class TestProgression:
    def test_ordinals_follow_progression(self) -> None:
        assert [p.ordinal for p in MigrationPhase] == [0, 1, 2, 3]

    def test_adjacency(self) -> None:
        assert MigrationPhase.DOCUMENT_ONLY.is_adjacent_to(MigrationPhase.DOCUMENT_ONLY)
        assert MigrationPhase.DOCUMENT_ONLY.is_adjacent_to(
            MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY
        )
        assert MigrationPhase.WIDECOL_ONLY.is_adjacent_to(
            MigrationPhase.DUAL_WRITE_WIDECOL_PRIMARY
        )
        assert not MigrationPhase.DOCUMENT_ONLY.is_adjacent_to(MigrationPhase.WIDECOL_ONLY)


class TestPhaseChange:
    def test_to_dict(self) -> None:
        change = PhaseChange(
            from_phase=MigrationPhase.DOCUMENT_ONLY,
            to_phase=MigrationPhase.WIDECOL_ONLY,
            skipped_steps=True,
        )

        data = change.to_dict()

        assert data["from_phase"] == "document_only"
        assert data["to_phase"] == "widecol_only"
        assert data["skipped_steps"] is True
        assert "changed_at" in data
