"""
Unit tests for MigrationSettings.
"""

import pytest

from storefront.config import DEFAULT_ASSET_BASE_URL, DEFAULT_TABLE_NAME, MigrationSettings
from storefront.exceptions import InvalidPhaseError
from storefront.migration.models import MigrationPhase


class TestDefaults:
    def test_default_values(self) -> None:
        settings = MigrationSettings()

        assert settings.initial_phase is MigrationPhase.DOCUMENT_ONLY
        assert settings.asset_base_url == DEFAULT_ASSET_BASE_URL
        assert settings.table_name == DEFAULT_TABLE_NAME
        assert settings.default_page_size == 12
        assert settings.verify_sample_size == 10
        assert settings.enable_tracing is True

    def test_phase_given_as_string(self) -> None:
        settings = MigrationSettings(initial_phase="widecol_only")

        assert settings.initial_phase is MigrationPhase.WIDECOL_ONLY

    def test_trailing_slash_is_stripped(self) -> None:
        settings = MigrationSettings(asset_base_url="https://cdn.example.com/")

        assert settings.asset_base_url == "https://cdn.example.com"


class TestValidation:
    def test_empty_table_name(self) -> None:
        with pytest.raises(ValueError, match="table_name"):
            MigrationSettings(table_name="")

    def test_negative_page_size(self) -> None:
        with pytest.raises(ValueError, match="default_page_size"):
            MigrationSettings(default_page_size=-1)

    def test_zero_page_size_is_allowed(self) -> None:
        assert MigrationSettings(default_page_size=0).default_page_size == 0

    def test_sample_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="verify_sample_size"):
            MigrationSettings(verify_sample_size=0)

    def test_unknown_phase(self) -> None:
        with pytest.raises(InvalidPhaseError):
            MigrationSettings(initial_phase="mongo_only")


class TestFromEnv:
    def test_empty_environment_gives_defaults(self) -> None:
        assert MigrationSettings.from_env({}) == MigrationSettings()

    def test_reads_every_variable(self) -> None:
        settings = MigrationSettings.from_env(
            {
                "MIGRATION_PHASE": "DUAL_WRITE_DOCUMENT_PRIMARY",
                "ASSET_BASE_URL": "https://assets.example.com/",
                "WIDE_COLUMN_TABLE_NAME": "shop",
                "DEFAULT_PAGE_SIZE": "20",
                "VERIFY_SAMPLE_SIZE": "50",
                "STOREFRONT_ENABLE_TRACING": "off",
            }
        )

        assert settings == MigrationSettings(
            initial_phase=MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY,
            asset_base_url="https://assets.example.com",
            table_name="shop",
            default_page_size=20,
            verify_sample_size=50,
            enable_tracing=False,
        )

    @pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
    def test_tracing_truthy_values(self, value: str) -> None:
        settings = MigrationSettings.from_env({"STOREFRONT_ENABLE_TRACING": value})

        assert settings.enable_tracing is True

    def test_malformed_number(self) -> None:
        with pytest.raises(ValueError):
            MigrationSettings.from_env({"DEFAULT_PAGE_SIZE": "twelve"})

    def test_invalid_phase(self) -> None:
        with pytest.raises(InvalidPhaseError):
            MigrationSettings.from_env({"MIGRATION_PHASE": "unknown"})

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MIGRATION_PHASE", "widecol_only")

        assert MigrationSettings.from_env().initial_phase is MigrationPhase.WIDECOL_ONLY
