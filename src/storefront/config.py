"""
Configuration for the storefront migration layer.

This module provides:
- MigrationSettings: Settings shared by the controller, adapters and verifier
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from storefront.migration.models import MigrationPhase

DEFAULT_TABLE_NAME = "storefront"
DEFAULT_ASSET_BASE_URL = "http://localhost:5000"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class MigrationSettings:
    """
    Settings for the migration layer.

    Attributes:
        initial_phase: Phase the controller starts in
        asset_base_url: Base URL prefixed to stored relative image paths
        table_name: Name of the wide-column table
        default_page_size: Page size used when a caller does not pass one
        verify_sample_size: Default sample size for consistency checks
        enable_tracing: Whether components create OpenTelemetry spans

    Example:
        >>> settings = MigrationSettings(
        ...     initial_phase=MigrationPhase.DUAL_WRITE_DOCUMENT_PRIMARY,
        ...     asset_base_url="https://cdn.example.com",
        ... )
        >>>
        >>> # Or from the process environment
        >>> settings = MigrationSettings.from_env()
    """

    initial_phase: MigrationPhase = MigrationPhase.DOCUMENT_ONLY
    asset_base_url: str = DEFAULT_ASSET_BASE_URL
    table_name: str = DEFAULT_TABLE_NAME
    default_page_size: int = 12
    verify_sample_size: int = 10
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not isinstance(self.initial_phase, MigrationPhase):
            object.__setattr__(self, "initial_phase", MigrationPhase.parse(self.initial_phase))

        if not self.table_name:
            raise ValueError("table_name must not be empty")

        if self.default_page_size < 0:
            raise ValueError(
                f"default_page_size must be >= 0, got {self.default_page_size}. "
                "Use 0 to return all records."
            )

        if self.verify_sample_size < 1:
            raise ValueError(
                f"verify_sample_size must be positive, got {self.verify_sample_size}"
            )

        # Normalise so that joining with a relative path yields one slash
        object.__setattr__(self, "asset_base_url", self.asset_base_url.rstrip("/"))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> MigrationSettings:
        """
        Build settings from environment variables.

        Recognised variables: MIGRATION_PHASE, ASSET_BASE_URL,
        WIDE_COLUMN_TABLE_NAME, DEFAULT_PAGE_SIZE, VERIFY_SAMPLE_SIZE and
        STOREFRONT_ENABLE_TRACING. Unset variables fall back to defaults.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Validated MigrationSettings

        Raises:
            InvalidPhaseError: If MIGRATION_PHASE names no phase
            ValueError: If a numeric variable is malformed or out of range
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        phase = env.get("MIGRATION_PHASE")
        tracing = env.get("STOREFRONT_ENABLE_TRACING")

        return cls(
            initial_phase=MigrationPhase.parse(phase) if phase else defaults.initial_phase,
            asset_base_url=env.get("ASSET_BASE_URL", defaults.asset_base_url),
            table_name=env.get("WIDE_COLUMN_TABLE_NAME", defaults.table_name),
            default_page_size=int(env.get("DEFAULT_PAGE_SIZE", defaults.default_page_size)),
            verify_sample_size=int(env.get("VERIFY_SAMPLE_SIZE", defaults.verify_sample_size)),
            enable_tracing=(
                tracing.strip().lower() in _TRUE_VALUES
                if tracing is not None
                else defaults.enable_tracing
            ),
        )


__all__ = [
    "DEFAULT_ASSET_BASE_URL",
    "DEFAULT_TABLE_NAME",
    "MigrationSettings",
]
