"""
ConsistencyVerifier - sampled comparison of the document and wide-column stores.

Intended to run before each phase advance. The verifier reads a sample of
records from the document store, looks each one up by id in the wide-column
store and compares a fixed set of business fields per entity kind. It never
writes to either store.

Outcomes per sampled record:
    - matched: present in both stores with equal business fields
    - not_found: missing from the wide-column store
    - field_mismatch: present but differing; one discrepancy per field
    - error: the wide-column lookup raised; also recorded in the ErrorLog
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from storefront.domain.entities import Entity, EntityKind
from storefront.exceptions import ValidationError
from storefront.migration.error_log import ErrorLog
from storefront.observability import (
    ATTR_ENTITY_KIND,
    ATTR_MISMATCH_COUNT,
    ATTR_SAMPLE_SIZE,
    Tracer,
    create_tracer,
)
from storefront.repositories.query import Pagination

logger = logging.getLogger(__name__)

COMPARED_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.PRODUCT: ("name", "price", "stock", "category"),
    EntityKind.ORDER: ("order_status", "total_price", "user_id", "order_code"),
    EntityKind.USER: ("name", "email", "role"),
    EntityKind.CATEGORY: ("name",),
}
"""Business fields compared per entity kind."""

DiscrepancyReason = Literal["field_mismatch", "not_found", "error"]


@dataclass(frozen=True)
class Discrepancy:
    """
    One difference found between the stores.

    Attributes:
        record_id: Identifier of the sampled record
        reason: field_mismatch, not_found or error
        field: Differing field (field_mismatch only)
        document_value: Value in the document store
        wide_column_value: Value in the wide-column store
        details: Error message (error only)
    """

    record_id: str
    reason: DiscrepancyReason
    field: str | None = None
    document_value: Any = None
    wide_column_value: Any = None
    details: str | None = None

    def __str__(self) -> str:
        parts = [f"[{self.reason}]", f"id={self.record_id}"]
        if self.field is not None:
            parts.append(
                f"{self.field}: document={self.document_value!r}, "
                f"wide_column={self.wide_column_value!r}"
            )
        if self.details:
            parts.append(f"({self.details})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "reason": self.reason,
            "field": self.field,
            "document_value": self.document_value,
            "wide_column_value": self.wide_column_value,
            "details": self.details,
        }


@dataclass(frozen=True)
class ConsistencyReport:
    """
    Result of one verification run.

    Attributes:
        kind: Entity kind verified
        total: Number of records sampled
        matched: Records equal in both stores
        mismatched: Records missing, differing or failing lookup
        discrepancies: Individual differences found
        verified_at: When the run finished
        duration_seconds: Time taken
    """

    kind: EntityKind
    total: int
    matched: int
    mismatched: int
    discrepancies: list[Discrepancy] = field(default_factory=list)
    verified_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_seconds: float = 0.0

    @property
    def is_consistent(self) -> bool:
        return self.mismatched == 0

    @property
    def consistency_percentage(self) -> float:
        """Percentage of sampled records that matched."""
        if self.total == 0:
            return 100.0
        return (self.matched / self.total) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "total": self.total,
            "matched": self.matched,
            "mismatched": self.mismatched,
            "is_consistent": self.is_consistent,
            "consistency_percentage": self.consistency_percentage,
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "verified_at": self.verified_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }


class ConsistencyVerifier:
    """
    Compares sampled document-store records with their wide-column copies.

    Args:
        document_repositories: Document-store adapter per entity kind
        wide_column_repositories: Wide-column adapter per entity kind
        error_log: Destination for lookup failures
        default_sample_size: Sample size when ``verify`` is given none
        tracer: Optional custom Tracer instance
        enable_tracing: If True and OpenTelemetry is available, emit traces

    Example:
        >>> verifier = ConsistencyVerifier(document_repos, wide_column_repos, error_log)
        >>> report = await verifier.verify(50)
        >>> if not report.is_consistent:
        ...     for discrepancy in report.discrepancies:
        ...         logger.error("Store divergence: %s", discrepancy)
    """

    def __init__(
        self,
        document_repositories: Mapping[EntityKind, Any],
        wide_column_repositories: Mapping[EntityKind, Any],
        error_log: ErrorLog,
        *,
        default_sample_size: int = 10,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._document = dict(document_repositories)
        self._wide_column = dict(wide_column_repositories)
        self._error_log = error_log
        self._default_sample_size = default_sample_size

    async def verify(
        self,
        sample_size: int | None = None,
        kind: EntityKind | str = EntityKind.PRODUCT,
        *,
        randomize: bool = False,
    ) -> ConsistencyReport:
        """
        Verify up to ``sample_size`` records of one kind.

        Args:
            sample_size: Maximum records to sample
            kind: Entity kind to verify
            randomize: Sample uniformly from the whole collection instead of
                taking the first records in store order

        Returns:
            ConsistencyReport for the sample

        Raises:
            ValidationError: If sample_size is negative
        """
        kind = EntityKind.parse(kind)
        size = self._default_sample_size if sample_size is None else sample_size
        if size < 0:
            raise ValidationError(f"sample_size must be >= 0, got {size}", field="sample_size")

        with self._tracer.span(
            "storefront.consistency.verify",
            {ATTR_ENTITY_KIND: kind.value, ATTR_SAMPLE_SIZE: size},
        ) as span:
            start_time = time.monotonic()
            sample = await self._sample(kind, size, randomize)

            matched = 0
            mismatched = 0
            discrepancies: list[Discrepancy] = []
            for record in sample:
                found = await self._compare(kind, record)
                if found:
                    mismatched += 1
                    discrepancies.extend(found)
                else:
                    matched += 1

            report = ConsistencyReport(
                kind=kind,
                total=len(sample),
                matched=matched,
                mismatched=mismatched,
                discrepancies=discrepancies,
                duration_seconds=time.monotonic() - start_time,
            )
            if span:
                span.set_attribute(ATTR_MISMATCH_COUNT, mismatched)

        if report.is_consistent:
            logger.info(
                "Consistency check passed for %s: %d records sampled", kind.value, report.total
            )
        else:
            logger.warning(
                "Consistency check found %d of %d %s records mismatched",
                mismatched,
                report.total,
                kind.value,
            )
        return report

    async def _sample(self, kind: EntityKind, size: int, randomize: bool) -> list[Entity]:
        if size == 0:
            return []
        source = self._document[kind]
        if not randomize:
            return (await source.find_all(None, Pagination(page=1, limit=size))).items
        records = (await source.find_all(None, Pagination.all())).items
        return random.sample(records, min(size, len(records)))  # nosec B311 - sampling, not crypto

    async def _compare(self, kind: EntityKind, record: Entity) -> list[Discrepancy]:
        try:
            copy = await self._wide_column[kind].find_by_id(record.id)
        except Exception as e:
            self._error_log.log(
                f"Verification lookup of {kind.value} {record.id} failed",
                "verify",
                {"kind": kind.value, "id": record.id},
                e,
            )
            return [Discrepancy(record_id=record.id, reason="error", details=str(e))]

        if copy is None:
            return [Discrepancy(record_id=record.id, reason="not_found")]

        differences = []
        for name in COMPARED_FIELDS[kind]:
            expected = getattr(record, name, None)
            actual = getattr(copy, name, None)
            if expected != actual:
                differences.append(
                    Discrepancy(
                        record_id=record.id,
                        reason="field_mismatch",
                        field=name,
                        document_value=expected,
                        wide_column_value=actual,
                    )
                )
        return differences


__all__ = [
    "COMPARED_FIELDS",
    "ConsistencyReport",
    "ConsistencyVerifier",
    "Discrepancy",
    "DiscrepancyReason",
]
