"""
Discrepancy Report Aggregator.

Single pass over normalized records: collects items and discrepancies and
produces the final ReconciliationReport.
"""

from datetime import date, datetime
from typing import Iterable, List, Optional

import structlog

from ..models import (
    DiscrepancyEntry,
    Direction,
    FiscalDocumentRecord,
    ReconciliationReport,
    ReportSummary,
)

logger = structlog.get_logger()


def certification_sort_key(record: FiscalDocumentRecord) -> datetime:
    """Unparseable certification dates sort as the oldest possible value."""
    return record.certified_at or datetime.min


class ReportAggregator:
    """Accumulates one request's records and discrepancies."""

    def __init__(
        self,
        direction: Direction,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        detailed: Optional[bool] = None,
    ):
        self.direction = direction
        self.start_date = start_date
        self.end_date = end_date
        self.detailed = detailed
        self._records: List[FiscalDocumentRecord] = []
        self._discrepancies: List[DiscrepancyEntry] = []
        self._detail_downloads = 0

    def add(
        self,
        record: FiscalDocumentRecord,
        discrepancies: Iterable[DiscrepancyEntry] = (),
    ) -> None:
        """Add one record and the discrepancies the reconciler found for it."""
        self._records.append(record)
        self._discrepancies.extend(discrepancies)

    def record_detail_downloads(self, count: int) -> None:
        """Account for XML bodies successfully downloaded."""
        self._detail_downloads += max(0, count)

    def build(self, sort_by_certification: bool = False) -> ReconciliationReport:
        """
        Produce the report.

        Args:
            sort_by_certification: Order items newest certification first
                (stable for equal dates)

        Returns:
            ReconciliationReport
        """
        records = list(self._records)
        if sort_by_certification:
            records.sort(key=certification_sort_key, reverse=True)

        report = ReconciliationReport(
            records=records,
            summary=ReportSummary(
                total=len(records),
                direction=self.direction,
                start_date=self.start_date,
                end_date=self.end_date,
            ),
            detailed=self.detailed,
            detail_downloads=self._detail_downloads,
        )
        for entry in self._discrepancies:
            report.add_discrepancy(entry)

        logger.info(
            "Report built",
            direction=self.direction.value,
            items=len(records),
            discrepancies=report.discrepancy_count,
            detail_downloads=self._detail_downloads,
        )
        return report
