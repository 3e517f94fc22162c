"""Reconciliation result models."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .document import FiscalDocumentRecord
from .enums import Direction, ErrorKind
from ..utils.formatting import (
    format_currency,
    format_date_range,
    format_timestamp,
)


@dataclass(frozen=True)
class DiscrepancyEntry:
    """A status disagreement between the SAT and the bookkeeping."""
    tipo: str  # Document type label ("Factura", "Compra", ...)
    persona: str  # Counterparty name
    total: Decimal
    problema: str
    uuid: str
    fecha_certificacion: str
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tipo": self.tipo,
            "persona": self.persona,
            "total": format_currency(self.total),
            "problema": self.problema,
            "uuid": self.uuid,
            "fecha": format_timestamp(self.fecha_certificacion),
            "url": self.url,
        }


@dataclass
class ReportSummary:
    """Summary block of a report."""
    total: int = 0
    direction: Direction = Direction.ISSUED
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def date_range_label(self) -> str:
        if self.start_date is None or self.end_date is None:
            return ""
        return format_date_range(self.start_date, self.end_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "tipo": self.direction.value,
            "rango_fechas": self.date_range_label,
        }


@dataclass
class ReconciliationReport:
    """
    Result of one verification request.
    Built once per request by the aggregator and never mutated after return.
    """
    records: List[FiscalDocumentRecord] = field(default_factory=list)
    discrepancies: List[DiscrepancyEntry] = field(default_factory=list)
    discrepancy_count: int = 0
    summary: ReportSummary = field(default_factory=ReportSummary)

    # Detail workflow only; None for plain reconciliation
    detailed: Optional[bool] = None
    detail_downloads: int = 0

    def add_discrepancy(self, entry: DiscrepancyEntry) -> None:
        self.discrepancies.append(entry)
        self.discrepancy_count += 1

    @staticmethod
    def item_view(record: FiscalDocumentRecord) -> Dict[str, Any]:
        """Row shown for each SAT document, with the full record attached."""
        return {
            "uuid": record.uuid,
            "status": record.authority_status.code,
            "emisor": record.emisor.nombre,
            "rfc_emisor": record.emisor.rfc,
            "receptor": record.receptor.nombre,
            "rfc": record.receptor.rfc,
            "completo": record.to_dict(),
            "monto": format_currency(record.total, symbol="$"),
            "tipo": record.efecto_comprobante,
            "fecha": format_timestamp(record.fecha_certificacion),
        }

    @property
    def items(self) -> List[Dict[str, Any]]:
        return [self.item_view(record) for record in self.records]

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "items": self.items,
            "diferencias": [d.to_dict() for d in self.discrepancies],
            "totales_diferencias": self.discrepancy_count,
            "resumen": self.summary.to_dict(),
        }
        if self.detailed is not None:
            data["detallado"] = self.detailed
            data["descargas_xml"] = self.detail_downloads
        return data


@dataclass
class VerificationRequest:
    """Parameters of one verification request."""
    start_date: date
    end_date: date
    direction: Direction
    detailed: bool = False
    max_details: int = 50
    concurrency: int = 25

    @property
    def has_valid_range(self) -> bool:
        return self.start_date <= self.end_date


@dataclass
class VerificationOk:
    """Successful verification. `empty` marks a query with zero documents."""
    report: ReconciliationReport
    message: str = "Consulta exitosa"
    errors: List[str] = field(default_factory=list)
    empty: bool = False

    @property
    def success(self) -> bool:
        return True

    def to_response(self) -> Dict[str, Any]:
        data = {
            "exito": True,
            "mensaje": self.message,
            "errores": list(self.errors),
        }
        data.update(self.report.to_dict())
        if self.empty:
            data["tipo"] = ErrorKind.EMPTY_RESULT.value
        return data


@dataclass
class VerificationError:
    """Failed verification with its classification."""
    kind: ErrorKind
    message: str
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return False

    def to_response(self) -> Dict[str, Any]:
        return {
            "exito": False,
            "mensaje": self.message,
            "errores": list(self.errors),
            "tipo": self.kind.value,
        }


VerificationResult = Union[VerificationOk, VerificationError]
