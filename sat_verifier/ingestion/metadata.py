"""
Normalization of SAT listing metadata into canonical records.

The SAT listing gives a summary per document; the XML body, when it could be
downloaded, is the authoritative source and overwrites the summary fields.
"""

from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from ..models import (
    AuthorityMetadata,
    AuthorityStatus,
    CFDIFields,
    Direction,
    DocumentType,
    FiscalDocumentRecord,
    Party,
)
from ..utils.formatting import ZERO, parse_amount

logger = structlog.get_logger()


DEFAULT_DETAIL_ERROR = "No se pudo descargar el XML de este UUID"

# Summary fields copied only when the listing carries a value
_STRING_FIELDS = ("serie", "folio", "moneda", "forma_pago", "metodo_pago", "uso_cfdi")


def resolve_authority_status(raw: Optional[str]) -> Tuple[AuthorityStatus, str]:
    """
    Map the SAT status text to the tri-state status and its description.

    "Vigente", "1" and "No cancelado" are valid; anything mentioning "cancel"
    and "0" are cancelled. Other text is kept verbatim as UNKNOWN.
    """
    text = (raw or "").strip()
    if not text:
        return AuthorityStatus.UNKNOWN, "Desconocido"

    lowered = text.lower()
    if "vigente" in lowered or lowered == "1" or "no cancelado" in lowered:
        return AuthorityStatus.VALID, "Vigente"
    if "cancel" in lowered or lowered == "0":
        return AuthorityStatus.CANCELLED, "Cancelado"
    return AuthorityStatus.UNKNOWN, text


def merge_detail(record: FiscalDocumentRecord, detail: CFDIFields) -> FiscalDocumentRecord:
    """Overwrite every XML-derived field; the XML outranks the listing."""
    for name, value in detail.as_dict().items():
        setattr(record, name, value)
    record.detalle_error = None
    return record


def select_detail_uuids(metadata: Iterable[AuthorityMetadata], limit: int) -> List[str]:
    """First `limit` distinct uuids in the order the SAT returned them."""
    selected: List[str] = []
    if limit <= 0:
        return selected
    for meta in metadata:
        if meta.uuid and meta.uuid not in selected:
            selected.append(meta.uuid)
            if len(selected) >= limit:
                break
    return selected


class MetadataNormalizer:
    """Builds FiscalDocumentRecords from SAT listing metadata."""

    def __init__(self, direction: Direction):
        self.direction = direction

    def normalize(
        self,
        meta: AuthorityMetadata,
        detail: Optional[CFDIFields] = None,
        detail_error: Optional[str] = None,
    ) -> FiscalDocumentRecord:
        """
        Normalize one listing entry.

        Args:
            meta: SAT listing metadata
            detail: Extracted XML fields, when the body was downloaded
            detail_error: Set when detail was requested but not obtained

        Returns:
            FiscalDocumentRecord
        """
        status, description = resolve_authority_status(meta.estado_comprobante)

        total = parse_amount(meta.total)
        if total < ZERO:
            logger.warning("Negative total in SAT listing", uuid=meta.uuid, total=meta.total)
            total = ZERO

        record = FiscalDocumentRecord(
            uuid=meta.uuid,
            direction=self.direction,
            document_type=DocumentType.from_text(meta.efecto_comprobante),
            efecto_comprobante=meta.efecto_comprobante,
            authority_status=status,
            status_description=description,
            emisor=Party(rfc=meta.rfc_emisor, nombre=meta.nombre_emisor),
            receptor=Party(rfc=meta.rfc_receptor, nombre=meta.nombre_receptor),
            fecha_emision=meta.fecha_emision,
            fecha_certificacion=meta.fecha_certificacion,
            total=total,
        )

        self._fill_from_metadata(record, meta)

        if detail is not None:
            merge_detail(record, detail)
        elif detail_error is not None:
            record.detalle_error = detail_error or DEFAULT_DETAIL_ERROR

        return record

    def normalize_all(
        self,
        metadata: Iterable[AuthorityMetadata],
        details: Optional[Dict[str, CFDIFields]] = None,
        detail_errors: Optional[Dict[str, str]] = None,
    ) -> List[FiscalDocumentRecord]:
        """
        Normalize a whole listing keeping SAT order.
        A repeated uuid replaces the earlier record in its original position.
        """
        details = details or {}
        detail_errors = detail_errors or {}
        by_uuid: Dict[str, FiscalDocumentRecord] = {}

        for meta in metadata:
            if meta.uuid in by_uuid:
                logger.warning("Duplicate uuid in SAT listing", uuid=meta.uuid)
            by_uuid[meta.uuid] = self.normalize(
                meta,
                detail=details.get(meta.uuid),
                detail_error=detail_errors.get(meta.uuid),
            )

        return list(by_uuid.values())

    def _fill_from_metadata(self, record: FiscalDocumentRecord, meta: AuthorityMetadata) -> None:
        """Copy non-empty strings and strictly positive amounts from the listing."""
        for name in _STRING_FIELDS:
            value = getattr(meta, name)
            if value:
                setattr(record, name, value)

        subtotal = parse_amount(meta.subtotal)
        if subtotal > ZERO:
            record.subtotal = subtotal

        descuento = parse_amount(meta.descuento)
        if descuento > ZERO:
            record.descuento = descuento

        total = parse_amount(meta.total)
        if total > ZERO:
            record.total_num = total
