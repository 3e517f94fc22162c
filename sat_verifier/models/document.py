"""Fiscal document models: authority metadata, extracted XML fields, records."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from .enums import AuthorityStatus, Direction, DocumentType
from ..utils.formatting import ZERO, parse_datetime


@dataclass
class Party:
    """Issuer (emisor) or recipient (receptor) of a CFDI."""
    rfc: str = ""
    nombre: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"rfc": self.rfc, "nombre": self.nombre}


@dataclass
class AuthorityMetadata:
    """
    One summary record as listed by the SAT portal.
    Every member is the raw text the authority reported ("" when absent).
    """
    uuid: str
    estado_comprobante: str = ""
    efecto_comprobante: str = ""
    rfc_emisor: str = ""
    nombre_emisor: str = ""
    rfc_receptor: str = ""
    nombre_receptor: str = ""
    fecha_emision: str = ""
    fecha_certificacion: str = ""
    total: str = ""

    # Only some listings carry these (mostly issued documents)
    serie: str = ""
    folio: str = ""
    moneda: str = ""
    forma_pago: str = ""
    metodo_pago: str = ""
    uso_cfdi: str = ""
    subtotal: str = ""
    descuento: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fallback_uuid: str = "") -> "AuthorityMetadata":
        """Build from the gateway payload using the SAT's own field names."""

        def text(*names: str) -> str:
            for name in names:
                value = data.get(name)
                if value is not None and str(value) != "":
                    return str(value)
            return ""

        return cls(
            uuid=text("uuid", "UUID") or fallback_uuid,
            estado_comprobante=text("estadoComprobante"),
            efecto_comprobante=text("efectoComprobante"),
            rfc_emisor=text("rfcEmisor"),
            nombre_emisor=text("nombreEmisor"),
            rfc_receptor=text("rfcReceptor"),
            nombre_receptor=text("nombreReceptor"),
            fecha_emision=text("fechaEmision"),
            fecha_certificacion=text("fechaCertificacion"),
            total=text("total"),
            serie=text("serie"),
            folio=text("folio"),
            moneda=text("moneda"),
            forma_pago=text("formaPago"),
            metodo_pago=text("metodoPago"),
            uso_cfdi=text("usoCFDI", "usoCfdi"),
            subtotal=text("subtotal"),
            descuento=text("descuento"),
        )


@dataclass
class CFDIFields:
    """
    Fields extracted from a CFDI XML body.
    Defaults are what a missing or unreadable document yields.
    """
    serie: str = ""
    folio: str = ""
    metodo_pago: str = ""
    forma_pago: str = ""
    uso_cfdi: str = ""
    moneda: str = ""
    subtotal: Decimal = ZERO
    descuento: Decimal = ZERO
    total_num: Decimal = ZERO
    traslado_iva_16: Decimal = ZERO
    traslado_iva_8: Decimal = ZERO
    total_imp_trasladado: Decimal = ZERO
    es_pago: bool = False
    pagos_num: int = 0

    @classmethod
    def field_names(cls) -> tuple:
        return tuple(f.name for f in fields(cls))

    def as_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.field_names()}


@dataclass
class FiscalDocumentRecord:
    """
    Canonical view of one authority-reported CFDI.
    Detail fields start at metadata fidelity and are overwritten by XML data.
    """
    uuid: str
    direction: Direction
    document_type: Optional[DocumentType] = None
    efecto_comprobante: str = ""

    # Status
    authority_status: AuthorityStatus = AuthorityStatus.UNKNOWN
    status_description: str = "Desconocido"

    # Parties
    emisor: Party = field(default_factory=Party)
    receptor: Party = field(default_factory=Party)

    # Dates (raw SAT text)
    fecha_emision: str = ""
    fecha_certificacion: str = ""

    # Amount from the listing, never negative
    total: Decimal = ZERO

    # Detail fields (see CFDIFields)
    serie: str = ""
    folio: str = ""
    metodo_pago: str = ""
    forma_pago: str = ""
    uso_cfdi: str = ""
    moneda: str = ""
    subtotal: Decimal = ZERO
    descuento: Decimal = ZERO
    total_num: Decimal = ZERO
    traslado_iva_16: Decimal = ZERO
    traslado_iva_8: Decimal = ZERO
    total_imp_trasladado: Decimal = ZERO
    es_pago: bool = False
    pagos_num: int = 0

    detalle_error: Optional[str] = None

    @property
    def counterparty(self) -> Party:
        """Receptor for issued documents, emisor for received ones."""
        return self.receptor if self.direction == Direction.ISSUED else self.emisor

    @property
    def certified_at(self) -> Optional[datetime]:
        return parse_datetime(self.fecha_certificacion)

    @property
    def is_valid(self) -> bool:
        return self.authority_status == AuthorityStatus.VALID

    @property
    def is_cancelled(self) -> bool:
        return self.authority_status == AuthorityStatus.CANCELLED

    def detail_fields(self) -> CFDIFields:
        return CFDIFields(**{name: getattr(self, name) for name in CFDIFields.field_names()})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "uuid": self.uuid,
            "estatus": self.authority_status.code,
            "estatus_descripcion": self.status_description,
            "emisor": self.emisor.to_dict(),
            "receptor": self.receptor.to_dict(),
            "fecha_emision": self.fecha_emision,
            "fecha_certificacion": self.fecha_certificacion,
            "total": float(self.total),
            "efecto_comprobante": self.efecto_comprobante,
            "tipo_comprobante": self.direction.label,
        }
        for name, value in self.detail_fields().as_dict().items():
            data[name] = float(value) if isinstance(value, Decimal) else value
        if self.detalle_error is not None:
            data["detalle_error"] = self.detalle_error
        return data
