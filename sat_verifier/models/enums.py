"""Enumerations for the SAT verification system."""

import unicodedata
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    """
    Trade direction of a CFDI from the business's point of view.

    ISSUED: Documents the business generated (emitidos)
    RECEIVED: Documents other taxpayers issued to the business (recibidos)
    """
    ISSUED = "emitidos"
    RECEIVED = "recibidos"

    @property
    def label(self) -> str:
        return "Emitidos" if self is Direction.ISSUED else "Recibidos"

    @classmethod
    def parse(cls, value: str) -> "Direction":
        """Parse the request `tipo` parameter; raises ValueError if unknown."""
        return cls((value or "").strip().lower())


class DocumentType(str, Enum):
    """CFDI effect (efectoComprobante) as reported by the SAT."""
    INCOME = "Ingreso"     # Standard invoice
    EXPENSE = "Egreso"     # Credit/debit note
    PAYMENT = "Pago"       # Payment complement
    PAYROLL = "Nomina"     # Payroll receipt

    @classmethod
    def from_text(cls, value: Optional[str]) -> Optional["DocumentType"]:
        """Match the SAT text ignoring case and accents ("Nómina" == "Nomina")."""
        if not value:
            return None
        folded = unicodedata.normalize("NFKD", value.strip())
        folded = "".join(c for c in folded if not unicodedata.combining(c)).lower()
        for member in cls:
            if member.value.lower() == folded:
                return member
        return None


class AuthorityStatus(str, Enum):
    """
    Tri-state cancellation status recognized by the SAT.

    VALID: Vigente
    CANCELLED: Cancelado
    UNKNOWN: Status text matched neither pattern
    """
    VALID = "vigente"
    CANCELLED = "cancelado"
    UNKNOWN = "desconocido"

    @property
    def code(self) -> Optional[str]:
        """Legacy SAT status code ("1" valid, "0" cancelled, None otherwise)."""
        if self is AuthorityStatus.VALID:
            return "1"
        if self is AuthorityStatus.CANCELLED:
            return "0"
        return None


class LedgerStatus(str, Enum):
    """Status of a bookkeeping row. The ledger stores 0 for cancelled."""
    ACTIVE = "active"
    CANCELLED = "cancelled"

    @classmethod
    def from_code(cls, value) -> "LedgerStatus":
        if isinstance(value, LedgerStatus):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in (cls.ACTIVE.value, cls.CANCELLED.value):
                return cls(lowered)
            try:
                value = int(lowered)
            except ValueError:
                return cls.ACTIVE
        return cls.CANCELLED if value == 0 else cls.ACTIVE


class LedgerEntryKind(str, Enum):
    """Bookkeeping entities that can be paired with a CFDI."""
    # Issued side
    INVOICE = "factura"
    ADVANCE_PAYMENT = "anticipo"
    PAYMENT_COMPLEMENT = "complemento_pago"
    CREDIT_NOTE = "nota_credito"
    # Received side
    PURCHASE = "compra"
    SUPPLIER_PAYMENT = "pago_proveedor"
    SUPPLIER_PAYMENT_COMPLEMENT = "complemento_pago_proveedor"
    SUPPLIER_CREDIT_NOTE = "nota_credito_proveedor"


class ErrorKind(str, Enum):
    """
    Failure classification for one verification request.
    The value is the `tipo` tag returned to callers.
    """
    CONFIG_MISSING = "configuracion"
    CREDENTIAL_FILE_MISSING = "archivo_credencial"
    CREDENTIAL_INVALID = "credencial_invalida"
    INVALID_DATE_RANGE = "rango_fechas"
    INVALID_REQUEST = "parametros"
    UPSTREAM_CONNECTION = "conexion"
    UPSTREAM_BUSINESS = "sat"
    EMPTY_RESULT = "sin_resultados"
    DETAIL_UNAVAILABLE = "detalle"
    INTERNAL = "interno"

    @property
    def is_validation(self) -> bool:
        return self in (
            ErrorKind.CONFIG_MISSING,
            ErrorKind.CREDENTIAL_FILE_MISSING,
            ErrorKind.CREDENTIAL_INVALID,
            ErrorKind.INVALID_DATE_RANGE,
            ErrorKind.INVALID_REQUEST,
        )
