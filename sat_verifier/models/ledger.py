"""Bookkeeping (local ledger) entities paired with SAT documents."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .enums import LedgerEntryKind, LedgerStatus


@dataclass(frozen=True)
class LedgerEntry:
    """
    One bookkeeping row: invoice, advance payment, payment complement,
    credit note, purchase or supplier payment.
    """
    id: str
    kind: LedgerEntryKind
    uuid: str = ""
    status: LedgerStatus = LedgerStatus.ACTIVE
    url: Optional[str] = None  # Link to the entity in the bookkeeping UI

    @property
    def is_cancelled(self) -> bool:
        return self.status == LedgerStatus.CANCELLED

    @classmethod
    def from_dict(cls, kind: LedgerEntryKind, data: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            id=str(data.get("id", "")),
            kind=kind,
            uuid=str(data.get("uuid") or data.get("cfdi") or ""),
            status=LedgerStatus.from_code(data.get("status", 1)),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class SupplierPaymentComplement(LedgerEntry):
    """Received payment complement; points at the supplier payment it backs."""
    kind: LedgerEntryKind = LedgerEntryKind.SUPPLIER_PAYMENT_COMPLEMENT
    payment: Optional[LedgerEntry] = None

    @property
    def payment_cancelled(self) -> bool:
        # A complement that lost its payment counts as cancelled
        return self.payment is None or self.payment.is_cancelled


@dataclass(frozen=True)
class SupplierCreditNote(LedgerEntry):
    """Received credit note; the purchase link may be missing."""
    kind: LedgerEntryKind = LedgerEntryKind.SUPPLIER_CREDIT_NOTE
    purchase: Optional[LedgerEntry] = None
