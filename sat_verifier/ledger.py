"""
Local ledger lookups.

The reconciler only talks to `LocalLedgerLookup`; callers inject an adapter
backed by whatever bookkeeping storage exists. Two adapters ship here: an
in-memory one and one that reads a JSON snapshot exported per business.

Snapshot layout:
{
    "facturas": [{"id": "1", "uuid": "...", "status": 1, "url": "..."}],
    "anticipos": [...],
    "facturas_pagos": [{"id": "7", "cfdi": "...", "status": 0}],
    "notas_credito": [...],
    "compras": [...],
    "pagos_complemento": [{"id": "3", "uuid": "...", "pago": {...}}],
    "compras_notas_credito": [{"id": "4", "uuid": "...", "compra": {...} | null}]
}
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import structlog

from .models import (
    LedgerEntry,
    LedgerEntryKind,
    SupplierCreditNote,
    SupplierPaymentComplement,
)

logger = structlog.get_logger()


class LedgerSnapshotError(Exception):
    """Raised when a ledger snapshot cannot be read."""


class LocalLedgerLookup(Protocol):
    """One lookup per bookkeeping entity paired with SAT documents."""

    def find_invoice(self, uuid: str) -> Optional[LedgerEntry]: ...

    def find_advance_payment(self, uuid: str) -> Optional[LedgerEntry]: ...

    def find_payment_complement(self, linked_uuid: str) -> Optional[LedgerEntry]: ...

    def find_credit_note(self, uuid: str) -> Optional[LedgerEntry]: ...

    def find_purchase(self, uuid: str) -> Optional[LedgerEntry]: ...

    def has_active_purchase(self, uuid: str) -> bool: ...

    def find_supplier_payment_complement(
        self, uuid: str
    ) -> Optional[SupplierPaymentComplement]: ...

    def find_supplier_credit_note(self, uuid: str) -> Optional[SupplierCreditNote]: ...


class InMemoryLedgerLookup:
    """
    Ledger held in memory.
    Lookups return the first entry with the uuid, in insertion order.
    """

    def __init__(self, entries: Iterable[LedgerEntry] = ()):
        self._entries: Dict[LedgerEntryKind, List[LedgerEntry]] = {
            kind: [] for kind in LedgerEntryKind
        }
        for entry in entries:
            self.add(entry)

    def add(self, entry: LedgerEntry) -> None:
        self._entries[entry.kind].append(entry)

    def _first(self, kind: LedgerEntryKind, uuid: str) -> Optional[LedgerEntry]:
        if not uuid:
            return None
        for entry in self._entries[kind]:
            if entry.uuid == uuid:
                return entry
        return None

    def find_invoice(self, uuid: str) -> Optional[LedgerEntry]:
        return self._first(LedgerEntryKind.INVOICE, uuid)

    def find_advance_payment(self, uuid: str) -> Optional[LedgerEntry]:
        return self._first(LedgerEntryKind.ADVANCE_PAYMENT, uuid)

    def find_payment_complement(self, linked_uuid: str) -> Optional[LedgerEntry]:
        return self._first(LedgerEntryKind.PAYMENT_COMPLEMENT, linked_uuid)

    def find_credit_note(self, uuid: str) -> Optional[LedgerEntry]:
        return self._first(LedgerEntryKind.CREDIT_NOTE, uuid)

    def find_purchase(self, uuid: str) -> Optional[LedgerEntry]:
        return self._first(LedgerEntryKind.PURCHASE, uuid)

    def has_active_purchase(self, uuid: str) -> bool:
        return any(
            entry.uuid == uuid and not entry.is_cancelled
            for entry in self._entries[LedgerEntryKind.PURCHASE]
        )

    def find_supplier_payment_complement(
        self, uuid: str
    ) -> Optional[SupplierPaymentComplement]:
        return self._first(LedgerEntryKind.SUPPLIER_PAYMENT_COMPLEMENT, uuid)

    def find_supplier_credit_note(self, uuid: str) -> Optional[SupplierCreditNote]:
        return self._first(LedgerEntryKind.SUPPLIER_CREDIT_NOTE, uuid)


class JsonLedgerLookup(InMemoryLedgerLookup):
    """In-memory ledger loaded from a per-business JSON snapshot."""

    _SIMPLE_SECTIONS = {
        "facturas": LedgerEntryKind.INVOICE,
        "anticipos": LedgerEntryKind.ADVANCE_PAYMENT,
        "facturas_pagos": LedgerEntryKind.PAYMENT_COMPLEMENT,
        "notas_credito": LedgerEntryKind.CREDIT_NOTE,
        "compras": LedgerEntryKind.PURCHASE,
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JsonLedgerLookup":
        lookup = cls()

        for section, kind in cls._SIMPLE_SECTIONS.items():
            for row in data.get(section) or []:
                lookup.add(LedgerEntry.from_dict(kind, row))

        for row in data.get("pagos_complemento") or []:
            base = LedgerEntry.from_dict(LedgerEntryKind.SUPPLIER_PAYMENT_COMPLEMENT, row)
            payment = row.get("pago")
            lookup.add(SupplierPaymentComplement(
                id=base.id,
                uuid=base.uuid,
                status=base.status,
                url=base.url,
                payment=(
                    LedgerEntry.from_dict(LedgerEntryKind.SUPPLIER_PAYMENT, payment)
                    if payment else None
                ),
            ))

        for row in data.get("compras_notas_credito") or []:
            base = LedgerEntry.from_dict(LedgerEntryKind.SUPPLIER_CREDIT_NOTE, row)
            purchase = row.get("compra")
            lookup.add(SupplierCreditNote(
                id=base.id,
                uuid=base.uuid,
                status=base.status,
                url=base.url,
                purchase=(
                    LedgerEntry.from_dict(LedgerEntryKind.PURCHASE, purchase)
                    if purchase else None
                ),
            ))

        return lookup

    @classmethod
    def from_file(cls, path: Path) -> "JsonLedgerLookup":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerSnapshotError(f"No se pudo leer la contabilidad: {path}") from e

        if not isinstance(data, dict):
            raise LedgerSnapshotError(f"Formato de contabilidad inválido: {path}")

        lookup = cls.from_dict(data)
        logger.info("Ledger snapshot loaded", path=str(path))
        return lookup


def load_ledger_snapshot(empresa: str, ledger_dir: Path) -> JsonLedgerLookup:
    """
    Load `{ledger_dir}/{empresa}.json`.
    A business without a snapshot has an empty ledger.
    """
    path = Path(ledger_dir) / f"{empresa}.json"
    if not path.exists():
        logger.warning("No ledger snapshot for business", empresa=empresa, path=str(path))
        return JsonLedgerLookup()
    return JsonLedgerLookup.from_file(path)
