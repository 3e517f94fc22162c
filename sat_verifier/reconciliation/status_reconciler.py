"""
Document Status Reconciler.

Pairs each SAT record with its bookkeeping entity and decides whether the
two disagree about cancellation. Stateless apart from the injected ledger.

Issued (emitidos):
    Ingreso -> Factura, else Anticipo
    Pago    -> complemento de pago (by linked CFDI)
    Egreso  -> Nota de crédito
    Nómina  -> excluded before reaching the reconciler

Received (recibidos):
    Ingreso -> Compra (an active duplicate Compra means it was reissued)
    Pago    -> complemento de pago de proveedor -> Pago
    Egreso  -> Nota de crédito de proveedor -> Compra
"""

from typing import Callable, Dict, List, Optional, Tuple

import structlog

from ..ledger import LocalLedgerLookup
from ..models import (
    DiscrepancyEntry,
    Direction,
    DocumentType,
    FiscalDocumentRecord,
    LedgerEntry,
)

logger = structlog.get_logger()


# Labels
LABEL_INVOICE = "Factura"
LABEL_ADVANCE = "Anticipo"
LABEL_PAYMENT = "Pago"
LABEL_CREDIT_NOTE = "Nota de crédito"
LABEL_PURCHASE = "Compra"
LABEL_SUPPLIER_PAYMENT = "Pago a proveedor"

# Problems, issued side
INVOICE_CANCELLED_LOCALLY = "La factura está cancelada pero vigente en el SAT."
INVOICE_CANCELLED_AT_SAT = "La factura está vigente pero cancelada en el SAT."
ADVANCE_CANCELLED_LOCALLY = "El anticipo está cancelado pero vigente en el SAT."
ADVANCE_CANCELLED_AT_SAT = "El anticipo está vigente pero cancelado en el SAT."
INVOICE_NOT_FOUND = "No se encontró la factura/anticipo."
PAYMENT_CANCELLED_LOCALLY = "El complemento de pago está cancelado pero vigente en el SAT."
PAYMENT_CANCELLED_AT_SAT = "El complemento de pago está cancelado en el SAT."
PAYMENT_NOT_FOUND = "No se encontró el complemento de pago."
CREDIT_NOTE_CANCELLED_LOCALLY = "La nota de crédito está cancelada pero vigente en el SAT."
CREDIT_NOTE_CANCELLED_AT_SAT = "La nota de crédito está vigente pero cancelada en el SAT."
CREDIT_NOTE_NOT_FOUND = "No se encontró la nota de crédito."

# Problems, received side
PURCHASE_CANCELLED_LOCALLY = "La compra está cancelada pero vigente en el SAT."
PURCHASE_CANCELLED_AT_SAT = "La compra está vigente pero cancelada en el SAT."
PURCHASE_NOT_FOUND = "No se encontró la compra a proveedor."
SUPPLIER_PAYMENT_CANCELLED_AT_SAT = (
    "El complemento de pago de proveedor está cancelado pero lo tienes "
    "vinculado a un pago activo."
)
SUPPLIER_PAYMENT_NOT_FOUND = "No se encontró el complemento de pago de proveedor."
SUPPLIER_NOTE_CANCELLED_AT_SAT = (
    "La nota de crédito de proveedor está cancelada y en sistema está cargada."
)
SUPPLIER_NOTE_CANCELLED_LOCALLY = (
    "La nota de crédito de proveedor está vigente en el SAT pero en sistema "
    "está cancelada."
)
SUPPLIER_NOTE_WITHOUT_PURCHASE = (
    "La nota de crédito de proveedor existe en sistema pero no tiene compra "
    "relacionada."
)
SUPPLIER_NOTE_NOT_FOUND = "No se encontró la nota de crédito de proveedor."


Branch = Callable[[FiscalDocumentRecord], List[DiscrepancyEntry]]


class DocumentStatusReconciler:
    """
    Classifies SAT records against the local ledger.

    `reconcile` returns the discrepancies for one record: none or one, except
    received credit notes, where both status checks run independently.
    """

    def __init__(self, ledger: LocalLedgerLookup):
        self.ledger = ledger
        self._dispatch: Dict[Tuple[Direction, DocumentType], Branch] = {
            (Direction.ISSUED, DocumentType.INCOME): self._issued_income,
            (Direction.ISSUED, DocumentType.PAYMENT): self._issued_payment,
            (Direction.ISSUED, DocumentType.EXPENSE): self._issued_expense,
            (Direction.RECEIVED, DocumentType.INCOME): self._received_income,
            (Direction.RECEIVED, DocumentType.PAYMENT): self._received_payment,
            (Direction.RECEIVED, DocumentType.EXPENSE): self._received_expense,
            # TODO: received Nómina has no branch while issued Nómina is filtered
            # out before dispatch; confirm with accounting which one is intended.
        }

    def reconcile(self, record: FiscalDocumentRecord) -> List[DiscrepancyEntry]:
        """
        Compare one SAT record with the ledger.

        Args:
            record: Normalized SAT record

        Returns:
            Discrepancies found (possibly empty)
        """
        branch = self._dispatch.get((record.direction, record.document_type))
        if branch is None:
            return []

        found = branch(record)
        for entry in found:
            logger.debug(
                "Discrepancy found",
                uuid=record.uuid,
                tipo=entry.tipo,
                problema=entry.problema,
            )
        return found

    def _entry(
        self,
        record: FiscalDocumentRecord,
        label: str,
        problem: str,
        link: Optional[LedgerEntry] = None,
    ) -> DiscrepancyEntry:
        return DiscrepancyEntry(
            tipo=label,
            persona=record.counterparty.nombre,
            total=record.total,
            problema=problem,
            uuid=record.uuid,
            fecha_certificacion=record.fecha_certificacion,
            url=link.url if link is not None else None,
        )

    def _compare_symmetric(
        self,
        record: FiscalDocumentRecord,
        local: LedgerEntry,
        label: str,
        cancelled_locally: str,
        cancelled_at_sat: str,
    ) -> List[DiscrepancyEntry]:
        """Report when exactly one side considers the document cancelled."""
        if record.is_valid and local.is_cancelled:
            return [self._entry(record, label, cancelled_locally, local)]
        if record.is_cancelled and not local.is_cancelled:
            return [self._entry(record, label, cancelled_at_sat, local)]
        return []

    # Issued

    def _issued_income(self, record: FiscalDocumentRecord) -> List[DiscrepancyEntry]:
        invoice = self.ledger.find_invoice(record.uuid)
        if invoice is not None:
            return self._compare_symmetric(
                record, invoice, LABEL_INVOICE,
                INVOICE_CANCELLED_LOCALLY, INVOICE_CANCELLED_AT_SAT,
            )

        advance = self.ledger.find_advance_payment(record.uuid)
        if advance is not None:
            return self._compare_symmetric(
                record, advance, LABEL_ADVANCE,
                ADVANCE_CANCELLED_LOCALLY, ADVANCE_CANCELLED_AT_SAT,
            )

        if record.is_valid:
            return [self._entry(record, LABEL_INVOICE, INVOICE_NOT_FOUND)]
        return []

    def _issued_payment(self, record: FiscalDocumentRecord) -> List[DiscrepancyEntry]:
        complement = self.ledger.find_payment_complement(record.uuid)
        if complement is not None:
            return self._compare_symmetric(
                record, complement, LABEL_PAYMENT,
                PAYMENT_CANCELLED_LOCALLY, PAYMENT_CANCELLED_AT_SAT,
            )

        if record.is_valid:
            return [self._entry(record, LABEL_PAYMENT, PAYMENT_NOT_FOUND)]
        return []

    def _issued_expense(self, record: FiscalDocumentRecord) -> List[DiscrepancyEntry]:
        note = self.ledger.find_credit_note(record.uuid)
        if note is not None:
            return self._compare_symmetric(
                record, note, LABEL_CREDIT_NOTE,
                CREDIT_NOTE_CANCELLED_LOCALLY, CREDIT_NOTE_CANCELLED_AT_SAT,
            )

        if record.is_valid:
            return [self._entry(record, LABEL_CREDIT_NOTE, CREDIT_NOTE_NOT_FOUND)]
        return []

    # Received

    def _received_income(self, record: FiscalDocumentRecord) -> List[DiscrepancyEntry]:
        purchase = self.ledger.find_purchase(record.uuid)
        if purchase is None:
            if not record.is_cancelled:
                return [self._entry(record, LABEL_PURCHASE, PURCHASE_NOT_FOUND)]
            return []

        if record.is_valid and purchase.is_cancelled:
            # A cancelled purchase re-captured with the same uuid is fine
            if self.ledger.has_active_purchase(record.uuid):
                return []
            return [self._entry(record, LABEL_PURCHASE, PURCHASE_CANCELLED_LOCALLY, purchase)]

        if record.is_cancelled and not purchase.is_cancelled:
            return [self._entry(record, LABEL_PURCHASE, PURCHASE_CANCELLED_AT_SAT, purchase)]

        return []

    def _received_payment(self, record: FiscalDocumentRecord) -> List[DiscrepancyEntry]:
        complement = self.ledger.find_supplier_payment_complement(record.uuid)
        if complement is None:
            if not record.is_cancelled:
                return [self._entry(record, LABEL_SUPPLIER_PAYMENT, SUPPLIER_PAYMENT_NOT_FOUND)]
            return []

        if record.is_cancelled and not complement.payment_cancelled:
            return [self._entry(
                record, LABEL_PAYMENT, SUPPLIER_PAYMENT_CANCELLED_AT_SAT, complement.payment,
            )]

        # Valid at the SAT with the payment cancelled locally is accepted
        # on purpose; it is not reported.
        return []

    def _received_expense(self, record: FiscalDocumentRecord) -> List[DiscrepancyEntry]:
        note = self.ledger.find_supplier_credit_note(record.uuid)
        if note is None:
            if not record.is_cancelled:
                return [self._entry(record, LABEL_CREDIT_NOTE, SUPPLIER_NOTE_NOT_FOUND)]
            return []

        purchase = note.purchase
        if purchase is None:
            if not record.is_cancelled:
                return [self._entry(record, LABEL_CREDIT_NOTE, SUPPLIER_NOTE_WITHOUT_PURCHASE)]
            return []

        found: List[DiscrepancyEntry] = []
        if record.is_cancelled and not purchase.is_cancelled:
            found.append(self._entry(
                record, LABEL_CREDIT_NOTE, SUPPLIER_NOTE_CANCELLED_AT_SAT, purchase,
            ))
        if record.is_valid and purchase.is_cancelled:
            found.append(self._entry(
                record, LABEL_CREDIT_NOTE, SUPPLIER_NOTE_CANCELLED_LOCALLY, purchase,
            ))
        return found
