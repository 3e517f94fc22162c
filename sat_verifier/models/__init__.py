"""Data models for the SAT verification system."""

from .enums import (
    AuthorityStatus,
    Direction,
    DocumentType,
    ErrorKind,
    LedgerEntryKind,
    LedgerStatus,
)
from .document import (
    AuthorityMetadata,
    CFDIFields,
    FiscalDocumentRecord,
    Party,
)
from .ledger import (
    LedgerEntry,
    SupplierCreditNote,
    SupplierPaymentComplement,
)
from .reconciliation import (
    DiscrepancyEntry,
    ReconciliationReport,
    ReportSummary,
    VerificationError,
    VerificationOk,
    VerificationRequest,
    VerificationResult,
)

__all__ = [
    # Enums
    "AuthorityStatus",
    "Direction",
    "DocumentType",
    "ErrorKind",
    "LedgerEntryKind",
    "LedgerStatus",
    # Documents
    "AuthorityMetadata",
    "CFDIFields",
    "FiscalDocumentRecord",
    "Party",
    # Ledger
    "LedgerEntry",
    "SupplierCreditNote",
    "SupplierPaymentComplement",
    # Reconciliation
    "DiscrepancyEntry",
    "ReconciliationReport",
    "ReportSummary",
    "VerificationError",
    "VerificationOk",
    "VerificationRequest",
    "VerificationResult",
]
