"""SAT Verifier: reconciles SAT CFDI statuses with a business's ledger."""

__version__ = "1.0.0"
