"""Social insurance contribution ledger."""
