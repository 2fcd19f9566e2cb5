"""Invoice field extraction and ledger reconciliation service."""
