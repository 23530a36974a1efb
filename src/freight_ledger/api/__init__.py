"""HTTP API for the freight ledger."""
