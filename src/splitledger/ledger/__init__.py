"""Split calculation, balance ledger and debt resolution."""
