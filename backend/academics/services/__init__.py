"""Service layer for the class assignment ledger and student roster."""
