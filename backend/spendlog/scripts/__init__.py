"""Operational scripts (run with ``python -m spendlog.scripts.<name>``)."""
