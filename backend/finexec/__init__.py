"""FinExec – quarterly financial execution aggregation and balance reconciliation."""

__version__ = "0.1.0"
