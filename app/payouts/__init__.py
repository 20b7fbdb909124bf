"""Payout ingestion: processing, realtime sync, monthly archive and reconciliation."""
