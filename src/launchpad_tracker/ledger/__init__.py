"""Ledger access - RPC client for blocks, logs, filters and contract reads."""
