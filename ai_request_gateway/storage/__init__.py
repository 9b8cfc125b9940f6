"""Durable usage ledger backed by SQLite."""
