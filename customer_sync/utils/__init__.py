"""Shared utilities: correlation IDs, logging setup, Vault access."""
