"""Arbitration services."""
