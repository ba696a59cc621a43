"""Comparison request arbitration service."""
