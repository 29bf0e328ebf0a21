"""Shared helpers for callsafe tests."""
