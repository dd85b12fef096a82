"""Parameterized PostgreSQL query builders for the call tables."""
