"""Shared test doubles for p4kit tests."""
