"""Equivalence checks for chart archives and directory trees."""
