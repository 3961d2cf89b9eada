"""Upstream chart sources."""
