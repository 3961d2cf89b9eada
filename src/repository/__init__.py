"""Repository layout: package configuration and the chart index."""
