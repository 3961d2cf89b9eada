"""Version parsing and upstream version selection."""
