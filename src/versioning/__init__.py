"""Version, constraint and requirement model."""
