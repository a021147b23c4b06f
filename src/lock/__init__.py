"""Lock file model."""
