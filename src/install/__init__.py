"""Cache, environment and recursive installation."""
