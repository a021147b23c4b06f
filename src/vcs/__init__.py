"""Version-control sourced packages."""
