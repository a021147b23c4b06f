"""Shared helpers: logging, HTTP transport and subprocess execution."""
