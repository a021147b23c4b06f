"""Wheel builds from source distributions and checkouts."""
