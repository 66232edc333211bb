"""Supervises a single local worker executable: install once, start, restart on crash, stop cleanly."""

__version__ = "0.1.0"
