"""Retrieval and synchronization engine for the notebook assistant."""

__version__ = "0.1.0"
