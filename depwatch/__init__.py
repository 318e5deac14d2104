"""Probe a cluster API server and scale dependent resources up or down in response."""

__version__ = "0.1.0"