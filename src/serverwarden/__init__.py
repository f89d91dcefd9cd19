"""Serverwarden keeps a self-hosted server binary updated and running."""

__version__ = "0.1.0"
