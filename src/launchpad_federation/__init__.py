"""Federated directory discovery and submission service."""

__version__ = "0.1.0"
