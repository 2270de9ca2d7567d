"""Kirin: collect chat messages, summarize them with a local model and persist the results."""

__version__ = "0.1.0"
