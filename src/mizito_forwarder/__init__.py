"""Mizito Forwarder — relays webhook notifications to the Mizito chat API."""

__version__ = "1.0.0"
