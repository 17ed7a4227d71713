# relaymap/__init__.py
"""Tor relay listings and world map from the Onionoo directory."""

__version__ = "0.3.0"
