"""Parsing, user policy and client bookkeeping for a tunnelling reverse-proxy server."""

__version__ = "0.1.0"