"""
Access log package for the Gateway.

A bounded, newest-first record of completed proxy transactions kept in
process memory only.
"""

from .ring_buffer import AccessLog, ProxyLogEntry

__all__ = ["AccessLog", "ProxyLogEntry"]
