"""
Forwarding package for the Gateway.

Executes the single outbound call per inbound request and translates
whatever comes back (or fails to) into a well-formed outcome.
"""

from .forwarder import ForwardingEngine, InboundRequest, ProxyOutcome

__all__ = ["ForwardingEngine", "InboundRequest", "ProxyOutcome"]
