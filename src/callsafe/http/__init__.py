"""Outbound HTTP: request descriptors and the resilient client."""

from callsafe.http.client import ResilientHttpClient, classify_response
from callsafe.http.request import HttpMethod, RequestDescriptor

__all__ = ["HttpMethod", "RequestDescriptor", "ResilientHttpClient", "classify_response"]
