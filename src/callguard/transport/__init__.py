"""
Transport adapters.

Wraps httpx requests as guarded calls.
"""

from callguard.transport.http import HttpCall, http_call

__all__ = [
    "HttpCall",
    "http_call",
]
