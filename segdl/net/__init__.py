"""
Network Layer.

Holds the HTTP request collaborator shared by all downloads of a session
and the JSON-RPC client for the optional aria2 download delegate.
"""

from .client import HttpClient
from .delegate import Aria2Delegate

__all__ = ["Aria2Delegate", "HttpClient"]
