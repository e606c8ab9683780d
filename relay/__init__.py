"""Relay package: serves room documents and presence over WebSockets."""

from .remote import RemotePresenceChannel, RemoteStore
from .server import RelayServer

__all__ = ["RelayServer", "RemoteStore", "RemotePresenceChannel"]
