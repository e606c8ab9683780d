"""Room synchronization: store contract, coordinator, presence and host driver."""

from .client import GameClient, Session
from .config import TimingConfig
from .coordinator import SyncCoordinator
from .errors import Conflict, RoomExists, RoomFull, RoomNotFound, StaleWrite, SyncError, TransportError
from .host import HostDriver
from .presence import PresenceReconciler
from .store import DocumentStore, MemoryStore, PresenceChannel

__all__ = [
    "GameClient",
    "Session",
    "TimingConfig",
    "SyncCoordinator",
    "Conflict",
    "RoomExists",
    "RoomFull",
    "RoomNotFound",
    "StaleWrite",
    "SyncError",
    "TransportError",
    "HostDriver",
    "PresenceReconciler",
    "DocumentStore",
    "MemoryStore",
    "PresenceChannel",
]
