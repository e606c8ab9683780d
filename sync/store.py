from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set

from .errors import RoomExists, RoomNotFound, StaleWrite, TransportError

LOGGER = logging.getLogger("hokm_store")

Document = Dict[str, Any]
UpdateCallback = Callable[[Document], None]
DeleteCallback = Callable[[], None]
SyncCallback = Callable[[Set[str]], None]
Unsubscribe = Callable[[], None]


class PresenceChannel(ABC):
    """One client's handle on a room's presence set."""

    @abstractmethod
    async def track(self, participant_id: str, metadata: Optional[Dict[str, Any]] = None) -> None: ...

    @abstractmethod
    async def untrack(self) -> None: ...

    @abstractmethod
    def on_sync(self, callback: SyncCallback) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...


class DocumentStore(ABC):
    """Remote home of the room documents, one JSON value per room id."""

    @abstractmethod
    async def get(self, room_id: str) -> Document: ...

    @abstractmethod
    async def put(self, room_id: str, document: Document, expected_version: Optional[int] = None) -> None: ...

    @abstractmethod
    async def create(self, room_id: str, document: Document) -> None: ...

    @abstractmethod
    async def delete(self, room_id: str) -> None: ...

    @abstractmethod
    async def list_rooms(self, limit: int = 50) -> List[Document]: ...

    @abstractmethod
    def subscribe(self, room_id: str, on_update: UpdateCallback, on_delete: DeleteCallback) -> Unsubscribe: ...

    @abstractmethod
    def presence(self, room_id: str) -> PresenceChannel: ...


class MemoryPresenceChannel(PresenceChannel):
    def __init__(self, store: "MemoryStore", room_id: str) -> None:
        self.store = store
        self.room_id = room_id
        self.participant_id: Optional[str] = None
        self.callbacks: List[SyncCallback] = []
        store._channels.setdefault(room_id, []).append(self)

    async def track(self, participant_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        await self.store._io()
        self.participant_id = participant_id
        self.store._online.setdefault(self.room_id, {})[participant_id] = dict(metadata or {})
        self.store._publish_presence(self.room_id)

    async def untrack(self) -> None:
        await self.store._io()
        if self.participant_id is not None:
            self.store.drop_presence(self.room_id, self.participant_id)
            self.participant_id = None

    def on_sync(self, callback: SyncCallback) -> None:
        self.callbacks.append(callback)

    async def close(self) -> None:
        if self.participant_id is not None:
            self.store.drop_presence(self.room_id, self.participant_id)
            self.participant_id = None
        channels = self.store._channels.get(self.room_id, [])
        if self in channels:
            channels.remove(self)
        self.callbacks.clear()


class MemoryStore(DocumentStore):
    """In-process store that keeps each document as serialized JSON text."""

    def __init__(self) -> None:
        self.offline = False
        self._docs: Dict[str, str] = {}
        self._subscribers: Dict[str, List[tuple[UpdateCallback, DeleteCallback]]] = {}
        self._online: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._channels: Dict[str, List[MemoryPresenceChannel]] = {}

    async def _io(self) -> None:
        # Every store call is a suspension point, as it would be on a network.
        if self.offline:
            raise TransportError("store unreachable")
        await asyncio.sleep(0)

    def raw(self, room_id: str) -> Optional[str]:
        return self._docs.get(room_id)

    async def get(self, room_id: str) -> Document:
        await self._io()
        raw = self._docs.get(room_id)
        if raw is None:
            raise RoomNotFound(room_id)
        return json.loads(raw)

    async def put(self, room_id: str, document: Document, expected_version: Optional[int] = None) -> None:
        await self._io()
        if expected_version is not None:
            current = self._docs.get(room_id)
            if current is None:
                raise RoomNotFound(room_id)
            stored_version = json.loads(current).get("version", 0)
            if stored_version != expected_version:
                raise StaleWrite(f"{room_id} is at version {stored_version}, expected {expected_version}")
        self._write(room_id, document)

    async def create(self, room_id: str, document: Document) -> None:
        await self._io()
        if room_id in self._docs:
            raise RoomExists(room_id)
        self._write(room_id, document)

    async def delete(self, room_id: str) -> None:
        await self._io()
        if self._docs.pop(room_id, None) is None:
            return
        LOGGER.info("Room %s deleted", room_id)
        for _, on_delete in list(self._subscribers.get(room_id, [])):
            on_delete()

    async def list_rooms(self, limit: int = 50) -> List[Document]:
        await self._io()
        return [json.loads(raw) for raw in list(self._docs.values())[:limit]]

    def subscribe(self, room_id: str, on_update: UpdateCallback, on_delete: DeleteCallback) -> Unsubscribe:
        entry = (on_update, on_delete)
        self._subscribers.setdefault(room_id, []).append(entry)

        def unsubscribe() -> None:
            subscribers = self._subscribers.get(room_id, [])
            if entry in subscribers:
                subscribers.remove(entry)

        return unsubscribe

    def presence(self, room_id: str) -> MemoryPresenceChannel:
        return MemoryPresenceChannel(self, room_id)

    def online(self, room_id: str) -> Set[str]:
        return set(self._online.get(room_id, {}))

    def drop_presence(self, room_id: str, participant_id: str) -> None:
        """Forget a participant without a goodbye, as a dropped socket would."""
        if self._online.get(room_id, {}).pop(participant_id, None) is not None:
            self._publish_presence(room_id)

    def _write(self, room_id: str, document: Document) -> None:
        raw = json.dumps(document, sort_keys=True)
        self._docs[room_id] = raw
        for on_update, _ in list(self._subscribers.get(room_id, [])):
            on_update(json.loads(raw))

    def _publish_presence(self, room_id: str) -> None:
        online = self.online(room_id)
        for channel in list(self._channels.get(room_id, [])):
            for callback in list(channel.callbacks):
                callback(set(online))
