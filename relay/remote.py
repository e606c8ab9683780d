from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Dict, List, Optional

import websockets

from sync.errors import TransportError, error_from_code
from sync.store import (
    DeleteCallback,
    Document,
    DocumentStore,
    PresenceChannel,
    SyncCallback,
    Unsubscribe,
    UpdateCallback,
)

LOGGER = logging.getLogger("hokm_remote")


class RemotePresenceChannel(PresenceChannel):
    def __init__(self, store: "RemoteStore", room_id: str) -> None:
        self.store = store
        self.room_id = room_id
        self.participant_id: Optional[str] = None
        self.callbacks: List[SyncCallback] = []
        store._channels.setdefault(room_id, []).append(self)

    async def track(self, participant_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        await self.store._request("track", room_id=self.room_id, participant_id=participant_id, metadata=metadata or {})
        self.participant_id = participant_id

    async def untrack(self) -> None:
        if self.participant_id is None:
            return
        await self.store._request("untrack", room_id=self.room_id)
        self.participant_id = None

    def on_sync(self, callback: SyncCallback) -> None:
        self.callbacks.append(callback)

    async def close(self) -> None:
        try:
            await self.untrack()
        except TransportError as exc:
            # The relay drops our presence anyway once the socket goes.
            LOGGER.debug("Untrack of %s failed: %s", self.room_id, exc)
            self.participant_id = None
        channels = self.store._channels.get(self.room_id, [])
        if self in channels:
            channels.remove(self)
        self.callbacks.clear()

    def _deliver(self, online: List[str]) -> None:
        for callback in list(self.callbacks):
            callback(set(online))


class RemoteStore(DocumentStore):
    """DocumentStore spoken over a relay WebSocket."""

    def __init__(self, url: str, timeout: float = 5.0) -> None:
        self.url = url
        self.timeout = timeout
        self.websocket: Any = None
        self._ids = itertools.count(1)
        self._pending: Dict[str, asyncio.Future] = {}
        self._subscribers: Dict[str, List[tuple[UpdateCallback, DeleteCallback]]] = {}
        self._channels: Dict[str, List[RemotePresenceChannel]] = {}
        self._reader: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    async def connect(self) -> None:
        try:
            self.websocket = await websockets.connect(self.url)
        except OSError as exc:
            raise TransportError(f"cannot reach {self.url}: {exc}") from exc
        self._reader = asyncio.ensure_future(self._read_loop())
        LOGGER.info("Connected to relay %s", self.url)

    async def close(self) -> None:
        if self.websocket is not None:
            await self.websocket.close()
        if self._reader is not None:
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        self.websocket = None

    # DocumentStore -----------------------------------------------------
    async def get(self, room_id: str) -> Document:
        reply = await self._request("get", room_id=room_id)
        return reply["document"]

    async def put(self, room_id: str, document: Document, expected_version: Optional[int] = None) -> None:
        await self._request("put", room_id=room_id, document=document, expected_version=expected_version)

    async def create(self, room_id: str, document: Document) -> None:
        await self._request("create", room_id=room_id, document=document)

    async def delete(self, room_id: str) -> None:
        await self._request("delete", room_id=room_id)

    async def list_rooms(self, limit: int = 50) -> List[Document]:
        reply = await self._request("list", limit=limit)
        return list(reply.get("documents", []))

    def subscribe(self, room_id: str, on_update: UpdateCallback, on_delete: DeleteCallback) -> Unsubscribe:
        entry = (on_update, on_delete)
        subscribers = self._subscribers.setdefault(room_id, [])
        if not subscribers:
            self._background_request("subscribe", room_id)
        subscribers.append(entry)

        def unsubscribe() -> None:
            current = self._subscribers.get(room_id, [])
            if entry not in current:
                return
            current.remove(entry)
            if not current:
                self._background_request("unsubscribe", room_id)

        return unsubscribe

    def presence(self, room_id: str) -> RemotePresenceChannel:
        return RemotePresenceChannel(self, room_id)

    # Wire --------------------------------------------------------------
    async def _request(self, msg_type: str, **payload: Any) -> Dict[str, Any]:
        if self.websocket is None:
            raise TransportError("not connected")
        req_id = str(next(self._ids))
        future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future
        body = {"type": msg_type, "v": 1, "req_id": req_id}
        body.update(payload)
        try:
            await self.websocket.send(json.dumps(body))
            reply = await asyncio.wait_for(future, timeout=self.timeout)
        except (websockets.ConnectionClosed, OSError) as exc:
            raise TransportError(str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{msg_type} timed out") from exc
        finally:
            self._pending.pop(req_id, None)
        if reply.get("type") == "error":
            raise error_from_code(reply.get("code", ""), reply.get("msg", ""))
        return reply

    def _background_request(self, msg_type: str, room_id: str) -> None:
        task = asyncio.ensure_future(self._request(msg_type, room_id=room_id))
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            LOGGER.warning("Relay request failed: %s", task.exception())

    async def _read_loop(self) -> None:
        try:
            async for raw in self.websocket:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    LOGGER.warning("Dropping malformed relay frame")
                    continue
                if isinstance(message, dict):
                    self._dispatch(message)
        except websockets.ConnectionClosed:
            LOGGER.info("Relay connection closed")
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(TransportError("relay connection lost"))

    def _dispatch(self, message: Dict[str, Any]) -> None:
        msg_type = message.get("type")
        room_id = message.get("room_id")
        if msg_type in ("ok", "error"):
            future = self._pending.get(str(message.get("req_id")))
            if future is not None and not future.done():
                future.set_result(message)
            elif msg_type == "error":
                LOGGER.warning("[error] %s", message)
        elif msg_type == "doc_update":
            for on_update, _ in list(self._subscribers.get(room_id, [])):
                on_update(message.get("document", {}))
        elif msg_type == "doc_delete":
            for _, on_delete in list(self._subscribers.get(room_id, [])):
                on_delete()
        elif msg_type == "presence_sync":
            for channel in list(self._channels.get(room_id, [])):
                channel._deliver(list(message.get("online", [])))
        else:
            LOGGER.debug("Ignoring message type=%s", msg_type)
