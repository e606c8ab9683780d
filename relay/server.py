from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import websockets

from sync.errors import SyncError
from sync.store import MemoryPresenceChannel, MemoryStore, Unsubscribe

LOGGER = logging.getLogger("hokm_relay")

# RelayServer exposes a MemoryStore to remote clients over WebSockets. It is
# a plain document and presence hub: it never interprets game rules, so the
# clients stay the only authority over what a room document contains.


@dataclass(eq=False)
class RelayConnection:
    websocket: Any
    subscriptions: Dict[str, Unsubscribe] = field(default_factory=dict)
    channels: Dict[str, MemoryPresenceChannel] = field(default_factory=dict)


class RelayServer:
    def __init__(self, store: Optional[MemoryStore] = None) -> None:
        self.store = store or MemoryStore()
        self.connections: Set[RelayConnection] = set()
        self._outbox: Set[asyncio.Task] = set()

    async def start(self, host: str = "0.0.0.0", port: int = 8766) -> None:
        async with websockets.serve(self._handle_connection, host, port):
            LOGGER.info("Relay listening on %s:%s", host, port)
            await asyncio.Future()

    async def _handle_connection(self, websocket: Any) -> None:
        conn = RelayConnection(websocket=websocket)
        self.connections.add(conn)
        LOGGER.info("Client connected (%s open)", len(self.connections))
        try:
            async for raw in websocket:
                message = self._decode(raw)
                if not message:
                    await self._send_error(websocket, code="BAD_SCHEMA", msg="Expected a JSON object")
                    continue
                await self._handle_message(conn, message)
        except websockets.ConnectionClosed:
            pass
        finally:
            await self._drop(conn)

    async def _handle_message(self, conn: RelayConnection, message: Dict[str, Any]) -> None:
        msg_type = message.get("type")
        req_id = message.get("req_id")
        room_id = message.get("room_id")
        if msg_type != "list" and not isinstance(room_id, str):
            await self._send_error(conn.websocket, code="BAD_SCHEMA", msg="room_id required", req_id=req_id)
            return

        try:
            if msg_type == "get":
                document = await self.store.get(room_id)
                await self._reply(conn, req_id, {"document": document})
            elif msg_type in ("put", "create"):
                document = message.get("document")
                if not isinstance(document, dict):
                    await self._send_error(conn.websocket, code="BAD_SCHEMA", msg="document required", req_id=req_id)
                    return
                if msg_type == "put":
                    await self.store.put(room_id, document, expected_version=message.get("expected_version"))
                else:
                    await self.store.create(room_id, document)
                await self._reply(conn, req_id)
            elif msg_type == "delete":
                await self.store.delete(room_id)
                await self._reply(conn, req_id)
            elif msg_type == "list":
                limit = message.get("limit")
                documents = await self.store.list_rooms(limit if isinstance(limit, int) else 50)
                await self._reply(conn, req_id, {"documents": documents})
            elif msg_type == "subscribe":
                self._subscribe(conn, room_id)
                await self._reply(conn, req_id)
            elif msg_type == "unsubscribe":
                unsubscribe = conn.subscriptions.pop(room_id, None)
                if unsubscribe:
                    unsubscribe()
                await self._reply(conn, req_id)
            elif msg_type == "track":
                participant_id = message.get("participant_id")
                if not isinstance(participant_id, str) or not participant_id:
                    await self._send_error(conn.websocket, code="BAD_SCHEMA", msg="participant_id required", req_id=req_id)
                    return
                channel = self._channel(conn, room_id)
                metadata = message.get("metadata")
                await channel.track(participant_id, metadata if isinstance(metadata, dict) else {})
                await self._reply(conn, req_id)
            elif msg_type == "untrack":
                channel = conn.channels.pop(room_id, None)
                if channel:
                    await channel.close()
                await self._reply(conn, req_id)
            else:
                await self._send_error(conn.websocket, code="UNKNOWN_TYPE", msg="Unsupported message type", req_id=req_id)
        except SyncError as exc:
            LOGGER.debug("Request %s on %s failed: %s", msg_type, room_id, exc)
            await self._send_error(conn.websocket, code=exc.code, msg=exc.msg, req_id=req_id)

    def _subscribe(self, conn: RelayConnection, room_id: str) -> None:
        if room_id in conn.subscriptions:
            return
        conn.subscriptions[room_id] = self.store.subscribe(
            room_id,
            lambda document: self._push(conn, "doc_update", {"room_id": room_id, "document": document}),
            lambda: self._push(conn, "doc_delete", {"room_id": room_id}),
        )

    def _channel(self, conn: RelayConnection, room_id: str) -> MemoryPresenceChannel:
        channel = conn.channels.get(room_id)
        if channel is None:
            channel = self.store.presence(room_id)
            channel.on_sync(
                lambda online: self._push(conn, "presence_sync", {"room_id": room_id, "online": sorted(online)})
            )
            conn.channels[room_id] = channel
        return channel

    async def _drop(self, conn: RelayConnection) -> None:
        self.connections.discard(conn)
        for unsubscribe in conn.subscriptions.values():
            unsubscribe()
        conn.subscriptions.clear()
        # Closing the channels is what tells the other clients this one is gone.
        for channel in list(conn.channels.values()):
            await channel.close()
        conn.channels.clear()
        LOGGER.info("Client disconnected (%s open)", len(self.connections))

    def _push(self, conn: RelayConnection, msg_type: str, payload: Dict[str, Any]) -> None:
        task = asyncio.ensure_future(self._send_json(conn.websocket, msg_type, payload))
        self._outbox.add(task)
        task.add_done_callback(self._outbox.discard)

    async def _reply(self, conn: RelayConnection, req_id: Any, payload: Optional[Dict[str, Any]] = None) -> None:
        body: Dict[str, Any] = {"req_id": req_id}
        body.update(payload or {})
        await self._send_json(conn.websocket, "ok", body)

    async def _send_json(self, websocket: Any, msg_type: str, payload: Dict[str, Any]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: Any, code: str, msg: str, req_id: Any = None) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg, "req_id": req_id})

    def _envelope(self, msg_type: str, payload: Dict[str, Any]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    def _decode(self, raw: Any) -> Dict[str, Any]:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return {}
        return message if isinstance(message, dict) else {}
