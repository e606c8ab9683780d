from __future__ import annotations

import logging
from typing import Callable, Optional

from hokm.models import GameState
from hokm.serialization import from_document, to_document

from .errors import Conflict, StaleWrite
from .store import DocumentStore

LOGGER = logging.getLogger("hokm_sync")

Modifier = Callable[[GameState], Optional[GameState]]

# SyncCoordinator is the only code that writes room documents. Rules code
# never touches the store; it is handed a freshly decoded GameState inside
# perform() and returns the new state, or None to abort.


class SyncCoordinator:
    def __init__(self, store: DocumentStore, room_id: str, max_attempts: int = 3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.room_id = room_id
        self.max_attempts = max_attempts

    async def fetch(self) -> GameState:
        return from_document(await self.store.get(self.room_id))

    async def perform(self, modifier: Modifier) -> Optional[GameState]:
        """Read, modify and compare-and-swap the room document.

        Returns the committed state, or None when the modifier aborted. A
        concurrent writer between the read and the write makes the whole
        cycle run again; after ``max_attempts`` lost races Conflict is raised.
        Exceptions from the modifier propagate and nothing is written.
        """
        for attempt in range(1, self.max_attempts + 1):
            state = await self.fetch()
            base_version = state.version
            updated = modifier(state)
            if updated is None:
                LOGGER.debug("Transaction on %s aborted at version %s", self.room_id, base_version)
                return None
            updated.version = base_version + 1
            try:
                await self.store.put(self.room_id, to_document(updated), expected_version=base_version)
            except StaleWrite:
                LOGGER.info(
                    "Write race on %s at version %s (attempt %s/%s)",
                    self.room_id,
                    base_version,
                    attempt,
                    self.max_attempts,
                )
                continue
            return updated
        raise Conflict(f"{self.room_id} kept changing underneath {self.max_attempts} attempts")

    async def broadcast(self, state: GameState) -> None:
        """Write a locally computed state without a version check.

        Whatever landed since ``state`` was read is overwritten, but the
        version still moves past the stored one so subscribers holding a
        newer copy accept the write. A deleted room raises RoomNotFound.
        """
        current = await self.store.get(self.room_id)
        state.version = max(int(current.get("version") or 0), state.version) + 1
        await self.store.put(self.room_id, to_document(state))
        LOGGER.debug("Broadcast %s at version %s", self.room_id, state.version)

    async def delete(self) -> None:
        await self.store.delete(self.room_id)
