#!/usr/bin/env python3
"""
Auto-playing Hokm participant.

Usage:
    python -m relay --port 8766
    python sample_player.py --name Sara --url ws://127.0.0.1:8766 --create --room 123456
    python sample_player.py --name Omid --url ws://127.0.0.1:8766 --room 123456

Without --room the player looks for an open public room and creates one when
there is none. The player picks hokm with `hokm.strategy.choose_hokm` and
plays with `hokm.strategy.choose_card`; replace those to try other strategies.
Whoever holds the room's host lease also drives the timed transitions, so a
table of sample players runs a whole match on its own.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Set

from hokm.cards import cards_to_labels, sort_hand
from hokm.models import GameState, Phase
from hokm.strategy import choose_card, choose_hokm
from hokm.tricks import IllegalPlay
from relay.remote import RemoteStore
from sync.client import GameClient
from sync.config import TimingConfig
from sync.errors import RoomNotFound, SyncError

LOGGER = logging.getLogger("hokm_player")
STREAM_HANDLER = logging.StreamHandler()
STREAM_HANDLER.setFormatter(logging.Formatter("%(message)s"))
if not LOGGER.handlers:
    LOGGER.addHandler(STREAM_HANDLER)
LOGGER.propagate = False


class AutoPlayer:
    """Reacts to room updates: announces hokm as hakim, plays when it is our turn."""

    def __init__(self, client: GameClient, think: float = 0.5) -> None:
        self.client = client
        self.think = think
        self.done = asyncio.Event()
        self._busy = False
        self._tasks: Set[asyncio.Task] = set()
        self._last_log: Optional[str] = None

    def on_state(self, state: GameState) -> None:
        self._echo_logs(state)
        if state.phase == Phase.MATCH_END:
            LOGGER.info("[match] final score %s-%s", state.scores.get(1, 0), state.scores.get(2, 0))
            self.done.set()
            return
        if self._busy:
            return
        me = self.client.player_id
        if state.phase == Phase.HAKIM_CHOOSING_SUIT and state.hakim_id == me and state.hokm is None:
            self._spawn(self._announce_hokm(state))
        elif state.phase == Phase.PLAYING and state.current_turn_player_id == me and not state.is_trick_full():
            self._spawn(self._play(state))

    async def _announce_hokm(self, state: GameState) -> None:
        player = state.find_player(self.client.player_id or "")
        if player is None:
            return
        await asyncio.sleep(self.think)
        suit = choose_hokm(player.hand)
        LOGGER.info("[hokm] hand %s -> %s", " ".join(cards_to_labels(sort_hand(player.hand))), suit.value)
        await self.client.set_hokm(suit)

    async def _play(self, state: GameState) -> None:
        player = state.find_player(self.client.player_id or "")
        if player is None or not player.hand:
            return
        await asyncio.sleep(self.think)
        card = choose_card(player.hand, state.table_cards, state.hokm, player.id)
        LOGGER.debug("[play] %s", card.label)
        try:
            await self.client.play_card(card)
        except IllegalPlay as exc:
            LOGGER.warning("[play] rejected %s: %s", card.label, exc)

    def _echo_logs(self, state: GameState) -> None:
        logs = state.logs
        start = 0
        if self._last_log is not None and self._last_log in logs:
            start = len(logs) - logs[::-1].index(self._last_log)
        for entry in logs[start:]:
            LOGGER.info("  %s", entry)
        if logs:
            self._last_log = logs[-1]

    def _spawn(self, job) -> None:
        self._busy = True

        async def runner() -> None:
            try:
                await job
            except SyncError as exc:
                LOGGER.warning("[error] %s", exc)
            finally:
                self._busy = False

        task = asyncio.ensure_future(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


async def run_player(
    url: str,
    name: str,
    mode: str = "4p",
    room: Optional[str] = None,
    create: bool = False,
    think: float = 0.5,
) -> None:
    store = RemoteStore(url)
    await store.connect()
    client = GameClient(store, name, TimingConfig())
    player = AutoPlayer(client, think=think)
    client.on_state = player.on_state
    client.on_closed = lambda room_id: player.done.set()
    try:
        if create:
            session = await client.create_room(mode, room_id=room)
        else:
            room_id = room or await client.find_active_room()
            if room_id is None:
                LOGGER.info("[lobby] no open room; creating a %s room", mode)
                session = await client.create_room(mode)
            else:
                session = await client.join_room(room_id)
        LOGGER.info("[connect] %s as %s in room %s", url, name, session.room_id)
        await client.connect()
        await player.done.wait()
    except RoomNotFound:
        LOGGER.error("Room %s does not exist", room)
    finally:
        if client.session is not None:
            await client.leave_room()
        await store.close()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sample Hokm player")
    parser.add_argument("--name", required=True, help="Display name at the table")
    parser.add_argument("--url", default="ws://127.0.0.1:8766", help="Relay WebSocket URL")
    parser.add_argument("--mode", choices=["2p", "4p"], default="4p")
    parser.add_argument("--room", help="Room id to join (or to create with --create)")
    parser.add_argument("--create", action="store_true", help="Create the room instead of joining")
    parser.add_argument("--think", type=float, default=0.5, help="Seconds to wait before each move")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.WARNING)
    LOGGER.setLevel(getattr(logging, args.log_level.upper(), logging.INFO))
    asyncio.run(run_player(args.url, args.name, args.mode, args.room, args.create, args.think))


if __name__ == "__main__":
    main()
