from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TimingConfig:
    # All durations in seconds.
    reveal_interval: float = 1.5
    hakim_display_delay: float = 3.0
    start_delay: float = 1.5
    initial_deal_delay: float = 1.0
    remainder_deal_delay: float = 0.8
    trick_resolution_delay: float = 2.0
    poll_interval: float = 3.0
    lease_ttl: float = 5.0
    host_tick: float = 1.0
    max_attempts: int = 3
    # How long a lobby seat is held for someone who never shows up online.
    lobby_grace: float = 30.0
