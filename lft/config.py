from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .protocol import (
    BROADCAST_ADDRESS,
    BROADCAST_ATTEMPTS,
    BROADCAST_INTERVAL,
    BUFFER_SIZE,
    DEFAULT_PORT,
    DISCOVERY_PORT,
    DISCOVERY_RESPONSE_PORT,
    IO_TIMEOUT,
    RESPONDER_POLL,
    TIMEOUT,
)

DEFAULT_UPDATE_INTERVAL: float = 0.2    # seconds between accepted stats updates
DEFAULT_SPEED_SAMPLES: int = 10
DEFAULT_EVENT_CAPACITY: int = 256


@dataclass(slots=True)
class Settings:
    transfer_port: int = DEFAULT_PORT
    discovery_port: int = DISCOVERY_PORT
    response_port: int = DISCOVERY_RESPONSE_PORT
    broadcast_address: str = BROADCAST_ADDRESS
    local_ip: Optional[str] = None      # None → auto-detect
    timeout: float = TIMEOUT
    accept_timeout: Optional[float] = None  # None → 5 × timeout
    io_timeout: float = IO_TIMEOUT
    responder_poll: float = RESPONDER_POLL
    broadcast_attempts: int = BROADCAST_ATTEMPTS
    broadcast_interval: float = BROADCAST_INTERVAL
    buffer_size: int = BUFFER_SIZE
    update_interval: float = DEFAULT_UPDATE_INTERVAL
    speed_samples: int = DEFAULT_SPEED_SAMPLES
    dest_dir: str = "."
    event_capacity: int = DEFAULT_EVENT_CAPACITY

    @property
    def listen_timeout(self) -> float:
        if self.accept_timeout is not None:
            return self.accept_timeout
        return self.timeout * 5
