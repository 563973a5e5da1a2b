from __future__ import annotations

import queue
from dataclasses import dataclass
from typing import Optional, Union

from .stats import TransferStats

ROLE_SEND = "send"
ROLE_RECEIVE = "receive"


@dataclass(frozen=True, slots=True)
class StatusMessage:
    text: str


@dataclass(frozen=True, slots=True)
class StatsUpdated:
    stats: TransferStats     # a private copy, never the live object


@dataclass(frozen=True, slots=True)
class OperationCompleted:
    role: str                # "send" or "receive"
    ok: bool
    error: str = ""


Event = Union[StatusMessage, StatsUpdated, OperationCompleted]


class EventChannel:
    """Bounded event queue. A full channel drops its oldest event instead of blocking."""

    def __init__(self, capacity: int = 256) -> None:
        self._queue: queue.Queue[Event] = queue.Queue(maxsize=capacity)
        self.dropped = 0

    def publish(self, event: Event) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or None if nothing arrived within *timeout*."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[Event]:
        events: list[Event] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events
