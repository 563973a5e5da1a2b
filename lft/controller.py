from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from .config import Settings
from .discovery import get_local_ip
from .errors import DiscoveryError, SessionBusyError, SetupError
from .events import (
    ROLE_RECEIVE,
    ROLE_SEND,
    EventChannel,
    OperationCompleted,
    StatsUpdated,
    StatusMessage,
)
from .session import ReceiveSession, SendSession
from .stats import StatsEstimator, Status, TransferStats
from .transfer import PathInfo, get_path_info

log = logging.getLogger("lft.controller")


class TransferController:
    """
    Entry point for callers: starts sessions, hands out stats snapshots.

    At most one send or receive runs at a time. Each runs in its own
    thread; progress and status reach observers through ``events``.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        self.events = EventChannel(self.settings.event_capacity)
        self.estimator = StatsEstimator(
            update_interval=self.settings.update_interval,
            max_samples=self.settings.speed_samples,
            on_update=self._publish_stats,
        )
        self._slot = threading.Lock()
        self._thread: threading.Thread | None = None
        self.last_error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._slot.locked()

    def start_send(self, path: str | Path) -> None:
        session = SendSession(path, self.settings, self.estimator, notify=self._status)
        self._start(ROLE_SEND, session.run)

    def start_receive(self) -> None:
        session = ReceiveSession(self.settings, self.estimator, notify=self._status)
        self._start(ROLE_RECEIVE, session.run)

    def restart_receive(self) -> None:
        self.start_receive()

    def get_stats(self) -> TransferStats:
        return self.estimator.snapshot()

    def get_path_info(self, path: str) -> PathInfo:
        return get_path_info(path)

    def local_ip(self) -> str:
        return self.settings.local_ip or get_local_ip()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the current session thread exits. Returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ------------------------------------------------------------------
    # Session task
    # ------------------------------------------------------------------

    def _start(self, role: str, target: Callable[[], None]) -> None:
        if not self._slot.acquire(blocking=False):
            raise SessionBusyError("A transfer is already in progress")
        try:
            self.last_error = None
            self._thread = threading.Thread(
                target=self._run, args=(role, target), daemon=True, name=f"lft-{role}"
            )
            self._thread.start()
        except BaseException:
            self._slot.release()
            raise

    def _run(self, role: str, target: Callable[[], None]) -> None:
        ok = False
        try:
            if role == ROLE_RECEIVE:
                self._status("Receiving...")
            target()
            ok = True
        except Exception as exc:
            self.last_error = exc
            self.estimator.set_status(Status.FAILED)
            self._status(self._describe(role, exc))
            log.error("%s failed: %s", role, exc, exc_info=log.isEnabledFor(logging.DEBUG))
        finally:
            self._slot.release()
            self.events.publish(OperationCompleted(
                role=role,
                ok=ok,
                error="" if self.last_error is None else str(self.last_error),
            ))

    @staticmethod
    def _describe(role: str, exc: Exception) -> str:
        if isinstance(exc, DiscoveryError):
            return f"Receiver discovery failed: {exc}"
        if isinstance(exc, SetupError):
            return str(exc)
        if isinstance(exc, OSError):
            return f"{role.capitalize()} I/O error: {exc}"
        return f"{role.capitalize()} failed: {exc}"

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _status(self, text: str) -> None:
        log.debug("status: %s", text)
        self.events.publish(StatusMessage(text))

    def _publish_stats(self, stats: TransferStats) -> None:
        self.events.publish(StatsUpdated(stats))
