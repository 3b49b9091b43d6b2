"""
Connectivity Monitor
====================
Holds the host's online/offline flag.

The flag changes through :meth:`ConnectivityMonitor.set_online` (events
pushed by the client) or, when ``interval`` is positive, through a background
thread that probes ``check_url`` with ``requests``. Listeners are notified on
every transition; in-flight requests are never cancelled.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

import requests

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Thread-safe online/offline flag with change listeners."""

    def __init__(
        self,
        initial_online: bool = True,
        check_url: str = "https://www.gstatic.com/generate_204",
        interval: int = 0,
        timeout: float = 3.0,
    ):
        self._online = initial_online
        self._check_url = check_url
        self._interval = interval
        self._timeout = timeout
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def set_online(self, online: bool) -> bool:
        """
        Record a connectivity event.

        Returns:
            True if the flag changed
        """
        with self._lock:
            changed = self._online != online
            self._online = online
            listeners = list(self._listeners) if changed else []

        if changed:
            logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in listeners:
            try:
                listener(online)
            except Exception as exc:
                logger.error("Connectivity listener failed: %s", exc, exc_info=True)
        return changed

    def check(self) -> bool:
        """Probe ``check_url`` once and record the result."""
        try:
            response = requests.head(self._check_url, timeout=self._timeout, allow_redirects=True)
            online = response.status_code < 500
        except requests.RequestException as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            online = False
        self.set_online(online)
        return online

    # -- background polling -------------------------------------------------

    def start(self) -> None:
        """Start polling when ``interval`` is positive."""
        if self._interval <= 0 or (self._thread is not None and self._thread.is_alive()):
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="connectivity-monitor", daemon=True)
        self._thread.start()
        logger.info("Connectivity monitor polling %s every %ss", self._check_url, self._interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self._timeout + 1)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.check()
            self._stop_event.wait(self._interval)
