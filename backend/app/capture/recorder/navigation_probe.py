"""
Post-submit navigation probe.

A submit click is emitted immediately; the probe then watches the page for
a short window to learn whether the submit navigated (full page form) or
stayed put (AJAX form), and reports the answer once.
"""

import logging
from typing import Callable, Optional

from ..core.scheduler import CancellationToken, Scheduler
from ..dom.document import PageDocument
from ..dom.events import DomEventType

# Configure logging
logger = logging.getLogger(__name__)

ProbeCallback = Callable[[bool], None]


class NavigationProbe:
    """One-shot watch for a URL change or beforeunload."""

    def __init__(
        self,
        document: PageDocument,
        scheduler: Scheduler,
        window_ms: int,
        on_result: ProbeCallback,
        token: Optional[CancellationToken] = None,
    ):
        self.document = document
        self.scheduler = scheduler
        self.window_ms = window_ms
        self.on_result = on_result
        self.token = token
        self.url_before = document.url
        self.unload_seen = False
        self._task = None

    def start(self):
        self.document.add_event_listener(DomEventType.BEFOREUNLOAD.value, self._on_beforeunload)
        self._task = self.scheduler.call_later(self.window_ms, self._finish, self.token)
        logger.debug(f"Navigation probe started on {self.url_before}")

    def cancel(self):
        self.document.remove_event_listener(DomEventType.BEFOREUNLOAD.value, self._on_beforeunload)
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _on_beforeunload(self, event):
        self.unload_seen = True

    def _finish(self):
        self.document.remove_event_listener(DomEventType.BEFOREUNLOAD.value, self._on_beforeunload)
        self._task = None
        navigated = self.unload_seen or self.document.url != self.url_before
        logger.info(
            f"Navigation probe: {'navigated' if navigated else 'stayed on page'} "
            f"({'beforeunload' if self.unload_seen else 'url-comparison'})"
        )
        self.on_result(navigated)
