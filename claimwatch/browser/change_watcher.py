"""Content Change Watcher — forwards DOM mutations on the watched page to the event gate.

A ``MutationObserver`` injected into every document calls back into Python
through a page binding. Each callback becomes one content-change event with
a monotonic millisecond timestamp and the page hostname as its source.
"""

import asyncio
import time
from typing import Optional, Set
from urllib.parse import urlparse

from loguru import logger

from claimwatch.session.event_gate import EventGate

BINDING_NAME = "__claimwatchContentChanged"

OBSERVER_SCRIPT = """
(() => {
    if (window.__claimwatchObserver) return;
    const notify = () => {
        if (typeof window.%(binding)s === 'function') {
            window.%(binding)s().catch(() => {});
        }
    };
    const start = () => {
        const target = document.documentElement || document;
        window.__claimwatchObserver = new MutationObserver(notify);
        window.__claimwatchObserver.observe(target, {
            childList: true, subtree: true, characterData: true, attributes: true,
        });
        notify();
    };
    if (document.readyState === 'loading') {
        document.addEventListener('DOMContentLoaded', start, { once: true });
    } else {
        start();
    }
})();
""" % {"binding": BINDING_NAME}


class ContentChangeWatcher:
    """Bridge between page mutations and ``EventGate.accept``."""

    def __init__(self, page, gate: EventGate):
        self.page = page
        self.gate = gate
        self._tasks: Set[asyncio.Task] = set()
        self._installed = False
        self.events = 0

    async def start(self):
        """Expose the binding and install the observer (idempotent)."""
        if self._installed:
            return
        await self.page.expose_binding(BINDING_NAME, self._on_change)
        await self.page.add_init_script(OBSERVER_SCRIPT)
        try:
            await self.page.evaluate(OBSERVER_SCRIPT)
        except Exception as exc:
            logger.debug(f"[ChangeWatcher] Observer not installed on current document yet: {exc}")
        self._installed = True
        logger.info("[ChangeWatcher] Watching page for content changes")

    async def stop(self):
        """Wait for in-flight passes to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    def _source_app(self, source) -> Optional[str]:
        page = source.get("page") if isinstance(source, dict) else None
        url = (page or self.page).url
        return urlparse(url).hostname

    async def _on_change(self, source, *args):
        """Binding callback: hand the event to the gate without blocking the page."""
        self.events += 1
        task = asyncio.create_task(
            self.gate.accept(time.monotonic() * 1000, self._source_app(source))
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
