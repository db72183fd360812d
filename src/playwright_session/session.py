"""Browser session: one live context, its tabs and the observability buffers."""

import asyncio
import functools
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from playwright.async_api import (
    BrowserContext,
    ConsoleMessage,
    Download,
    Error as PlaywrightError,
    Frame,
    Page,
    Request,
    Response,
)

from playwright_session.annotations import AnnotationMap
from playwright_session.buffers import DownloadSlot, RingBuffer
from playwright_session.config import Config, config as default_config
from playwright_session.engine import EngineHandle
from playwright_session.errors import InvalidArgumentError, NotFoundError, TabIndexError

logger = logging.getLogger(__name__)


class BrowserSession:
    """Process-wide browsing session.

    Invariants:
        * ``len(tabs) <= config.max_tabs``; a tab opened past the limit evicts
          and closes ``tabs[0]`` (first opened, not least recently used).
        * ``active_tab`` is a member of ``tabs``, or ``None`` only while
          ``tabs`` is empty.
        * ``console_logs`` and ``network_errors`` are emptied whenever the
          context is recreated, never when a single tab closes.
    """

    def __init__(self, cfg: Optional[Config] = None, engine: Optional[EngineHandle] = None):
        self.config = cfg or default_config
        self.engine = engine or EngineHandle(self.config)
        self.context: Optional[BrowserContext] = None
        self.tabs: List[Page] = []
        self.active_tab: Optional[Page] = None
        self.storage_state_path: Optional[str] = None

        self.console_logs = RingBuffer(self.config.max_log_entries)
        self.network_errors = RingBuffer(self.config.max_log_entries)
        self.download = DownloadSlot()

        self._annotations: Dict[Page, AnnotationMap] = {}
        self._background: Set[asyncio.Task] = set()
        self._pending_downloads: Set[asyncio.Task] = set()

    # Lifecycle

    async def ensure(self) -> Page:
        """Make sure a context and an active tab exist and return the tab."""
        await self.engine.ensure()

        if self.context is None:
            await self._recreate_context()
        elif self.active_tab is None:
            await self._open_tab()
        return self.active_tab

    async def _recreate_context(
        self,
        storage_state: Optional[Dict[str, Any]] = None,
        storage_state_path: Optional[str] = None,
    ) -> None:
        # The old context stays live until its replacement exists.
        context = await self.engine.new_context(storage_state=storage_state)

        await self._close_context()
        self.console_logs.clear()
        self.network_errors.clear()
        self.tabs.clear()
        self._annotations.clear()
        self.active_tab = None

        self.context = context
        self.storage_state_path = storage_state_path

        # Registered before the first tab so target=_blank popups are tracked too.
        context.on("page", functools.partial(self._on_new_page, context))

        await self._open_tab()
        logger.info(
            "Browser context initialized%s",
            f" from storage state {storage_state_path}" if storage_state_path else "",
        )

    async def _open_tab(self) -> Page:
        page = await self.context.new_page()
        # The context "page" listener may already have registered this tab.
        self._track_tab(page)
        self.active_tab = page
        return page

    async def _close_context(self) -> None:
        context, self.context = self.context, None
        if context is None:
            return
        try:
            await context.close()
        except Exception as exc:
            logger.warning("Error closing browser context: %s", exc)

    async def close(self) -> None:
        """Tear down the context and the engine. Terminal."""
        logger.info("Shutting down browser...")
        await self.flush_background_tasks()
        await self._close_context()
        self.tabs.clear()
        self._annotations.clear()
        self.active_tab = None
        await self.engine.shutdown()

    async def flush_background_tasks(self) -> None:
        """Wait for pending tab-eviction and download-capture work."""
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # Tabs

    def _on_new_page(self, context: BrowserContext, page: Page) -> None:
        if context is not self.context:
            return
        if self._track_tab(page):
            logger.info("New tab opened: %s", page.url)

    def _track_tab(self, page: Page) -> bool:
        if page in self.tabs:
            return False

        page.set_default_timeout(self.config.timeout)
        self.tabs.append(page)
        self._attach_listeners(page)

        while len(self.tabs) > self.config.max_tabs:
            oldest = self.tabs.pop(0)
            self._annotations.pop(oldest, None)
            if oldest is self.active_tab:
                self.active_tab = page
            self._spawn(self._close_evicted(oldest))
        return True

    async def _close_evicted(self, page: Page) -> None:
        try:
            await page.close()
            logger.info("Closed oldest tab (limit: %d)", self.config.max_tabs)
        except Exception as exc:
            logger.debug("Failed to close evicted tab: %s", exc)

    def _on_tab_closed(self, page: Page) -> None:
        if page not in self.tabs:
            return
        self.tabs.remove(page)
        self._annotations.pop(page, None)
        if page is self.active_tab:
            self.active_tab = self.tabs[-1] if self.tabs else None
        logger.info("Tab closed, %d remaining", len(self.tabs))

    async def switch_tab(self, index: int) -> Page:
        if not 0 <= index < len(self.tabs):
            raise TabIndexError(index, len(self.tabs))
        page = self.tabs[index]
        self.active_tab = page
        await page.bring_to_front()
        return page

    def annotations_for(self, page: Page) -> AnnotationMap:
        annotations = self._annotations.get(page)
        if annotations is None:
            annotations = self._annotations[page] = AnnotationMap()
        return annotations

    # Storage state

    async def export_state(self, path: str) -> str:
        await self.ensure()
        await self.context.storage_state(path=path)
        return path

    async def load_state(self, path: str) -> Page:
        """Replace the context with one hydrated from an exported state file.

        The file is read and parsed before anything is torn down, so a missing
        or corrupt file leaves the current context, tabs and logs in place.
        """
        try:
            state = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise NotFoundError(f"State file {path} not found") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise InvalidArgumentError(f"Could not read state file {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise InvalidArgumentError(f"State file {path} is not valid JSON: {exc}") from exc
        if not isinstance(state, dict):
            raise InvalidArgumentError(f"State file {path} does not contain a storage state object")

        await self.engine.ensure()
        await self._recreate_context(storage_state=state, storage_state_path=path)
        return self.active_tab

    # Page listeners

    def _attach_listeners(self, page: Page) -> None:
        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)
        page.on("requestfailed", self._on_request_failed)
        page.on("response", self._on_response)
        page.on("download", self._on_download)
        page.on("framenavigated", functools.partial(self._on_frame_navigated, page))
        page.on("close", self._on_tab_closed)

    def _on_console(self, message: ConsoleMessage) -> None:
        if message.type == "error":
            self.console_logs.append(f"[CONSOLE ERROR] {message.text}")

    def _on_page_error(self, error: PlaywrightError) -> None:
        self.console_logs.append(f"[PAGE EXCEPTION] {error}")

    def _on_request_failed(self, request: Request) -> None:
        reason = request.failure or "Unknown error"
        self.network_errors.append(f"[NETWORK ERROR] {request.method} {request.url} - {reason}")

    def _on_response(self, response: Response) -> None:
        if response.status >= 400:
            self.network_errors.append(
                f"[HTTP {response.status}] {response.request.method} {response.url}"
            )

    def _on_frame_navigated(self, page: Page, frame: Frame) -> None:
        if frame.parent_frame is None:
            annotations = self._annotations.get(page)
            if annotations is not None:
                annotations.invalidate()

    def _on_download(self, download: Download) -> None:
        task = self._spawn(self._capture_download(download))
        self._pending_downloads.add(task)
        task.add_done_callback(self._pending_downloads.discard)

    async def wait_for_downloads(self, timeout_ms: int) -> None:
        """Wait up to ``timeout_ms`` for in-flight download captures to land.

        Captures still running after the wait are left alone, not cancelled.
        """
        pending = [task for task in self._pending_downloads if not task.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout_ms / 1000)

    async def _capture_download(self, download: Download) -> None:
        try:
            filename = download.suggested_filename
            path = await download.path()
            content = Path(path).read_bytes()
            self.download.store(filename, content)
            logger.info("File %s captured in memory (%d bytes)", filename, len(content))
        except Exception as exc:
            logger.warning("Failed to intercept download: %s", exc)
            self.console_logs.append(f"[DOWNLOAD ERROR] Failed to intercept file: {exc}")

        try:
            await download.delete()
        except Exception as exc:
            logger.debug("Failed to delete downloaded file: %s", exc)
