"""In-memory stand-ins for the Playwright objects the session manager drives.

They emit the same events (page, close, console, download, ...) so the
session and action code can be exercised without a browser binary.
"""

import asyncio
import inspect
import json
from collections import defaultdict
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from playwright_session import scripts
from playwright_session.actions import BrowserActions
from playwright_session.config import Config
from playwright_session.engine import EngineHandle
from playwright_session.session import BrowserSession

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


class FakeEmitter:
    def __init__(self):
        self._handlers = defaultdict(list)

    def on(self, event, handler):
        self._handlers[event].append(handler)

    async def emit(self, event, *args):
        for handler in list(self._handlers[event]):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result


class FakeFrame:
    def __init__(self, parent_frame=None):
        self.parent_frame = parent_frame


class FakeElement:
    def __init__(self, label: str):
        self.label = label
        self.connected = True
        self.clicks = 0
        self.disposed = False

    async def dispose(self):
        self.disposed = True

    async def evaluate(self, expression, arg=None):
        if expression == scripts.IS_CONNECTED_SCRIPT:
            return self.connected
        if expression == scripts.CLICK_ELEMENT_SCRIPT:
            self.clicks += 1
            return None
        raise AssertionError(f"unexpected element script: {expression}")


class FakeJSHandle:
    def __init__(self, element: Optional[FakeElement] = None, items: Optional[List[FakeElement]] = None):
        self._element = element
        self._items = items
        self.disposed = False

    def as_element(self):
        return self._element

    async def get_properties(self) -> Dict[str, "FakeJSHandle"]:
        properties = {str(index): FakeJSHandle(element=item) for index, item in enumerate(self._items or [])}
        properties["length"] = FakeJSHandle()
        return properties

    async def dispose(self):
        self.disposed = True


class FakePage(FakeEmitter):
    def __init__(self, context: "FakeContext"):
        super().__init__()
        self.context = context
        self.url = "about:blank"
        self.page_title = ""
        self.main_frame = FakeFrame()
        self.default_timeout = None
        self.closed = False
        self.fail_close = False
        self.brought_to_front = 0
        self.calls: List[tuple] = []
        self.missing_selectors: set = set()
        self.interactive: List[FakeElement] = []
        self.dom_outline: Optional[str] = "<body>\n  <button id=\"go\">Go</button>\n</body>"
        self.js_result: Any = None
        self.hang_evaluate = False
        self.badges_removed = 0

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    async def goto(self, url, wait_until=None, timeout=None):
        self.calls.append(("goto", url, wait_until, timeout))
        self.url = url
        self.page_title = f"Title of {url}"
        await self.emit("framenavigated", self.main_frame)

    async def title(self):
        return self.page_title

    async def _interact(self, name, selector, *args, timeout=None):
        self.calls.append((name, selector) + args + (timeout,))
        if selector in self.missing_selectors:
            raise PlaywrightTimeoutError(
                f"Timeout {timeout}ms exceeded.\nwaiting for locator(\"{selector}\")"
            )

    async def click(self, selector, timeout=None):
        await self._interact("click", selector, timeout=timeout)

    async def fill(self, selector, value, timeout=None):
        await self._interact("fill", selector, value, timeout=timeout)

    async def hover(self, selector, timeout=None):
        await self._interact("hover", selector, timeout=timeout)

    async def press(self, selector, key, timeout=None):
        await self._interact("press", selector, key, timeout=timeout)

    async def screenshot(self, type="png", full_page=False, timeout=None):
        self.calls.append(("screenshot", full_page, timeout))
        return PNG_BYTES

    async def evaluate(self, expression, arg=None):
        self.calls.append(("evaluate", expression, arg))
        if self.hang_evaluate:
            await asyncio.sleep(10)
        if expression == scripts.COMPACT_DOM_SCRIPT:
            return self.dom_outline
        if expression == scripts.REMOVE_ANNOTATIONS_SCRIPT:
            self.badges_removed += 1
            return None
        if expression == scripts.SCROLL_SCRIPT:
            return None
        return self.js_result

    async def evaluate_handle(self, expression, arg=None):
        self.calls.append(("evaluate_handle", expression, arg))
        return FakeJSHandle(items=list(self.interactive))

    async def bring_to_front(self):
        self.brought_to_front += 1

    async def close(self):
        if self.fail_close:
            raise PlaywrightError("Target page, context or browser has been closed")
        if self.closed:
            return
        self.closed = True
        await self.emit("close", self)


class FakeContext(FakeEmitter):
    def __init__(self, browser: "FakeBrowser", storage_state=None):
        super().__init__()
        self.browser = browser
        self.pages: List[FakePage] = []
        self.closed = False
        self.initial_state = storage_state
        self.cookies: List[Dict[str, Any]] = []
        if isinstance(storage_state, dict):
            self.cookies = list(storage_state.get("cookies", []))
        elif storage_state:
            self.cookies = json.loads(Path(storage_state).read_text())["cookies"]

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        await self.emit("page", page)
        return page

    async def open_popup(self) -> FakePage:
        """A tab opened by the page itself, e.g. a target=_blank link."""
        return await self.new_page()

    async def storage_state(self, path=None):
        state = {"cookies": self.cookies, "origins": []}
        if path:
            Path(path).write_text(json.dumps(state))
        return state

    async def close(self):
        self.closed = True
        for page in self.pages:
            if not page.closed:
                page.closed = True
                await page.emit("close", page)


class FakeBrowser:
    def __init__(self, launch_options: Dict[str, Any]):
        self.launch_options = launch_options
        self.contexts: List[FakeContext] = []
        self.connected = True
        self.closed = False
        self.context_error: Optional[Exception] = None

    async def new_context(self, **options) -> FakeContext:
        if self.context_error is not None:
            raise self.context_error
        context = FakeContext(self, storage_state=options.get("storage_state"))
        self.contexts.append(context)
        return context

    def is_connected(self):
        return self.connected

    async def close(self):
        self.closed = True
        self.connected = False


class FakeBrowserType:
    def __init__(self, owner: "FakePlaywright"):
        self.owner = owner

    async def launch(self, **options) -> FakeBrowser:
        self.owner.launches.append(options)
        if self.owner.launch_error is not None:
            raise self.owner.launch_error
        browser = FakeBrowser(options)
        self.owner.browsers.append(browser)
        return browser


class FakePlaywright:
    """Plays both ``async_playwright()`` and the started Playwright object."""

    def __init__(self):
        self.launches: List[Dict[str, Any]] = []
        self.browsers: List[FakeBrowser] = []
        self.launch_error: Optional[Exception] = None
        self.started = 0
        self.stopped = 0
        self.chromium = FakeBrowserType(self)
        self.firefox = FakeBrowserType(self)
        self.webkit = FakeBrowserType(self)

    def __call__(self):
        return self

    async def start(self):
        self.started += 1
        return self

    async def stop(self):
        self.stopped += 1


class FakeDownload:
    def __init__(
        self,
        filename: str,
        path: Optional[Path] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ):
        self.suggested_filename = filename
        self._path = path
        self._error = error
        self._delay = delay
        self.deleted = False

    async def path(self):
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._path

    async def delete(self):
        self.deleted = True
        if self._path is not None and self._path.exists():
            self._path.unlink()


def console_message(text: str, type: str = "error"):
    return SimpleNamespace(type=type, text=text)


def failed_request(url: str, method: str = "GET", failure: Optional[str] = "net::ERR_CONNECTION_REFUSED"):
    return SimpleNamespace(url=url, method=method, failure=failure)


def http_response(url: str, status: int, method: str = "GET"):
    return SimpleNamespace(url=url, status=status, request=SimpleNamespace(method=method))


@pytest.fixture
def cfg():
    return Config(
        allowed_hosts=["localhost", "127.0.0.1"],
        action_timeout=200,
        short_timeout=100,
        navigation_timeout=300,
        annotate_settle_ms=0,
    )


@pytest.fixture
def fake_playwright():
    return FakePlaywright()


@pytest.fixture
def engine(cfg, fake_playwright):
    return EngineHandle(cfg, playwright_factory=fake_playwright)


@pytest.fixture
def session(cfg, engine):
    return BrowserSession(cfg, engine)


@pytest.fixture
def actions(session, cfg):
    return BrowserActions(session, cfg)
