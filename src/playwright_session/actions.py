"""Page-scoped actions exposed to the tool-dispatch layer.

Every action ensures the session first, runs against the active tab with a
bounded timeout and reports policy, not-found and timeout conditions as a
failed :class:`ActionResult` instead of raising. Only engine-level failures
(launch errors, a disconnected browser) escape.
"""

import asyncio
import base64
import functools
import json
import logging
from typing import Any, Awaitable, Dict, List, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel

from playwright_session import scripts
from playwright_session.annotations import dispose_handles
from playwright_session.config import Config
from playwright_session.errors import (
    ActionTimeoutError,
    AnnotationNotFoundError,
    EngineError,
    InvalidArgumentError,
    NoDownloadError,
    SessionError,
)
from playwright_session.policy import NavigationPolicy
from playwright_session.session import BrowserSession

logger = logging.getLogger(__name__)

DEFAULT_SCROLL_PIXELS = 500


class ActionResult(BaseModel):
    """Outcome of a single action."""

    success: bool
    action: str
    text: Optional[str] = None
    image: Optional[str] = None  # base64 encoded PNG
    mime_type: str = "image/png"
    error: Optional[str] = None
    error_kind: Optional[str] = None


def _ok(action: str, text: Optional[str] = None, image: Optional[bytes] = None) -> ActionResult:
    encoded = base64.b64encode(image).decode("utf-8") if image is not None else None
    return ActionResult(success=True, action=action, text=text, image=encoded)


def _failure(action: str, message: str, kind: str) -> ActionResult:
    logger.info("Action %s failed (%s): %s", action, kind, message)
    return ActionResult(
        success=False,
        action=action,
        error=f"{action} failed: {message}",
        error_kind=kind,
    )


def _require_text(name: str, value: Any, allow_empty: bool = False) -> str:
    if value is None:
        raise InvalidArgumentError(f"Missing required argument '{name}'")
    text = str(value)
    if not text and not allow_empty:
        raise InvalidArgumentError(f"Argument '{name}' must not be empty")
    return text


def _require_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise InvalidArgumentError(f"Argument '{name}' must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidArgumentError(f"Argument '{name}' must be an integer, got {value!r}")


def _require_number(name: str, value: Any) -> Union[int, float]:
    if isinstance(value, bool) or value is None:
        raise InvalidArgumentError(f"Argument '{name}' must be a number, got {value!r}")
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Argument '{name}' must be a number, got {value!r}")
    return int(number) if number.is_integer() else number


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def action(name: str):
    """Wrap a façade method with session setup and failure translation.

    The wrapped method receives the active tab as its first argument after
    ``self``. Session setup runs outside the translation so launch failures
    reach the caller unchanged.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: "BrowserActions", *args, **kwargs) -> ActionResult:
            page = await self.session.ensure()
            try:
                return await func(self, page, *args, **kwargs)
            except asyncio.CancelledError:
                raise
            except EngineError:
                raise
            except SessionError as exc:
                return _failure(name, str(exc), exc.kind)
            except PlaywrightTimeoutError as exc:
                return _failure(name, exc.message, "timeout")
            except PlaywrightError as exc:
                if not self.session.engine.is_connected():
                    raise EngineError(f"Browser disconnected during {name}: {exc.message}", exc) from exc
                return _failure(name, exc.message, "action")
            except (OSError, ValueError) as exc:
                # File I/O done by the client itself, e.g. writing storage state.
                return _failure(name, str(exc), "action")

        wrapper.action_name = name
        return wrapper

    return decorator


class BrowserActions:
    """Action façade bound to one :class:`BrowserSession`."""

    def __init__(
        self,
        session: BrowserSession,
        cfg: Optional[Config] = None,
        policy: Optional[NavigationPolicy] = None,
    ):
        self.session = session
        self.config = cfg or session.config
        self.policy = policy or NavigationPolicy(self.config.allowed_hosts)

    async def _bounded(self, awaitable: Awaitable[Any], timeout_ms: Optional[int] = None) -> Any:
        timeout_ms = timeout_ms or self.config.action_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise ActionTimeoutError(timeout_ms)

    # Navigation and interaction

    @action("navigate")
    async def navigate(self, page: Page, url: Any) -> ActionResult:
        url = _require_text("url", url)
        self.policy.check(url)
        await page.goto(url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout)
        title = await page.title()
        return _ok("navigate", f"Navigation complete. URL: {page.url}, Title: {title}")

    @action("click")
    async def click(self, page: Page, selector: Any) -> ActionResult:
        selector = _require_text("selector", selector)
        await page.click(selector, timeout=self.config.action_timeout)
        return _ok("click", f"Clicked element matching '{selector}'.")

    @action("fill")
    async def fill(self, page: Page, selector: Any, value: Any) -> ActionResult:
        selector = _require_text("selector", selector)
        value = _require_text("value", value, allow_empty=True)
        await page.fill(selector, value, timeout=self.config.action_timeout)
        return _ok("fill", f"Filled element matching '{selector}'.")

    @action("scroll")
    async def scroll(self, page: Page, pixels: Any = DEFAULT_SCROLL_PIXELS) -> ActionResult:
        if pixels is None:
            pixels = DEFAULT_SCROLL_PIXELS
        pixels = _require_number("pixels", pixels)
        await self._bounded(page.evaluate(scripts.SCROLL_SCRIPT, pixels))
        return _ok("scroll", f"Scrolled by {pixels} pixels.")

    @action("hover")
    async def hover(self, page: Page, selector: Any) -> ActionResult:
        selector = _require_text("selector", selector)
        await page.hover(selector, timeout=self.config.short_timeout)
        return _ok("hover", f"Hovered over element matching '{selector}'.")

    @action("press_key")
    async def press_key(self, page: Page, selector: Any, key: Any) -> ActionResult:
        selector = _require_text("selector", selector)
        key = _require_text("key", key)
        await page.press(selector, key, timeout=self.config.short_timeout)
        return _ok("press_key", f"Pressed key '{key}' on element matching '{selector}'.")

    # Inspection

    @action("get_dom")
    async def get_dom(self, page: Page) -> ActionResult:
        outline = await self._bounded(page.evaluate(scripts.COMPACT_DOM_SCRIPT))
        return _ok("get_dom", outline or "The DOM is empty or could not be extracted.")

    @action("screenshot")
    async def screenshot(self, page: Page) -> ActionResult:
        data = await page.screenshot(type="png", full_page=False, timeout=self.config.action_timeout)
        return _ok("screenshot", image=data)

    @action("evaluate_js")
    async def evaluate_js(self, page: Page, code: Any) -> ActionResult:
        code = _require_text("code", code)
        result = await self._bounded(page.evaluate(code))
        return _ok("evaluate_js", f"Execution result:\n{_stringify(result)}")

    # Annotation

    @action("annotate")
    async def annotate(self, page: Page) -> ActionResult:
        annotations = self.session.annotations_for(page)
        labelled = await self._bounded(
            page.evaluate_handle(
                scripts.ANNOTATE_SCRIPT,
                [scripts.INTERACTIVE_SELECTOR, scripts.ANNOTATION_CLASS],
            )
        )
        try:
            properties = await labelled.get_properties()
            handles = {}
            for key, prop in properties.items():
                if not key.isdigit():
                    continue
                element = prop.as_element()
                if element is not None:
                    handles[int(key) + 1] = element
        finally:
            await labelled.dispose()
        await dispose_handles(annotations.replace(handles))

        await asyncio.sleep(self.config.annotate_settle_ms / 1000)
        data = await page.screenshot(type="png", full_page=True, timeout=self.config.action_timeout)
        return ActionResult(
            success=True,
            action="annotate",
            image=base64.b64encode(data).decode("utf-8"),
            text=(
                f"Annotated {len(handles)} interactive elements. "
                "Use the number shown on an element with click_by_id."
            ),
        )

    @action("click_by_id")
    async def click_by_id(self, page: Page, element_id: Any) -> ActionResult:
        element_id = _require_int("id", element_id)
        annotations = self.session.annotations_for(page)
        element = annotations.get(element_id)
        if element is None:
            raise AnnotationNotFoundError(element_id)

        await self._bounded(page.evaluate(scripts.REMOVE_ANNOTATIONS_SCRIPT, scripts.ANNOTATION_CLASS))
        connected = await self._bounded(element.evaluate(scripts.IS_CONNECTED_SCRIPT))
        if not connected:
            await dispose_handles(annotations.invalidate())
            raise AnnotationNotFoundError(element_id)
        await self._bounded(element.evaluate(scripts.CLICK_ELEMENT_SCRIPT))
        return _ok("click_by_id", f"Clicked element {element_id}.")

    # Storage state

    @action("export_state")
    async def export_state(self, page: Page, filename: Any) -> ActionResult:
        filename = _require_text("filename", filename)
        await self.session.export_state(filename)
        return _ok("export_state", f"Browser state exported to {filename}")

    @action("load_state")
    async def load_state(self, page: Page, filename: Any) -> ActionResult:
        filename = _require_text("filename", filename)
        await self.session.load_state(filename)
        return _ok(
            "load_state",
            f"Browser state loaded from {filename}. A new browser context is now active.",
        )

    # Buffers and downloads

    @action("read_downloaded_file")
    async def read_downloaded_file(self, page: Page) -> ActionResult:
        await self.session.wait_for_downloads(self.config.action_timeout)
        downloaded = self.session.download.get()
        if downloaded is None:
            raise NoDownloadError()
        return _ok(
            "read_downloaded_file",
            f"[FILE NAME]: {downloaded.filename}\n--- CONTENT ---\n"
            f"{downloaded.as_text()}\n---------------",
        )

    @action("get_network_errors")
    async def get_network_errors(self, page: Page) -> ActionResult:
        errors = self.session.network_errors
        return _ok("get_network_errors", errors.render() if errors else "No network errors detected.")

    @action("get_console_logs")
    async def get_console_logs(self, page: Page) -> ActionResult:
        logs = self.session.console_logs
        return _ok("get_console_logs", logs.render() if logs else "No console errors detected.")

    # Tabs

    @action("switch_tab")
    async def switch_tab(self, page: Page, index: Any) -> ActionResult:
        index = _require_int("index", index)
        page = await self.session.switch_tab(index)
        title = await page.title()
        return _ok("switch_tab", f"Switched to tab {index}. Active URL: {page.url}, Title: {title}")

    @action("list_tabs")
    async def list_tabs(self, page: Page) -> ActionResult:
        lines: List[str] = []
        for index, tab in enumerate(self.session.tabs):
            marker = " (active)" if tab is self.session.active_tab else ""
            lines.append(f"[{index}] {tab.url}{marker}")
        return _ok("list_tabs", "\n".join(lines) if lines else "No tabs open.")

    async def dispatch(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ActionResult:
        """Run an action by name with a flat argument record.

        Missing arguments are passed as ``None`` and rejected by the action's
        own validation; unknown keys are ignored.
        """
        params = ACTION_ARGUMENTS.get(name)
        if params is None:
            return _failure(name, f"Unknown action '{name}'", "invalid_argument")
        arguments = arguments or {}
        method = getattr(self, name)
        return await method(**{param: arguments.get(key) for key, param in params.items()})


# Action name -> {argument key: method parameter}
ACTION_ARGUMENTS: Dict[str, Dict[str, str]] = {
    "navigate": {"url": "url"},
    "click": {"selector": "selector"},
    "fill": {"selector": "selector", "value": "value"},
    "get_dom": {},
    "screenshot": {},
    "evaluate_js": {"code": "code"},
    "annotate": {},
    "click_by_id": {"id": "element_id"},
    "export_state": {"filename": "filename"},
    "load_state": {"filename": "filename"},
    "read_downloaded_file": {},
    "scroll": {"pixels": "pixels"},
    "hover": {"selector": "selector"},
    "press_key": {"selector": "selector", "key": "key"},
    "get_network_errors": {},
    "get_console_logs": {},
    "switch_tab": {"index": "index"},
    "list_tabs": {},
}
