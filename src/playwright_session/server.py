"""Playwright Session MCP Server - tool registration and entry point."""

import logging
import os
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import List, Optional, Union

from dotenv import load_dotenv
from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ImageContent, TextContent

from playwright_session.actions import ActionResult, BrowserActions
from playwright_session.config import config, parse_allowed_hosts
from playwright_session.engine import SUPPORTED_BROWSERS
from playwright_session.session import BrowserSession


logger = logging.getLogger(__name__)

ToolContent = List[Union[TextContent, ImageContent]]


@asynccontextmanager
async def session_lifespan(server: FastMCP) -> AsyncIterator[BrowserActions]:
    """Own the browser session for the server's lifetime.

    Nothing is launched here; the browser starts on the first tool call.
    """
    session = BrowserSession(config)
    actions = BrowserActions(session, config)
    logger.info("Navigation allow-list: %s", ", ".join(actions.policy.allowed_hosts))
    try:
        yield actions
    finally:
        await session.close()


mcp = FastMCP("Playwright Session Server", lifespan=session_lifespan)


def get_actions(ctx: Context) -> BrowserActions:
    """Get the action façade from context."""
    return ctx.request_context.lifespan_context


def to_content(result: ActionResult) -> ToolContent:
    """Convert an action result into MCP content, raising on failure."""
    if not result.success:
        raise ToolError(result.error or f"{result.action} failed")

    content: ToolContent = []
    if result.image is not None:
        content.append(ImageContent(type="image", data=result.image, mimeType=result.mime_type))
    if result.text is not None:
        content.append(TextContent(type="text", text=result.text))
    return content


async def _run_action(ctx: Context, name: str, **arguments) -> ToolContent:
    actions = get_actions(ctx)
    try:
        result = await actions.dispatch(name, arguments)
    except Exception:
        logger.exception("Browser engine failure during %s", name)
        raise
    return to_content(result)


# Navigation Tools
@mcp.tool(structured_output=False)
async def navigate(url: str, ctx: Context) -> ToolContent:
    """Navigate the active tab to a URL and wait for DOM content loaded.

    Only hosts on the configured allow-list (default: localhost, 127.0.0.1)
    and their subdomains can be reached.

    Args:
        url: The URL to navigate to (e.g., "http://localhost:8080/login")
        ctx: MCP context containing the browser session

    Returns:
        Text with the final URL and page title
    """
    return await _run_action(ctx, "navigate", url=url)


@mcp.tool(structured_output=False)
async def switch_tab(index: int, ctx: Context) -> ToolContent:
    """Switch the active tab. At most 3 tabs are kept open at once.

    Args:
        index: 0-based index of the tab to switch to (e.g. 0, 1, 2)
        ctx: MCP context containing the browser session

    Returns:
        Text with the URL and title of the newly active tab
    """
    return await _run_action(ctx, "switch_tab", index=index)


@mcp.tool(structured_output=False)
async def list_tabs(ctx: Context) -> ToolContent:
    """List open tabs with their index and URL, marking the active one."""
    return await _run_action(ctx, "list_tabs")


# DOM Interaction Tools
@mcp.tool(structured_output=False)
async def click(selector: str, ctx: Context) -> ToolContent:
    """Click the first element matching a Playwright/CSS selector.

    Args:
        selector: Playwright selector (e.g., "#submit", "text=Sign in")
        ctx: MCP context containing the browser session
    """
    return await _run_action(ctx, "click", selector=selector)


@mcp.tool(structured_output=False)
async def fill(selector: str, value: str, ctx: Context) -> ToolContent:
    """Fill a form element, replacing its current value.

    Args:
        selector: Playwright selector for the input element
        value: Text to fill in
        ctx: MCP context containing the browser session
    """
    return await _run_action(ctx, "fill", selector=selector, value=value)


@mcp.tool(structured_output=False)
async def hover(selector: str, ctx: Context) -> ToolContent:
    """Hover over an element. Useful for dropdown menus.

    Args:
        selector: Playwright selector for the element to hover over
        ctx: MCP context containing the browser session
    """
    return await _run_action(ctx, "hover", selector=selector)


@mcp.tool(structured_output=False)
async def press_key(selector: str, key: str, ctx: Context) -> ToolContent:
    """Press a keyboard key on an element.

    Args:
        selector: Playwright selector for the element to target
        key: Key name, e.g. "Enter", "Escape", "ArrowDown"
        ctx: MCP context containing the browser session
    """
    return await _run_action(ctx, "press_key", selector=selector, key=key)


@mcp.tool(structured_output=False)
async def scroll(ctx: Context, pixels: Optional[Union[int, float]] = None) -> ToolContent:
    """Scroll the page vertically.

    Args:
        ctx: MCP context containing the browser session
        pixels: Amount to scroll (default 500). Positive scrolls down, negative up.
    """
    return await _run_action(ctx, "scroll", pixels=pixels)


# Inspection Tools
@mcp.tool(structured_output=False)
async def get_dom(ctx: Context) -> ToolContent:
    """Return a compact outline of the page: text plus interactive elements only.

    Scripts, styles, SVG and other non-visual nodes are dropped; interactive
    elements keep id, name, type, placeholder, aria-label and role attributes.
    """
    return await _run_action(ctx, "get_dom")


@mcp.tool(structured_output=False)
async def screenshot(ctx: Context) -> ToolContent:
    """Capture the current viewport as a PNG image."""
    return await _run_action(ctx, "screenshot")


@mcp.tool(structured_output=False)
async def evaluate_js(code: str, ctx: Context) -> ToolContent:
    """Evaluate JavaScript in the active tab and return the result.

    Args:
        code: JavaScript expression or function source (e.g., "document.title")
        ctx: MCP context containing the browser session

    Returns:
        Text with the result; objects are rendered as indented JSON
    """
    return await _run_action(ctx, "evaluate_js", code=code)


@mcp.tool(structured_output=False)
async def annotate(ctx: Context) -> ToolContent:
    """Number every visible interactive element and return a full-page screenshot.

    Use the numbers with click_by_id. The numbering is discarded when the tab
    navigates or annotate is called again.
    """
    return await _run_action(ctx, "annotate")


@mcp.tool(structured_output=False)
async def click_by_id(id: int, ctx: Context) -> ToolContent:
    """Click an element using the number assigned by the last annotate call.

    Args:
        id: The number shown on the element in the annotation screenshot
        ctx: MCP context containing the browser session
    """
    return await _run_action(ctx, "click_by_id", id=id)


# Storage State Tools
@mcp.tool(structured_output=False)
async def export_state(filename: str, ctx: Context) -> ToolContent:
    """Export cookies and local storage to a JSON file for later restore.

    Args:
        filename: Path of the file to write, e.g. "state.json"
        ctx: MCP context containing the browser session
    """
    return await _run_action(ctx, "export_state", filename=filename)


@mcp.tool(structured_output=False)
async def load_state(filename: str, ctx: Context) -> ToolContent:
    """Replace the browser context with one restored from an exported state file.

    All open tabs are closed and the console/network logs are cleared.

    Args:
        filename: Path of a file previously written by export_state
        ctx: MCP context containing the browser session
    """
    return await _run_action(ctx, "load_state", filename=filename)


# Monitoring Tools
@mcp.tool(structured_output=False)
async def read_downloaded_file(ctx: Context) -> ToolContent:
    """Return the last file downloaded by the browser, decoded as text."""
    return await _run_action(ctx, "read_downloaded_file")


@mcp.tool(structured_output=False)
async def get_network_errors(ctx: Context) -> ToolContent:
    """Return the last 50 failed requests and HTTP responses with status >= 400."""
    return await _run_action(ctx, "get_network_errors")


@mcp.tool(structured_output=False)
async def get_console_logs(ctx: Context) -> ToolContent:
    """Return the last 50 console errors and uncaught page exceptions."""
    return await _run_action(ctx, "get_console_logs")


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt


def main():
    """Main entry point."""
    import argparse

    load_dotenv()

    parser = argparse.ArgumentParser(description="Playwright Session MCP Server")
    parser.add_argument(
        "transport", nargs="?", default="stdio", choices=["stdio", "http"], help="Transport type"
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host for HTTP transport")
    parser.add_argument(
        "--port", type=int, default=8000, help="Port for HTTP transport"
    )
    parser.add_argument("--headed", action="store_true", help="Run in headed mode")
    parser.add_argument(
        "--browser",
        choices=list(SUPPORTED_BROWSERS),
        default="chromium",
        help="Browser type",
    )
    parser.add_argument(
        "--channel",
        help="Browser channel (e.g. chrome, msedge) instead of bundled Chromium",
    )
    parser.add_argument(
        "--timeout", type=int, default=config.timeout, help="Default page timeout (ms)"
    )
    parser.add_argument(
        "--navigation-timeout",
        type=int,
        default=config.navigation_timeout,
        help="Timeout for navigate (ms)",
    )
    parser.add_argument(
        "--action-timeout",
        type=int,
        default=config.action_timeout,
        help="Timeout for click, fill, evaluate and screenshot actions (ms)",
    )
    parser.add_argument(
        "--short-timeout",
        type=int,
        default=config.short_timeout,
        help="Timeout for hover and press_key (ms)",
    )
    parser.add_argument(
        "--allowed-hosts",
        dest="allowed_hosts",
        help="Comma-separated hosts navigation may reach, or * to allow any "
        "(default: $ALLOWED_URLS, else localhost,127.0.0.1)",
    )
    parser.add_argument(
        "--max-tabs",
        type=int,
        default=config.max_tabs,
        help="Maximum open tabs before the oldest is closed",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level",
    )

    args = parser.parse_args()

    # Setup logging before emitting any log lines; stdout carries JSON-RPC.
    logging.basicConfig(level=getattr(logging, args.log_level), stream=sys.stderr)

    # Update global configuration
    config.headless = not args.headed
    config.browser_type = args.browser
    config.channel = args.channel
    config.timeout = args.timeout
    config.navigation_timeout = args.navigation_timeout
    config.action_timeout = args.action_timeout
    config.short_timeout = args.short_timeout
    config.max_tabs = max(args.max_tabs, 1)
    if args.allowed_hosts is not None:
        config.allowed_hosts = parse_allowed_hosts(args.allowed_hosts)
    else:
        config.allowed_hosts = parse_allowed_hosts(os.getenv("ALLOWED_URLS"))

    # SIGTERM takes the same orderly shutdown path as Ctrl+C.
    signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)

    try:
        if args.transport == "stdio":
            mcp.run()
        else:
            # HTTP transport using StreamableHTTP
            import uvicorn

            app = mcp.streamable_http_app()
            uvicorn.run(app, host=args.host, port=args.port)
    except KeyboardInterrupt:
        logger.info("Server stopped")


if __name__ == "__main__":
    main()
