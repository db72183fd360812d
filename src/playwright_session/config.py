"""Server configuration."""

import os
from typing import List, Optional

DEFAULT_ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

# Launch flags applied to every Chromium launch.
HARDENING_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-notifications",
    "--disable-geolocation",
]


def _parse_csv_list(value: Optional[str]) -> List[str]:
    """Return a normalized list from a comma-separated string."""

    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_allowed_hosts(value: Optional[str]) -> List[str]:
    """Turn an allow-list string into a list of lowercase host entries.

    ``None`` or a blank string falls back to the loopback defaults. A ``*``
    entry is kept as-is and disables the navigation check.
    """
    hosts = [host.lower() for host in _parse_csv_list(value)]
    if not hosts:
        return list(DEFAULT_ALLOWED_HOSTS)
    return hosts


class Config:
    """Server configuration."""

    def __init__(
        self,
        headless: bool = True,
        browser_type: str = "chromium",
        channel: Optional[str] = None,
        launch_args: Optional[List[str]] = None,
        timeout: int = 30000,
        navigation_timeout: int = 15000,
        action_timeout: int = 10000,
        short_timeout: int = 5000,
        annotate_settle_ms: int = 100,
        max_tabs: int = 3,
        max_log_entries: int = 50,
        allowed_hosts: Optional[List[str]] = None,
    ):
        self.headless = headless
        self.browser_type = browser_type
        self.channel = channel
        self.launch_args = list(HARDENING_ARGS) if launch_args is None else list(launch_args)
        # Timeouts are in milliseconds, matching Playwright.
        self.timeout = timeout
        self.navigation_timeout = navigation_timeout
        self.action_timeout = action_timeout
        self.short_timeout = short_timeout
        self.annotate_settle_ms = annotate_settle_ms
        self.max_tabs = max(max_tabs, 1)
        self.max_log_entries = max(max_log_entries, 1)
        if allowed_hosts is None:
            allowed_hosts = parse_allowed_hosts(os.getenv("ALLOWED_URLS"))
        self.allowed_hosts = allowed_hosts


# Global configuration
config = Config()
