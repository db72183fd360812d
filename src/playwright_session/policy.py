"""Navigation allow-list."""

from typing import Iterable, List
from urllib.parse import urlparse

from playwright_session.errors import NavigationPolicyError

WILDCARD = "*"


class NavigationPolicy:
    """Decides whether a URL's host may be navigated to.

    A host passes when it equals an allow-listed entry or is a subdomain of
    one. A ``*`` entry disables the check entirely.
    """

    def __init__(self, allowed_hosts: Iterable[str]):
        self.allowed_hosts: List[str] = [
            host.strip().lower() for host in allowed_hosts if host and host.strip()
        ]

    @property
    def unrestricted(self) -> bool:
        return WILDCARD in self.allowed_hosts

    def is_host_allowed(self, hostname: str) -> bool:
        if self.unrestricted:
            return True
        hostname = hostname.lower().rstrip(".")
        for allowed in self.allowed_hosts:
            if hostname == allowed or hostname.endswith(f".{allowed}"):
                return True
        return False

    def check(self, url: str) -> str:
        """Return the URL's hostname or raise :class:`NavigationPolicyError`."""
        try:
            hostname = urlparse(url).hostname
        except ValueError as exc:
            raise NavigationPolicyError(f"Invalid or disallowed URL {url!r}: {exc}") from exc

        if self.unrestricted:
            return hostname or ""
        if not hostname:
            raise NavigationPolicyError(
                f"Invalid or disallowed URL {url!r}: no hostname to check against "
                f"the allow-list ({', '.join(self.allowed_hosts)})"
            )
        if not self.is_host_allowed(hostname):
            raise NavigationPolicyError(
                f"Navigation not allowed: host {hostname} is not in the allow-list "
                f"({', '.join(self.allowed_hosts)})"
            )
        return hostname
