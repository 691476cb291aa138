"""Network reachability checks sampled once per reconciliation pass."""
from __future__ import annotations

from typing import Optional, Protocol

import requests

from core.settings import SYNC


class ConnectivityProvider(Protocol):
    def is_online(self) -> bool:
        ...


class StaticConnectivity:
    """Fixed answer, for tests and the forced offline mode."""

    def __init__(self, online: bool = True) -> None:
        self.online = online

    def is_online(self) -> bool:
        return self.online


class HttpConnectivity:
    """Treat the network as reachable when a HEAD request gets any response."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url or SYNC.probe_url or SYNC.api_base_url
        self.timeout = timeout or SYNC.probe_timeout_sec
        self.session = session or requests.Session()

    def is_online(self) -> bool:
        try:
            self.session.head(self.url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException:
            return False
        return True


__all__ = ["ConnectivityProvider", "HttpConnectivity", "StaticConnectivity"]
