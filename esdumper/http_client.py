"""HTTP client preconfigured for talking to Elasticsearch."""

from __future__ import annotations

import base64
import warnings
from typing import Any

import requests

from esdumper.config import BackupConfig

warnings.filterwarnings("ignore", message="Unverified HTTPS request")


class ElasticClient:
    """A session with JSON headers, optional basic auth, timeouts and no certificate checks."""

    def __init__(
        self,
        auth: tuple[str, str] | None = None,
        request_timeout: float = 180,
        connect_timeout: float = 60,
    ) -> None:
        self.request_timeout = request_timeout
        self.connect_timeout = connect_timeout
        self.session = requests.Session()
        self.session.headers["Content-Type"] = "application/json"
        if auth is not None:
            username, secret = auth
            encoded = base64.b64encode(f"{username}:{secret}".encode()).decode("ascii")
            self.session.headers["Authorization"] = f"Basic {encoded}"

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request with the client's defaults applied."""
        kwargs.setdefault("timeout", (self.connect_timeout, self.request_timeout))
        kwargs.setdefault("verify", False)
        return self.session.request(method, url, **kwargs)

    def __enter__(self) -> ElasticClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.session.close()


def build_http_client(config: BackupConfig) -> ElasticClient:
    """Create a client from the resolved configuration."""
    return ElasticClient(
        auth=config.auth,
        request_timeout=config.request_timeout_secs,
        connect_timeout=config.connect_timeout_secs,
    )