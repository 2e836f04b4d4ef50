from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import requests
from requests.adapters import HTTPAdapter

from redmetrics.common.config import PushgatewayAuth

PUSH_TIMEOUT_SECONDS = 5
# urllib3 pools have no idle timeout; PushScheduler drops connections idle
# for longer than this before the next push.
KEEP_ALIVE_SECONDS = 10
MAX_SOCKETS = 5


def build_push_session(auth: PushgatewayAuth | None = None) -> requests.Session:
    """Session with a bounded keep-alive pool and no automatic retries."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=MAX_SOCKETS,
        pool_block=True,
        max_retries=0,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["Connection"] = "keep-alive"
    if auth is not None and auth.complete:
        session.auth = (auth.username, auth.password)
    return session


class SessionHandler:
    """prometheus_client push handler that sends through a shared session.

    ``pushadd_to_gateway`` discards the handler's return value, so the last
    response is kept on the instance for result reporting.
    """

    def __init__(self, session: Any) -> None:
        self.session = session
        self.last_response: Any = None

    def __call__(
        self,
        url: str,
        method: str,
        timeout: float | None,
        headers: Sequence[tuple[str, str]],
        data: bytes,
    ) -> Callable[[], None]:
        def handle() -> None:
            response = self.session.request(
                method,
                url,
                data=data,
                headers=dict(headers),
                timeout=timeout,
            )
            self.last_response = response
            response.raise_for_status()

        return handle
