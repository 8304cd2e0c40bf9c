"""Urbit HTTP client - login, channel PUTs, scries and spider threads."""

import json
import sys
from datetime import datetime
from typing import Any

import httpx

from ..models import (
    APIConfiguration,
    AuthenticationError,
    NetworkError,
    NodeNotFoundError,
)

AUTH_COOKIE_PREFIX = "urbauth-~"


def log_event(message: str, component: str = "CLIENT") -> None:
    """Log an event to stderr with timestamp and consistent formatting."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    # ⚓ prefix makes it easy to grep/spot in the console
    print(f"[{timestamp}] ⚓ [{component}] {message}", file=sys.stderr, flush=True)


def _log(message: str, component: str = "CLIENT") -> None:
    """Unified log wrapper used throughout the client package.

    Plain print(..., file=sys.stderr) reliably surfaces in the MCP
    connector console, unlike the standard logging module, which
    FastMCP swallows.
    """
    log_event(message, component)


class _ClientLogger:
    """Lightweight logger that delegates to _log / log_event.

    Methods accept arbitrary *args/**kwargs for compatibility with
    logging.Logger but only the first message argument is used.
    """

    def __init__(self, component: str = "CLIENT") -> None:
        self._component = component

    def _msg(self, msg: object) -> str:
        try:
            return str(msg)
        except Exception:
            return repr(msg)

    def info(self, msg: object, *args: object, **kwargs: object) -> None:  # noqa: D401
        """Info-level log (no explicit level tag; message already descriptive)."""
        _log(self._msg(msg), self._component)

    def warning(self, msg: object, *args: object, **kwargs: object) -> None:
        _log(f"WARNING: {self._msg(msg)}", self._component)

    def error(self, msg: object, *args: object, **kwargs: object) -> None:
        _log(f"ERROR: {self._msg(msg)}", self._component)

    def debug(self, msg: object, *args: object, **kwargs: object) -> None:
        _log(f"DEBUG: {self._msg(msg)}", self._component)


def parse_session_cookie(set_cookie: str) -> tuple[str, str]:
    """Split a login ``set-cookie`` header into ``(cookie pair, ship name)``.

    ``urbauth-~zod=0v3.abc; Path=/; Max-Age=604800`` gives
    ``("urbauth-~zod=0v3.abc", "zod")``.
    """
    pair = set_cookie.split(";", 1)[0].strip()
    name, sep, _ = pair.partition("=")
    if not sep or not name.startswith(AUTH_COOKIE_PREFIX) or len(name) == len(AUTH_COOKIE_PREFIX):
        raise AuthenticationError(f"Unexpected session cookie: {set_cookie!r}")
    return pair, name[len(AUTH_COOKIE_PREFIX):]


class UrbitClientCore:
    """Transport boundary for one ship.

    Holds the session credential obtained by ``login`` and attaches it to
    every request. Three call shapes are used: PUT an action array to a
    channel, GET a scry path, POST a spider thread.
    """

    def __init__(
        self,
        config: APIConfiguration,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client; no request is made until ``login``."""
        self.config = config
        self.url = config.ship_url
        self.session_auth: str | None = None
        self.ship_name: str | None = None
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.url,
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "UrbitClientCore":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @property
    def ship(self) -> str:
        """The logged-in ship's name, without ``~``."""
        if self.ship_name is None:
            raise AuthenticationError("Not logged in")
        return self.ship_name

    def _headers(self, content_type: str | None = "application/json") -> dict[str, str]:
        if self.session_auth is None:
            raise AuthenticationError("Not logged in")
        headers = {"Cookie": self.session_auth}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as err:
            raise NetworkError(f"{method} {url} failed: {err}") from err

    async def login(self) -> None:
        """Exchange the ship code for a session cookie."""
        logger = _ClientLogger()
        code = self.config.ship_code.get_secret_value()
        response = await self._request(
            "POST",
            "/~/login",
            content=f"password={code}",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status_code != 204:
            raise AuthenticationError(f"Login rejected with status {response.status_code}")

        set_cookie = response.headers.get("set-cookie")
        if not set_cookie:
            raise AuthenticationError("Login response carried no session cookie")

        self.session_auth, self.ship_name = parse_session_cookie(set_cookie)
        logger.info(f"Logged in to ~{self.ship_name} at {self.url}")

    async def send_put_request(self, url: str, body: Any) -> httpx.Response:
        """PUT a JSON body (an action array for channels) with the session cookie."""
        return await self._request("PUT", url, content=json.dumps(body), headers=self._headers())

    async def scry(self, app: str, path: str, mark: str = "json") -> httpx.Response:
        """GET ``/~/scry/<app><path>.<mark>``."""
        return await self._request("GET", f"/~/scry/{app}{path}.{mark}", headers=self._headers())

    async def scry_json(self, app: str, path: str) -> Any:
        """Scry and decode JSON; 404 becomes ``NodeNotFoundError``."""
        response = await self.scry(app, path, "json")
        if response.status_code == 404:
            raise NodeNotFoundError(f"{app}{path}")
        if response.status_code != 200:
            raise NetworkError(f"Scry {app}{path} failed with status {response.status_code}")
        try:
            return response.json()
        except json.JSONDecodeError as err:
            raise NetworkError(f"Scry {app}{path} returned invalid JSON") from err

    async def spider(
        self,
        input_mark: str,
        output_mark: str,
        thread_name: str,
        body: Any,
    ) -> httpx.Response:
        """POST a one-shot thread to ``/spider/<input>/<thread>/<output>.json``."""
        return await self._request(
            "POST",
            f"/spider/{input_mark}/{thread_name}/{output_mark}.json",
            content=json.dumps(body),
            headers=self._headers(),
        )

    async def create_channel(self, event_source_factory: Any = None) -> "Channel":
        """Open a new channel bound to this interface."""
        from .channel import Channel

        return await Channel.open(self, event_source_factory=event_source_factory)
