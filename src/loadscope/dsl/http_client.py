"""Timed HTTP client used by virtual users to execute scenario steps."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp

if TYPE_CHECKING:
    from loadscope._internal.types import Headers


@dataclass(frozen=True)
class HttpRequest:
    """A fully built request for one step.

    Attributes:
        method: HTTP method.
        path: Concrete path (with query string) appended to the base URL.
        headers: Extra request headers.
        json_body: JSON-serializable body, or None for no body.
    """

    method: str
    path: str
    headers: Headers = field(default_factory=dict)
    json_body: Any = None


@dataclass(frozen=True)
class HttpResponse:
    """Observed outcome of one request.

    Attributes:
        status: HTTP status code, 0 when no response was received.
        text: Decoded response body ("" when no response).
        headers: Response headers.
        elapsed_ms: Time from request start to body completion or failure.
        error: Transport failure description (``"timeout"`` or
            ``"<ExceptionType>: <message>"``), None on a received response.
    """

    status: int
    text: str
    elapsed_ms: float
    headers: Headers = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True for a received 2xx response."""
        return self.error is None and 200 <= self.status < 300


class HttpClient:
    """Async HTTP client wrapping one ``aiohttp.ClientSession``.

    Each virtual user owns one client. ``send`` never raises for transport
    problems: timeouts and connection errors come back as an
    ``HttpResponse`` with ``status == 0`` and ``error`` set, so the
    dispatcher can turn them into error samples. Task cancellation still
    propagates.

    Attributes:
        base_url: Base URL prepended to all request paths.
        headers: Default headers applied to every request.
    """

    def __init__(
        self,
        base_url: str,
        headers: Headers | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Base URL prepended to all request paths.
            headers: Default headers applied to every request.
            timeout: Default request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.headers: Headers = dict(headers or {})
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpClient:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def get(self, path: str, *, timeout: float | None = None) -> HttpResponse:
        """Send a GET request to *path*."""
        return await self.send(HttpRequest(method="GET", path=path), timeout=timeout)

    async def send(self, request: HttpRequest, *, timeout: float | None = None) -> HttpResponse:
        """Send a request and time it until the body is fully read.

        Args:
            request: The request to send.
            timeout: Total timeout in seconds; defaults to the client timeout.

        Returns:
            The observed response or transport failure.

        Raises:
            RuntimeError: If the client is used outside of an async context
                manager.
        """
        if self._session is None:
            msg = "HttpClient must be used as an async context manager"
            raise RuntimeError(msg)

        url = f"{self.base_url}{request.path}"
        headers = {**self.headers, **request.headers}
        kwargs: dict[str, Any] = {}
        if request.json_body is not None:
            kwargs["json"] = request.json_body
        client_timeout = aiohttp.ClientTimeout(
            total=timeout if timeout is not None else self._timeout
        )

        start = time.perf_counter()
        try:
            async with self._session.request(
                request.method,
                url,
                headers=headers,
                timeout=client_timeout,
                **kwargs,
            ) as resp:
                text = await resp.text(errors="replace")
                return HttpResponse(
                    status=resp.status,
                    text=text,
                    headers=dict(resp.headers),
                    elapsed_ms=(time.perf_counter() - start) * 1000,
                )
        except TimeoutError:
            return HttpResponse(
                status=0,
                text="",
                elapsed_ms=(time.perf_counter() - start) * 1000,
                error="timeout",
            )
        except aiohttp.ClientError as exc:
            return HttpResponse(
                status=0,
                text="",
                elapsed_ms=(time.perf_counter() - start) * 1000,
                error=f"{type(exc).__name__}: {exc}",
            )


async def probe(base_url: str, path: str, timeout: float) -> HttpResponse:
    """Issue a single GET against *path* with a throwaway client.

    Used by the reachability check before a run starts.
    """
    async with HttpClient(base_url=base_url, timeout=timeout) as client:
        return await client.get(path)
