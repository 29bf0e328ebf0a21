"""Request descriptor for outbound HTTP calls.

A :class:`RequestDescriptor` is built by the caller for one call and handed to
:meth:`~callsafe.http.client.ResilientHttpClient.execute`. It knows how to
produce the final URL (with encoded query parameters) and the header set
(with the default ``Content-Type`` for body-carrying methods); the client
does the rest.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import quote_plus

DEFAULT_CONTENT_TYPE = "application/json"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @property
    def carries_body(self) -> bool:
        return self in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)


@dataclass(frozen=True)
class RequestDescriptor:
    """One outbound request.

    Attributes:
        url: Target endpoint, optionally already carrying a query string
        method: HTTP method; plain strings are accepted case-insensitively
        headers: Headers sent verbatim, in insertion order
        query_params: Parameters appended to the URL; ``None`` values are skipped
        body: Payload for POST/PUT/PATCH (ignored for GET/DELETE)
        max_retries: Additional attempts allowed for transient failures

    Raises:
        ValueError: Unknown method or negative ``max_retries``
    """

    url: str
    method: HttpMethod = HttpMethod.GET
    headers: Mapping[str, str] = field(default_factory=dict)
    query_params: Mapping[str, str | None] = field(default_factory=dict)
    body: bytes | str | None = None
    max_retries: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.method, HttpMethod):
            object.__setattr__(self, "method", HttpMethod(str(self.method).upper()))
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        object.__setattr__(self, "headers", dict(self.headers or {}))
        object.__setattr__(self, "query_params", dict(self.query_params or {}))

    def build_url(self) -> str:
        """Return the URL with URL-encoded query parameters appended.

        Example:
            >>> RequestDescriptor("https://api.example.com/users",
            ...                   query_params={"q": "a b", "skip": None, "page": "2"}).build_url()
            'https://api.example.com/users?q=a+b&page=2'
        """
        pairs = [
            f"{quote_plus(str(key))}={quote_plus(str(value))}"
            for key, value in self.query_params.items()
            if value is not None
        ]
        if not pairs:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return self.url + separator + "&".join(pairs)

    def build_headers(self) -> dict[str, str]:
        """Return caller headers plus a default ``Content-Type`` when a body is sent."""
        headers = dict(self.headers)
        if self.method.carries_body and not any(
            name.lower() == "content-type" for name in headers
        ):
            headers["Content-Type"] = DEFAULT_CONTENT_TYPE
        return headers

    def build_content(self) -> bytes | None:
        """Return the body to send: empty for body methods without one, None otherwise."""
        if not self.method.carries_body:
            return None
        if self.body is None:
            return b""
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return bytes(self.body)
