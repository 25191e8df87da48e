from __future__ import annotations

import base64
import json
import ssl
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from custodia.core.config import DEFAULT_HTTP_TIMEOUT_SECONDS
from custodia.core.errors import MalformedAddressError, TransportFailureError

_PLAIN_SCHEMES = frozenset({"http", "https"})
_TLS_SCHEMES = frozenset({"https"})


@dataclass(slots=True)
class TransportResponse:
    status: int
    body: bytes


class HttpTransport:
    """Blocking HTTP client used for backend reads, PIP lookups and message dispatch.

    Address problems raise ``MalformedAddressError``; everything that goes wrong once a
    request is on the wire raises ``TransportFailureError``. Timeouts count as transport
    failures.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.ssl_context = ssl_context

    def get_plain(self, url: str | None) -> bytes:
        return self._get(self._require_url(url, _PLAIN_SCHEMES))

    def get_tls(self, url: str | None) -> bytes:
        return self._get(self._require_url(url, _TLS_SCHEMES))

    def get_tls_basic_auth(self, url: str | None, username: str | None, password: str | None) -> bytes:
        target = self._require_url(url, _TLS_SCHEMES)
        return self._get(target, headers={"Authorization": basic_auth_header(username, password)})

    def post_json(self, url: str | None, payload: dict[str, Any]) -> TransportResponse:
        target = self._require_url(url, _PLAIN_SCHEMES)
        request = urllib.request.Request(
            target,
            data=json.dumps(payload, ensure_ascii=True).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with self._open(request) as response:
                return TransportResponse(status=int(response.status), body=response.read())
        except urllib.error.HTTPError as exc:
            return TransportResponse(status=int(exc.code), body=exc.read() or b"")
        except ValueError as exc:
            raise MalformedAddressError(f"Not a usable URL: {target}") from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise TransportFailureError(f"POST {target} failed: {exc}") from exc

    def _get(self, url: str, headers: dict[str, str] | None = None) -> bytes:
        request = urllib.request.Request(url, headers=headers or {}, method="GET")
        try:
            with self._open(request) as response:
                status = int(response.status)
                body = response.read()
        except urllib.error.HTTPError as exc:
            raise TransportFailureError(f"GET {url} returned HTTP {exc.code}", status=int(exc.code)) from exc
        except ValueError as exc:
            raise MalformedAddressError(f"Not a usable URL: {url}") from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise TransportFailureError(f"GET {url} failed: {exc}") from exc

        if not 200 <= status < 300:
            raise TransportFailureError(f"GET {url} returned HTTP {status}", status=status)
        return body

    def _open(self, request: urllib.request.Request):
        return urllib.request.urlopen(request, timeout=self.timeout_seconds, context=self.ssl_context)

    @staticmethod
    def _require_url(url: str | None, schemes: frozenset[str]) -> str:
        if not url or not url.strip():
            raise MalformedAddressError("No URL given")
        candidate = url.strip()
        try:
            parsed = urllib.parse.urlparse(candidate)
        except ValueError as exc:
            raise MalformedAddressError(f"Not a usable URL: {candidate}") from exc
        if parsed.scheme.lower() not in schemes:
            allowed = ", ".join(sorted(schemes))
            raise MalformedAddressError(f"URL scheme must be one of {allowed}: {candidate}")
        if not parsed.netloc:
            raise MalformedAddressError(f"URL has no host: {candidate}")
        return candidate


def basic_auth_header(username: str | None, password: str | None) -> str:
    token = f"{username or ''}:{password or ''}".encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("ascii")
