import logging
import os
from dataclasses import dataclass
from urllib.error import HTTPError, URLError
from urllib.request import Request as UrlRequest, urlopen

logger = logging.getLogger(__name__)

UDISE_API_BASE = os.getenv("UDISE_API_BASE", "https://kys.udiseplus.gov.in/webapp/api").rstrip("/")
UDISE_TIMEOUT_SECONDS = int(os.getenv("UDISE_TIMEOUT_SECONDS", "30"))

_BODY_METHODS = {"POST", "PUT", "PATCH"}
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0",
    "Accept": "application/json, text/plain, */*",
}


@dataclass
class UpstreamResponse:
    status_code: int
    content: bytes
    content_type: str | None = None


class UpstreamUnavailable(Exception):
    """The UDISE API could not be reached at all."""


def build_target_url(path: str, query: str | None = None) -> str:
    url = f"{UDISE_API_BASE}/{path.lstrip('/')}" if path else UDISE_API_BASE
    if query:
        url = f"{url}?{query}"
    return url


def forward_udise_request(
    method: str,
    path: str,
    query: str | None = None,
    body: bytes | None = None,
    content_type: str | None = None,
) -> UpstreamResponse:
    method = method.upper()
    url = build_target_url(path, query)
    headers = dict(_DEFAULT_HEADERS)

    data = None
    if method in _BODY_METHODS and body:
        data = body
        headers["Content-Type"] = content_type or "application/json"

    req = UrlRequest(url, data=data, headers=headers, method=method)
    try:
        with urlopen(req, timeout=UDISE_TIMEOUT_SECONDS) as resp:
            return UpstreamResponse(
                status_code=resp.status,
                content=resp.read(),
                content_type=resp.headers.get("Content-Type"),
            )
    except HTTPError as exc:
        # upstream answered; relay whatever it said
        logger.warning("UDISE: %s %s -> %s", method, url, exc.code)
        return UpstreamResponse(
            status_code=exc.code,
            content=exc.read() or b"",
            content_type=exc.headers.get("Content-Type") if exc.headers else None,
        )
    except (URLError, TimeoutError, OSError) as exc:
        logger.warning("UDISE: %s %s failed: %s", method, url, exc)
        raise UpstreamUnavailable(str(getattr(exc, "reason", exc))) from exc
