"""HTTP transport for the Notion v3 API: throttling, 429 retry, cache hook.

One ``Transport`` belongs to one credentialed session and owns its request
limiter, so downloads that run side by side must each use their own transport.
"""

import json
import logging
import time
from typing import Any, Optional, Protocol

import httpx
from pyrate_limiter import Duration, Limiter, Rate

from .config import ClientConfig
from .errors import DecodeError, TransportError, RateLimitError

logger = logging.getLogger("notion-graph")

# Longest a request waits for its slot before the limiter gives up
THROTTLE_MAX_DELAY_MS = int(Duration.MINUTE)


# =============================================================================
# Request Cache Hook
# =============================================================================

class RequestCache(Protocol):
    """Substitutes recorded responses for requests and records real ones.

    Bodies are JSON text. Implementations decide how to match and persist.
    """

    def try_read(self, method: str, url: str, body: str) -> tuple[Optional[str], bool]:
        ...

    def write(self, method: str, url: str, body: str, response: str) -> None:
        ...


def canonical_json(body: str) -> str:
    """Re-serialize JSON with sorted keys; return input unchanged if not JSON."""
    try:
        return json.dumps(json.loads(body), sort_keys=True, separators=(",", ":"))
    except ValueError:
        return body


class MemoryRequestCache:
    """In-memory RequestCache keyed on method, URL and canonical JSON body."""

    def __init__(self, entries: Optional[list[dict]] = None):
        self._entries: dict[tuple[str, str, str], str] = {}
        self.requests_from_cache = 0
        self.requests_not_from_cache = 0
        for entry in entries or []:
            self.write(entry["method"], entry["url"], entry["body"], entry["response"])

    @staticmethod
    def _key(method: str, url: str, body: str) -> tuple[str, str, str]:
        return method.upper(), url, canonical_json(body)

    def try_read(self, method: str, url: str, body: str) -> tuple[Optional[str], bool]:
        response = self._entries.get(self._key(method, url, body))
        if response is None:
            self.requests_not_from_cache += 1
            return None, False
        self.requests_from_cache += 1
        return response, True

    def write(self, method: str, url: str, body: str, response: str) -> None:
        self._entries[self._key(method, url, body)] = response

    def entries(self) -> list[dict]:
        """All cached request/response pairs, in insertion order."""
        return [
            {"method": m, "url": u, "body": b, "response": r}
            for (m, u, b), r in self._entries.items()
        ]

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Request Limiter
# =============================================================================

THROTTLE_BUCKET = "notion-v3"


def build_limiter(min_request_interval: float) -> Optional[Limiter]:
    """One request start per ``min_request_interval`` seconds, blocking for a slot.

    Returns None when the interval is zero (no throttling).
    """
    interval_ms = int(round(min_request_interval * 1000))
    if interval_ms <= 0:
        return None
    return Limiter(
        [Rate(1, interval_ms)],
        raise_when_fail=False,
        max_delay=THROTTLE_MAX_DELAY_MS,
        retry_until_max_delay=True,
    )


# =============================================================================
# Transport
# =============================================================================

class Transport:
    """Synchronous POST-JSON client for www.notion.so/api/v3 endpoints."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.Client] = None,
        cache: Optional[RequestCache] = None
    ):
        self.config = config or ClientConfig()
        self.cache = cache
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=self.config.timeout)
        self.limiter = build_limiter(self.config.min_request_interval)
        self.request_count = 0

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.config.user_agent,
            "Accept-Language": self.config.accept_language,
        }
        if self.config.token:
            headers["cookie"] = f"token_v2={self.config.token}"
        return headers

    def _throttle(self) -> None:
        """Block until the limiter hands out the next request slot."""
        if self.limiter is None:
            return
        acquired = self.limiter.try_acquire(THROTTLE_BUCKET, weight=1)
        if acquired is not True:
            raise TransportError(
                f"no request slot within {THROTTLE_MAX_DELAY_MS} ms; check min_request_interval"
            )

    def _retry_delay(self, attempt: int, response: httpx.Response) -> float:
        delay = self.config.retry_delays[attempt]
        # seconds only; the HTTP-date form is ignored
        retry_after = response.headers.get("Retry-After", "").strip()
        if retry_after.replace(".", "", 1).isdigit():
            delay = max(delay, float(retry_after))
        return delay

    def _send(self, url: str, body: str) -> str:
        max_retries = len(self.config.retry_delays)
        for attempt in range(max_retries + 1):
            self._throttle()
            self.request_count += 1
            logger.debug(f"POST {url} (attempt {attempt + 1})")
            try:
                response = self._client.post(url, content=body.encode("utf-8"), headers=self._headers())
            except httpx.HTTPError as e:
                raise TransportError(f"POST {url} failed: {e}", url=url) from e

            if response.status_code == 429:
                if attempt == max_retries:
                    break
                delay = self._retry_delay(attempt, response)
                logger.warning(f"Rate limited, waiting {delay:.1f}s (attempt {attempt + 1})")
                time.sleep(delay)
                continue

            if response.status_code != 200:
                logger.debug(f"Error: status code {response.status_code}\nBody:\n{response.text[:300]}")
                raise TransportError(
                    f"POST {url} returned non-200 status code of {response.status_code}",
                    url=url,
                    status_code=response.status_code
                )
            return response.text

        raise RateLimitError(url, max_retries + 1)

    def post(self, api_path: str, request: dict) -> dict:
        """POST a JSON request to an API path and return the decoded JSON response.

        Args:
            api_path: Path below the host, e.g. "/api/v3/getRecordValues".
            request: JSON-serializable request body.

        Raises:
            TransportError: Network failure, non-200 status, or 429 after all retries.
            DecodeError: Response body is not a JSON object.
        """
        url = f"{self.config.host}{api_path}"
        body = json.dumps(request)

        text = None
        found = False
        if self.cache is not None:
            text, found = self.cache.try_read("POST", url, body)
        if not found:
            text = self._send(url, body)
            if self.cache is not None:
                self.cache.write("POST", url, body, text)

        try:
            data = json.loads(text)
        except ValueError as e:
            raise DecodeError(api_path, f"response is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise DecodeError(api_path, f"response should be an object, got {type(data).__name__}")
        return data
