"""Ways of delivering a queued attempt to the admission engine.

A transport turns one submission into exactly one of three results:
an :class:`~attendance.outcomes.Admitted` or :class:`~attendance.outcomes.Rejected`
decision, or a :class:`TransportFailure` meaning the engine never decided and
the attempt should stay queued.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Union

import requests

from attendance.attempts import AttendanceAttempt
from attendance.outcomes import Admitted, Outcome, Rejected, outcome_from_response

logger = logging.getLogger(__name__)

VERIFY_PATH = "/api/v1/attendance/verify/"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Statuses where the engine did not decide; the same payload may succeed later.
# 401 means the access token needs refreshing, not that the attempt is invalid.
RETRYABLE_STATUS_CODES = frozenset({401, 408, 425, 429})


@dataclass(frozen=True)
class TransportFailure:
    reason: str
    status_code: Optional[int] = None


SubmitResult = Union[Admitted, Rejected, TransportFailure]


class EngineTransport(Protocol):
    def submit(self, attempt: AttendanceAttempt) -> SubmitResult:
        ...


class HttpEngineTransport:
    """Submit attempts to the HTTP verify endpoint with a bearer token.

    Args:
        base_url: Server root, e.g. ``https://attendance.example.com``.
        token: Static access token, or ``None`` when ``token_provider`` is used.
        token_provider: Called before each request to obtain a fresh token.
        timeout: Connect/read timeout in seconds; expiry is a transport failure.
        session: Optional pre-configured :class:`requests.Session`.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = base_url.rstrip("/") + VERIFY_PATH
        self._token = token
        self._token_provider = token_provider
        self.timeout = timeout
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider() if self._token_provider else self._token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def submit(self, attempt: AttendanceAttempt) -> SubmitResult:
        try:
            response = self._session.post(
                self.url,
                json=attempt.to_payload(),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.warning("Attendance submission timed out after %.1fs", self.timeout)
            return TransportFailure(f"Request timed out after {self.timeout:g}s")
        except requests.exceptions.RequestException as exc:
            logger.warning("Attendance submission failed: %s", exc)
            return TransportFailure(f"Connection failed: {exc}")

        return classify_response(response.status_code, _json_body(response))


def _json_body(response: requests.Response) -> Optional[dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def classify_response(status_code: int, body: Optional[dict[str, Any]]) -> SubmitResult:
    """Map an HTTP status and JSON body onto a submission result.

    Only responses that carry the engine's own ``success`` envelope count as
    decisions. Anything else (proxy error pages, a wrong base URL, throttling,
    server errors) keeps the attempt queued.
    """

    if status_code >= 500 or status_code in RETRYABLE_STATUS_CODES:
        return TransportFailure(f"Server responded with HTTP {status_code}", status_code)

    if body is None or not isinstance(body.get("success"), bool):
        return TransportFailure(f"Unrecognised response (HTTP {status_code})", status_code)

    if 200 <= status_code < 300 and body["success"] is True:
        try:
            return outcome_from_response(body)
        except ValueError as exc:
            return TransportFailure(f"Malformed success response: {exc}", status_code)

    if body["success"] is False and 200 <= status_code < 500:
        outcome: Outcome = outcome_from_response(body)
        return outcome

    return TransportFailure(f"Inconsistent response (HTTP {status_code})", status_code)


__all__ = [
    "EngineTransport",
    "HttpEngineTransport",
    "SubmitResult",
    "TransportFailure",
    "classify_response",
]
