from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

import requests

from featurelab_web.domain.errors import HTTPError, TransportError
from featurelab_web.domain.models import APIResult, RequestEnvelope

logger = logging.getLogger(__name__)


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:9]


def _unwrap(body: Any) -> APIResult[Any]:
    """
    Bodies that carry a boolean `success` are envelopes from the service itself:
    success:false is a failure, success:true yields its `data`.
    Anything else is already the payload.
    """
    if isinstance(body, dict) and isinstance(body.get("success"), bool):
        if not body["success"]:
            return APIResult.fail(body.get("error") or body.get("message") or "Request failed")
        if body.get("data") is not None:
            return APIResult.ok(body["data"])
        rest = {k: v for k, v in body.items() if k not in ("success", "data", "error", "message")}
        return APIResult.ok(rest)
    if body is None:
        return APIResult.fail("Empty response body")
    return APIResult.ok(body)


class RequestOrchestrator:
    """
    Issues one logical request against one endpoint.
    Every failure (transport, non-2xx, in-band success:false) is retried
    identically with a fixed delay; the caller only ever sees an APIResult.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 120,
        max_retries: int = 5,
        retry_delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = new_correlation_id,
    ):
        self.base_url = base_url.rstrip("/")
        if session is None:
            session = requests.Session()
            session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
        self.session = session
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._clock = clock
        self._id_factory = id_factory

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def issue(self, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> APIResult[Any]:
        envelope = RequestEnvelope(endpoint=endpoint, payload=dict(payload or {}), correlation_id=self._id_factory())
        return self._with_retry(envelope)

    def get(self, endpoint: str) -> APIResult[Any]:
        envelope = RequestEnvelope(endpoint=endpoint, payload=None, correlation_id=self._id_factory())
        return self._with_retry(envelope)

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _attempt(self, envelope: RequestEnvelope) -> APIResult[Any]:
        url = self._url(envelope.endpoint)
        try:
            if envelope.payload is None:
                response = self.session.get(url, timeout=self.timeout_seconds)
            else:
                response = self.session.post(url, json=envelope.payload, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise TransportError(str(e) or type(e).__name__) from e

        status = response.status_code
        if status < 200 or status >= 300:
            reason = (getattr(response, "reason", "") or "").strip()
            raise HTTPError(f"API error: {status} - {reason}", status_code=status)

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON response: {e}") from e

        return _unwrap(body)

    def _fields(self, envelope: RequestEnvelope, attempt: int, event: str, **extra: Any) -> Dict[str, Any]:
        fields = {
            "event": event,
            "endpoint": envelope.endpoint,
            "correlation_id": envelope.correlation_id,
            "attempt": attempt,
            "max_retries": self.max_retries,
        }
        fields.update(extra)
        return fields

    def _with_retry(self, envelope: RequestEnvelope) -> APIResult[Any]:
        started = self._clock()
        last_error = "Unknown error"

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = self._attempt(envelope)
            except (TransportError, HTTPError) as e:
                result = APIResult.fail(str(e) or type(e).__name__)
            except Exception as e:
                result = APIResult.fail(f"{type(e).__name__}: {e}")

            duration_ms = int((self._clock() - started) * 1000)

            if result.success:
                logger.info(
                    "API request succeeded",
                    extra=self._fields(envelope, attempt, "api_request_succeeded", will_retry=False, duration_ms=duration_ms),
                )
                return result

            last_error = result.error
            will_retry = attempt < self.max_attempts
            if will_retry:
                logger.warning(
                    "API request retry",
                    extra=self._fields(envelope, attempt, "api_request_retry", will_retry=True, error=last_error),
                )
                self._sleep(self.retry_delay_seconds)
            else:
                logger.warning(
                    "API request attempt failed",
                    extra=self._fields(envelope, attempt, "api_request_attempt_failed", will_retry=False, error=last_error),
                )

        logger.error(
            "API request failed after retries",
            extra=self._fields(
                envelope,
                self.max_attempts,
                "api_request_exhausted",
                will_retry=False,
                error=last_error,
                duration_ms=int((self._clock() - started) * 1000),
            ),
        )
        return APIResult.fail(last_error)
