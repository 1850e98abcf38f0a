"""
Response classification and retry loop for provider requests.

:func:`send_with_retry` drives a zero-argument ``send`` callable through a
tenacity :class:`~tenacity.Retrying` loop. Each tenacity attempt sends once,
re-issues the identical request while a queued provider answers ``202``, then
classifies the final response:

* transport failures and 5xx retry after ``backoff_base * 2**attempt`` seconds;
* 429 retries after ``Retry-After`` (or ``2**attempt``) seconds, capped;
* any other status is returned to the caller unmodified.

Queued re-issues do not consume attempts. They are bounded by a count and a
wall-clock deadline per attempt, after which :class:`QueuedError` is raised and
handled like any other retryable failure.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx
from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from ...core.events import ApiEvent, EventLevel
from .errors import (
    APIError,
    ExhaustedRetriesError,
    QueuedError,
    RateLimitError,
    ServerError,
    TransportError,
    error_for_status,
)

EventCallback = Callable[[ApiEvent], None]


class CallState(str, Enum):
    """Lifecycle of a single outbound call."""

    IDLE = "idle"
    RATE_LIMITED = "rate_limited"
    SENT = "sent"
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    BACKOFF_WAIT = "backoff_wait"
    TERMINAL_FAILURE = "terminal_failure"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Retry and backoff settings for one provider.

    Attributes
    ----------
    max_retries:
        Total number of attempts, including the first one.
    backoff_base:
        Seconds multiplied by ``2**attempt`` for transport and 5xx failures.
    max_retry_after:
        Upper bound for 429 waits.
    queued_status:
        Whether ``202`` means "queued, ask again" for this provider.
    queued_delay:
        Fixed pause between queued re-issues.
    max_queued_retries / queued_deadline:
        Per-attempt bounds on queued re-issues.
    """

    max_retries: int = 3
    backoff_base: float = 0.1
    max_retry_after: float = 30.0
    queued_status: bool = False
    queued_delay: float = 2.0
    max_queued_retries: int = 5
    queued_deadline: float = 60.0

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1.")

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * (2**attempt)

    def rate_limit_delay(self, attempt: int, retry_after: Optional[float]) -> float:
        delay = retry_after if retry_after is not None else float(2**attempt)
        return min(delay, self.max_retry_after)


class _PolicyWait(wait_base):
    """Tenacity wait strategy delegating to :class:`RetryPolicy`."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        attempt = retry_state.attempt_number
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitError):
            return self.policy.rate_limit_delay(attempt, exc.retry_after)
        return self.policy.backoff_delay(attempt)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, APIError) and exc.retryable


def classify_response(provider: str, response: httpx.Response) -> httpx.Response:
    """Raise for retryable statuses, return everything else untouched."""

    status = response.status_code
    if status == 429 or status >= 500:
        raise error_for_status(provider, status, _safe_json(response), response=response)
    return response


def _safe_json(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError:
        return None


def send_with_retry(
    send: Callable[[], httpx.Response],
    *,
    provider: str,
    url: str,
    policy: RetryPolicy,
    sleeper: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    on_event: Optional[EventCallback] = None,
) -> httpx.Response:
    """
    Send a request with classification, queued re-issues and backoff.

    Parameters
    ----------
    send:
        Performs one network round trip. Rate limiting belongs inside it so
        that every round trip, queued re-issues included, is gated.
    provider:
        Provider name used in errors and events.
    url:
        Request URL, reported in event context only.
    policy:
        Retry settings.
    sleeper / clock:
        Injectable time primitives.
    on_event:
        Receives error events for retryable failures and debug state traces.

    Returns
    -------
    httpx.Response
        A 2xx/3xx response, or a 4xx (except 429) response for the caller to
        classify.

    Raises
    ------
    ExhaustedRetriesError
        When every attempt ended in a retryable failure.
    """

    def emit(level: EventLevel, message: str, **context: object) -> None:
        if on_event is None:
            return
        payload = {"url": url}
        payload.update({key: value for key, value in context.items() if value is not None})
        on_event(ApiEvent(level=level, provider=provider, message=message, context=payload))

    attempt_counter = 0

    def send_once() -> httpx.Response:
        emit(EventLevel.DEBUG, "Request sent", state=CallState.SENT.value, attempt=attempt_counter)
        try:
            return send()
        except httpx.TransportError as exc:
            raise TransportError(provider, str(exc) or exc.__class__.__name__) from exc

    def attempt() -> httpx.Response:
        nonlocal attempt_counter
        attempt_counter += 1
        response = send_once()
        if policy.queued_status and response.status_code == 202:
            response = _drain_queue(response)
        return classify_response(provider, response)

    def _drain_queue(response: httpx.Response) -> httpx.Response:
        started = clock()
        reissues = 0
        while response.status_code == 202:
            if reissues >= policy.max_queued_retries or clock() - started + policy.queued_delay > policy.queued_deadline:
                raise QueuedError(
                    provider,
                    f"{provider} request still queued after {reissues} re-issues",
                    status=202,
                    response=response,
                )
            emit(
                EventLevel.DEBUG,
                "Request queued by provider",
                state=CallState.BACKOFF_WAIT.value,
                attempt=attempt_counter,
                delay=policy.queued_delay,
            )
            sleeper(policy.queued_delay)
            reissues += 1
            response = send_once()
        return response

    def after(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        emit(
            EventLevel.ERROR,
            str(exc),
            state=CallState.RETRYABLE_FAILURE.value,
            attempt=retry_state.attempt_number,
            status_code=getattr(exc, "status", None),
            kind=getattr(getattr(exc, "kind", None), "value", None),
        )

    def before_sleep(retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else None
        emit(
            EventLevel.DEBUG,
            "Backing off before retry",
            state=CallState.BACKOFF_WAIT.value,
            attempt=retry_state.attempt_number,
            delay=delay,
        )

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_retries),
        wait=_PolicyWait(policy),
        retry=retry_if_exception(_is_retryable),
        sleep=sleeper,
        after=after,
        before_sleep=before_sleep,
        reraise=False,
    )

    try:
        response = retrying(attempt)
    except RetryError as exc:
        last = exc.last_attempt.exception()
        attempts = exc.last_attempt.attempt_number
        if isinstance(last, TransportError):
            message = last.message
        else:
            message = f"{provider} request failed after {attempts} attempts"
        status = last.status if isinstance(last, (ServerError, RateLimitError, QueuedError)) else None
        emit(EventLevel.ERROR, message, state=CallState.TERMINAL_FAILURE.value, attempt=attempts)
        raise ExhaustedRetriesError(provider, message, attempts=attempts, status=status) from last
    except APIError as exc:
        emit(EventLevel.ERROR, str(exc), state=CallState.TERMINAL_FAILURE.value, attempt=attempt_counter)
        raise

    emit(
        EventLevel.DEBUG,
        "Request completed",
        state=CallState.SUCCESS.value,
        attempt=attempt_counter,
        status_code=response.status_code,
    )
    return response
