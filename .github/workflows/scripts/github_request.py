#!/usr/bin/env python3
# file: .github/workflows/scripts/github_request.py
# version: 1.0.0
# guid: 9a1f4c7e-2b3d-4e5f-8091-a2b3c4d5e6f7

"""Rate-limit aware GitHub REST requests.

A single logical API call is retried while the response is classified as
retryable (primary or secondary rate limit, server error) and the retry
budget in :class:`RetryPolicy` is not spent. Server-declared waits
(``retry-after``, ``x-ratelimit-reset``) take precedence over local
exponential backoff.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math
import re
import time
from typing import Any, Callable, Mapping, Optional, Union

import requests

import workflow_common

API_VERSION = "2022-11-28"
DEFAULT_TIMEOUT = 30
MAX_RETRY_DELAY_MS = 120_000
USER_AGENT = "release-asset-sync"

_SECONDARY_RATE_LIMIT = re.compile(r"secondary rate limit", re.IGNORECASE)
# plain decimal seconds; rejects "1_0", "inf", "nan"
_DECIMAL = re.compile(r"^\s*[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?\s*$")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff parameters for one process."""

    max_retries: int = 8
    base_delay_ms: int = 2000
    max_delay_ms: int = MAX_RETRY_DELAY_MS

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be > 0")
        if self.max_delay_ms <= 0:
            raise ValueError("max_delay_ms must be > 0")


class BodyKind(Enum):
    """Shape of a successful response body."""

    JSON = "json"
    TEXT = "text"
    EMPTY = "empty"


@dataclass(frozen=True)
class ResponseBody:
    """Parsed body of a successful response."""

    kind: BodyKind
    value: Any = None

    def expect_json(self) -> Any:
        """Return the structured value or raise if the body was not JSON."""
        if self.kind is not BodyKind.JSON:
            raise workflow_common.WorkflowError(
                f"Expected a JSON response body, got {self.kind.value}",
                hint="Check that GITHUB_API_URL points at the REST API",
            )
        return self.value


@dataclass(frozen=True)
class RequestAttempt:
    """One try of a logical request."""

    method: str
    url: str
    attempt: int


@dataclass(frozen=True)
class Success:
    status: int
    body: ResponseBody


@dataclass(frozen=True)
class RetryableFailure:
    status: int
    reason: str
    body_text: str
    suggested_delay_ms: float


@dataclass(frozen=True)
class FatalFailure:
    status: int
    reason: str
    body_text: str


ApiResponseOutcome = Union[Success, RetryableFailure, FatalFailure]


class GitHubApiError(workflow_common.WorkflowError):
    """Non-success GitHub API response that was not recovered."""

    def __init__(
        self,
        status: int,
        reason: str,
        body_text: str,
        retries_exhausted: bool = False,
    ) -> None:
        hint = ""
        if retries_exhausted:
            hint = "Retry budget exhausted; raise RELEASE_MAX_RETRIES or retry later"
        elif status == 401:
            hint = "Check that GH_TOKEN or GITHUB_TOKEN is valid"
        elif status == 403:
            hint = "Ensure the workflow has 'contents: write' permission"
        super().__init__(
            f"GitHub API request failed: {status} {reason} {body_text}",
            hint=hint,
        )
        self.status = status
        self.reason = reason
        self.body_text = body_text
        self.retries_exhausted = retries_exhausted

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


def is_success(status: int) -> bool:
    return 200 <= status <= 299


def is_retryable(status: int, body_text: str) -> bool:
    """Return True when a failed response is worth retrying."""
    if status == 429:
        return True

    if 500 <= status <= 599:
        return True

    return status == 403 and bool(_SECONDARY_RATE_LIMIT.search(body_text or ""))


def _positive_finite(raw: Optional[str]) -> Optional[float]:
    if not raw or not _DECIMAL.match(raw):
        return None
    value = float(raw.strip())
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def compute_retry_delay_ms(
    headers: Mapping[str, str],
    attempt: int,
    policy: RetryPolicy,
    now: Optional[float] = None,
) -> float:
    """Compute how long to wait before the next attempt.

    Args:
        headers: Response headers (case-insensitive mapping from requests)
        attempt: Zero-based index of the attempt that just failed
        policy: Retry policy providing base delay and ceiling
        now: Current Unix time in seconds, defaults to ``time.time()``

    Returns:
        Delay in milliseconds
    """
    retry_after = _positive_finite(headers.get("retry-after"))
    if retry_after is not None:
        return retry_after * 1000

    reset_epoch = _positive_finite(headers.get("x-ratelimit-reset"))
    if reset_epoch is not None:
        current = time.time() if now is None else now
        wait_ms = reset_epoch * 1000 - current * 1000 + 1000
        if wait_ms > 0:
            return wait_ms

    return min(policy.base_delay_ms * 2**attempt, policy.max_delay_ms)


def parse_response(response: requests.Response) -> ResponseBody:
    """Parse a successful response according to its content type."""
    if response.status_code == 204:
        return ResponseBody(BodyKind.EMPTY)

    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        return ResponseBody(BodyKind.JSON, response.json())

    return ResponseBody(BodyKind.TEXT, response.text)


def classify_response(
    response: requests.Response,
    attempt: int,
    policy: RetryPolicy,
    now: Optional[float] = None,
) -> ApiResponseOutcome:
    """Turn a raw response into a success, retryable or fatal outcome."""
    status = response.status_code
    if is_success(status):
        return Success(status, parse_response(response))

    body_text = response.text
    reason = response.reason or ""
    if is_retryable(status, body_text):
        delay_ms = compute_retry_delay_ms(response.headers, attempt, policy, now)
        return RetryableFailure(status, reason, body_text, delay_ms)

    return FatalFailure(status, reason, body_text)


class GitHubClient:
    """Authenticated GitHub REST client with rate-limit aware retries."""

    def __init__(
        self,
        token: str,
        policy: RetryPolicy,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.policy = policy
        self.session = session if session is not None else requests.Session()
        self.sleep = sleep
        self.clock = clock
        self.timeout = timeout
        self.headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }

    def __repr__(self) -> str:
        return f"GitHubClient(policy={self.policy!r})"

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        **kwargs: Any,
    ) -> ResponseBody:
        """Perform a request, retrying throttled and transient failures.

        Raises:
            GitHubApiError: when the response is fatal or retries ran out
        """
        merged_headers = dict(self.headers)
        if headers:
            merged_headers.update(headers)

        attempt = RequestAttempt(method.upper(), url, 0)
        while True:
            response = self.session.request(
                attempt.method,
                attempt.url,
                headers=merged_headers,
                timeout=self.timeout,
                **kwargs,
            )
            outcome = classify_response(
                response, attempt.attempt, self.policy, self.clock()
            )

            if isinstance(outcome, Success):
                return outcome.body

            if (
                isinstance(outcome, RetryableFailure)
                and attempt.attempt < self.policy.max_retries
            ):
                delay_ms = outcome.suggested_delay_ms
                print(
                    f"⏳ Request throttled ({outcome.status}). Sleeping "
                    f"{delay_ms:.0f}ms before retry "
                    f"{attempt.attempt + 1}/{self.policy.max_retries}..."
                )
                self.sleep(delay_ms / 1000)
                attempt = RequestAttempt(
                    attempt.method, attempt.url, attempt.attempt + 1
                )
                continue

            raise GitHubApiError(
                outcome.status,
                outcome.reason,
                outcome.body_text,
                retries_exhausted=isinstance(outcome, RetryableFailure),
            )

    def get(self, url: str, **kwargs: Any) -> ResponseBody:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> ResponseBody:
        return self.request("POST", url, **kwargs)

    def delete(self, url: str, **kwargs: Any) -> ResponseBody:
        return self.request("DELETE", url, **kwargs)
