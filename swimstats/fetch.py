from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from .config import BROWSER_HEADERS, MAX_FETCH_ATTEMPTS, RETRY_BASE_DELAY_S

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A page could not be fetched, after retries where retrying made sense."""

    def __init__(
        self,
        url: str,
        message: str,
        *,
        attempts: int,
        status_code: Optional[int] = None,
        transient: bool = True,
    ) -> None:
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s): {message}")
        self.url = url
        self.attempts = attempts
        self.status_code = status_code
        self.transient = transient


class _ServerError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


# ChunkedEncodingError: connection dropped while the body was being read
_NETWORK_ERRORS = (requests.Timeout, requests.ConnectionError, requests.exceptions.ChunkedEncodingError)
_TRANSIENT_ERRORS = (*_NETWORK_ERRORS, _ServerError)


def new_session() -> requests.Session:
    sess = requests.Session()
    sess.headers.update(BROWSER_HEADERS)
    return sess


class ResilientFetcher:
    """HTTP GET with bounded retries and linear backoff (attempt x base delay).

    Timeouts, connection errors and 5xx answers are retried. Malformed URLs and
    4xx answers fail on the first attempt.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        max_attempts: int = MAX_FETCH_ATTEMPTS,
        base_delay_s: float = RETRY_BASE_DELAY_S,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout_s = float(timeout_s)
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay_s = max(0.0, float(base_delay_s))
        self.session = session or new_session()
        self._sleep = sleep

    def get(self, url: str) -> str:
        attempts = 0

        def _attempt() -> str:
            nonlocal attempts
            attempts += 1
            resp = self.session.get(url, timeout=self.timeout_s)
            if resp.status_code >= 500:
                raise _ServerError(resp.status_code)
            resp.raise_for_status()
            if "charset" not in (resp.headers.get("Content-Type") or "").lower():
                resp.encoding = resp.apparent_encoding
            return resp.text

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.base_delay_s, increment=self.base_delay_s),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            before_sleep=_log_retry(url),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(_attempt)
        except _ServerError as exc:
            raise FetchError(url, str(exc), attempts=attempts, status_code=exc.status_code) from exc
        except _NETWORK_ERRORS as exc:
            raise FetchError(url, f"{type(exc).__name__}: {exc}", attempts=attempts) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise FetchError(url, f"HTTP {status}", attempts=attempts, status_code=status, transient=False) from exc
        except requests.RequestException as exc:
            # MissingSchema, InvalidURL and friends
            raise FetchError(url, f"{type(exc).__name__}: {exc}", attempts=attempts, transient=False) from exc

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "ResilientFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _log_retry(url: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        wait_s = state.next_action.sleep if state.next_action else 0.0
        logger.info("Retrying %s in %.1fs (attempt %d failed: %s)", url, wait_s, state.attempt_number, exc)

    return _before_sleep
