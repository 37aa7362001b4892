from __future__ import annotations

import logging
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Optional

import requests

from .config import PROBE_DNS_TIMEOUT_S, PROBE_GET_TIMEOUT_S, PROBE_HEAD_TIMEOUT_S, PROBE_PATH, PROBE_RETRY_DELAY_S, SiteConfig
from .fetch import new_session

logger = logging.getLogger(__name__)


def probe_reachable(
    site: SiteConfig,
    *,
    session: Optional[requests.Session] = None,
    resolver: Callable[..., Any] = socket.getaddrinfo,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Cheap check that a site will probably answer before starting a long import.

    DNS first, then HEAD, then a lightweight GET retried once after a short pause.
    Returns False instead of raising.
    """
    try:
        if not _resolve(site.host, resolver):
            return False

        sess = session or new_session()
        try:
            if _head_probe(sess, site.base_url):
                return True
            if _get_probe(sess, site.base_url):
                return True
            sleep(PROBE_RETRY_DELAY_S)
            return _get_probe(sess, site.base_url)
        finally:
            if session is None:
                sess.close()
    except Exception as exc:  # noqa: BLE001 - the probe answers yes/no, never raises
        logger.debug("[%s] reachability probe failed: %s: %s", site.name, type(exc).__name__, exc)
        return False


def _resolve(host: str, resolver: Callable[..., Any]) -> bool:
    pool = ThreadPoolExecutor(max_workers=1)
    try:
        future = pool.submit(resolver, host, 443)
        addresses = future.result(timeout=PROBE_DNS_TIMEOUT_S)
    except FutureTimeout:
        logger.debug("DNS resolution timed out for %s", host)
        return False
    except OSError as exc:
        logger.debug("DNS resolution failed for %s: %s", host, exc)
        return False
    finally:
        pool.shutdown(wait=False)
    if not addresses:
        logger.debug("DNS resolution returned no addresses for %s", host)
        return False
    return True


def _reachable_status(status_code: int) -> bool:
    return status_code < 500


def _head_probe(sess: requests.Session, base_url: str) -> bool:
    try:
        resp = sess.head(base_url, timeout=PROBE_HEAD_TIMEOUT_S, allow_redirects=True)
    except requests.RequestException as exc:
        logger.debug("HEAD probe for %s failed: %s", base_url, exc)
        return False
    # 405: HEAD not supported, fall through to GET
    if resp.status_code == 405:
        return False
    return _reachable_status(resp.status_code)


def _get_probe(sess: requests.Session, base_url: str) -> bool:
    try:
        resp = sess.get(base_url.rstrip("/") + PROBE_PATH, timeout=PROBE_GET_TIMEOUT_S, stream=True)
        resp.close()
        if resp.status_code == 404:
            resp = sess.get(base_url, timeout=PROBE_GET_TIMEOUT_S, stream=True)
            resp.close()
    except requests.RequestException as exc:
        logger.debug("GET probe for %s failed: %s", base_url, exc)
        return False
    return _reachable_status(resp.status_code)
