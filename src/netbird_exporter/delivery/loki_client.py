# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
HTTP client for the Loki push API.

Pushes grouped streams and classifies the outcome as delivered, rejected
(Loki answered with a non-success status) or unreachable (no response).
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .. import __version__
from ..errors import (
    DeliveryError,
    DeliveryRejected,
    DeliveryUnreachable,
    SerializationFailure,
    StartupUnreachable,
)
from ..processing.grouper import Stream

logger = logging.getLogger(__name__)

PUSH_PATH = "/loki/api/v1/push"
READY_PATH = "/ready"


class DeliveryStatus(Enum):
    DELIVERED = "delivered"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"


@dataclass
class DeliveryResult:
    """Outcome of a single push."""

    status: DeliveryStatus
    entries: int = 0
    status_code: Optional[int] = None
    body: str = ""
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    @property
    def error(self) -> Optional[DeliveryError]:
        """Exception describing a failed push, None when delivered."""
        if self.status is DeliveryStatus.REJECTED:
            return DeliveryRejected(self.status_code, self.body)
        if self.status is DeliveryStatus.UNREACHABLE:
            return DeliveryUnreachable(self.reason)
        return None


def build_push_payload(streams: Sequence[Stream]) -> str:
    """
    Serialize streams into a Loki push request body.

    Raises:
        SerializationFailure: If a label or line cannot be encoded
    """
    request = {"streams": [stream.to_payload() for stream in streams]}
    try:
        return json.dumps(request)
    except (TypeError, ValueError) as e:
        raise SerializationFailure(f"Failed to serialize push request: {e}") from e


class LokiClient:
    """HTTP client for Loki."""

    def __init__(
        self,
        base_url: str,
        push_timeout: float = 5.0,
        ready_timeout: float = 2.0,
        retries: int = 2,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Loki client.

        Args:
            base_url: Loki base URL, e.g. http://loki:3100
            push_timeout: Seconds before a push is abandoned
            ready_timeout: Seconds before a readiness probe is abandoned
            retries: Transport retries for readiness probes (pushes are never retried here)
            session: Pre-built session, mainly for tests
        """
        self.base_url = base_url.rstrip("/")
        self.push_timeout = push_timeout
        self.ready_timeout = ready_timeout
        self.retries = retries
        self.session = session or self._create_session()

    @property
    def push_url(self) -> str:
        return f"{self.base_url}{PUSH_PATH}"

    @property
    def ready_url(self) -> str:
        return f"{self.base_url}{READY_PATH}"

    def _create_session(self) -> requests.Session:
        """Create HTTP session with retry logic for idempotent requests."""
        session = requests.Session()

        # POST is not in the allowed methods, failed pushes are retried by the pump
        retry = Retry(
            total=self.retries,
            backoff_factor=0.3,
            status_forcelist=[502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update({
            "User-Agent": f"NetBird-Events-Exporter/{__version__}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

        return session

    def is_ready(self) -> bool:
        """Probe Loki's readiness endpoint once."""
        try:
            response = self.session.get(self.ready_url, timeout=self.ready_timeout)
            return 200 <= response.status_code < 300
        except requests.exceptions.RequestException as e:
            logger.debug(f"Readiness probe failed: {e}")
            return False

    def wait_until_ready(
        self,
        attempts: int = 60,
        interval: float = 2.0,
        sleep: Callable[[float], Any] = time.sleep,
        stop: Optional[threading.Event] = None,
    ) -> bool:
        """
        Block until Loki reports ready.

        Args:
            attempts: Number of probes before giving up
            interval: Seconds between probes
            sleep: Sleep function, injectable for tests
            stop: Event that abandons the wait when set

        Returns:
            True once Loki is ready, False if the wait was stopped

        Raises:
            StartupUnreachable: If Loki is not ready after all attempts
        """
        logger.info("Waiting for Loki to be ready...")

        for attempt in range(1, attempts + 1):
            if stop is not None and stop.is_set():
                logger.info("Stopped while waiting for Loki")
                return False

            if self.is_ready():
                logger.info("✓ Loki is ready")
                return True

            if attempt % 10 == 0:
                logger.info(f"Still waiting for Loki... (attempt {attempt}/{attempts})")

            if attempt < attempts:
                sleep(interval)

        raise StartupUnreachable(f"Failed to connect to Loki after {attempts} attempts")

    def push(self, streams: Sequence[Stream]) -> DeliveryResult:
        """
        Push streams to Loki in a single request.

        An empty stream list is a successful no-op; no request is sent.

        Raises:
            SerializationFailure: If the payload cannot be serialized
        """
        entries = sum(len(stream.values) for stream in streams)
        if not streams:
            return DeliveryResult(DeliveryStatus.DELIVERED, entries=0)

        body = build_push_payload(streams)

        try:
            response = self.session.post(
                self.push_url,
                data=body.encode("utf-8"),
                timeout=self.push_timeout,
            )
        except requests.exceptions.Timeout as e:
            return DeliveryResult(
                DeliveryStatus.UNREACHABLE,
                entries=entries,
                reason=f"timeout after {self.push_timeout}s: {e}",
            )
        except requests.exceptions.RequestException as e:
            return DeliveryResult(DeliveryStatus.UNREACHABLE, entries=entries, reason=str(e))

        if 200 <= response.status_code < 300:
            return DeliveryResult(DeliveryStatus.DELIVERED, entries=entries, status_code=response.status_code)

        return DeliveryResult(
            DeliveryStatus.REJECTED,
            entries=entries,
            status_code=response.status_code,
            body=response.text or "",
        )

    def close(self) -> None:
        self.session.close()

