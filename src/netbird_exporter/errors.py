# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Exception hierarchy for the exporter.

Startup errors are fatal and end the process. Everything else is raised inside
a poll cycle and absorbed by the pump's backoff handling.
"""

from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""


class StartupError(ExporterError):
    """Fatal error during startup; the process exits non-zero."""


class StartupUnreachable(StartupError):
    """Loki never reported ready within the configured attempts."""


class SourceOpenFailure(StartupError):
    """The events database could not be opened or queried at startup."""


class SourceReadFailure(ExporterError):
    """Reading a batch from the events database failed."""


class SerializationFailure(ExporterError):
    """The push payload could not be serialized."""


class DeliveryError(ExporterError):
    """Base class for failed pushes."""


class DeliveryRejected(DeliveryError):
    """Loki answered with a non-success status."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Loki rejected push: {status_code} - {body}")


class DeliveryUnreachable(DeliveryError):
    """No response was obtained from Loki (connection error or timeout)."""

    def __init__(self, reason: str, cause: Optional[BaseException] = None):
        self.reason = reason
        self.cause = cause
        super().__init__(f"Loki unreachable: {reason}")
