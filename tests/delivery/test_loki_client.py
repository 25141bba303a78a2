# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Tests for the Loki HTTP client."""

import json
import threading
from unittest.mock import Mock

import pytest
import requests

from netbird_exporter.delivery.loki_client import (
    DeliveryStatus,
    LokiClient,
    build_push_payload,
)
from netbird_exporter.errors import (
    DeliveryRejected,
    DeliveryUnreachable,
    SerializationFailure,
    StartupUnreachable,
)
from netbird_exporter.processing.grouper import Stream


def make_streams():
    return [
        Stream(
            labels={"job": "netbird-events", "account_id": "acc-1", "activity": "peer_approved", "activity_code": "57"},
            values=[("1705314600000000000", '{"event_id":1}'), ("1705314601000000000", '{"event_id":2}')],
        ),
        Stream(
            labels={"job": "netbird-events", "account_id": "acc-2", "activity": "user_joined", "activity_code": "2"},
            values=[("1705314602000000000", '{"event_id":3}')],
        ),
    ]


def make_client(session):
    return LokiClient("http://loki:3100/", push_timeout=5.0, ready_timeout=2.0, session=session)


class TestPush:
    """Test pushing and outcome classification."""

    def test_empty_push_sends_nothing(self):
        session = Mock()
        result = make_client(session).push([])

        assert result.status is DeliveryStatus.DELIVERED
        assert result.ok
        session.post.assert_not_called()

    def test_delivered(self):
        session = Mock()
        session.post.return_value = Mock(status_code=204, text="")

        result = make_client(session).push(make_streams())

        assert result.status is DeliveryStatus.DELIVERED
        assert result.entries == 3
        assert result.error is None

        args, kwargs = session.post.call_args
        assert args[0] == "http://loki:3100/loki/api/v1/push"
        assert kwargs["timeout"] == 5.0
        body = json.loads(kwargs["data"].decode("utf-8"))
        assert body["streams"][0]["stream"]["activity"] == "peer_approved"
        assert body["streams"][0]["values"] == [
            ["1705314600000000000", '{"event_id":1}'],
            ["1705314601000000000", '{"event_id":2}'],
        ]
        assert len(body["streams"]) == 2

    def test_rejected_keeps_status_and_body(self):
        session = Mock()
        session.post.return_value = Mock(status_code=400, text="entry out of order")

        result = make_client(session).push(make_streams())

        assert result.status is DeliveryStatus.REJECTED
        assert not result.ok
        assert isinstance(result.error, DeliveryRejected)
        assert result.error.status_code == 400
        assert result.error.body == "entry out of order"

    def test_connection_error_is_unreachable(self):
        session = Mock()
        session.post.side_effect = requests.exceptions.ConnectionError("connection refused")

        result = make_client(session).push(make_streams())

        assert result.status is DeliveryStatus.UNREACHABLE
        assert isinstance(result.error, DeliveryUnreachable)
        assert "connection refused" in result.reason

    def test_timeout_is_unreachable(self):
        session = Mock()
        session.post.side_effect = requests.exceptions.ReadTimeout("read timed out")

        result = make_client(session).push(make_streams())

        assert result.status is DeliveryStatus.UNREACHABLE
        assert result.reason.startswith("timeout after 5.0s")

    def test_unserializable_payload(self):
        stream = Stream(labels={"job": object()}, values=[("1", "line")])
        with pytest.raises(SerializationFailure):
            build_push_payload([stream])


class TestReadiness:
    """Test the readiness probe."""

    def test_is_ready(self):
        session = Mock()
        session.get.return_value = Mock(status_code=200)

        assert make_client(session).is_ready() is True
        session.get.assert_called_once_with("http://loki:3100/ready", timeout=2.0)

    def test_not_ready_status(self):
        session = Mock()
        session.get.return_value = Mock(status_code=503)
        assert make_client(session).is_ready() is False

    def test_wait_until_ready_retries(self):
        session = Mock()
        session.get.side_effect = [
            requests.exceptions.ConnectionError(),
            Mock(status_code=503),
            Mock(status_code=200),
        ]
        sleep = Mock()

        assert make_client(session).wait_until_ready(attempts=5, interval=2.0, sleep=sleep) is True

        assert session.get.call_count == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(2.0)

    def test_wait_until_ready_gives_up(self):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError()
        sleep = Mock()

        with pytest.raises(StartupUnreachable, match="after 3 attempts"):
            make_client(session).wait_until_ready(attempts=3, interval=0.5, sleep=sleep)

        assert session.get.call_count == 3
        assert sleep.call_count == 2

    def test_wait_until_ready_stops_when_requested(self):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError()
        stop = threading.Event()
        sleep = Mock(side_effect=lambda seconds: stop.set())

        ready = make_client(session).wait_until_ready(attempts=60, interval=2.0, sleep=sleep, stop=stop)

        assert ready is False
        assert session.get.call_count == 1
        assert sleep.call_count == 1


class TestSession:
    """Test the default session."""

    def test_default_session_headers(self):
        client = LokiClient("http://loki:3100")
        try:
            assert client.session.headers["Content-Type"] == "application/json"
            assert client.session.headers["User-Agent"].startswith("NetBird-Events-Exporter/")
        finally:
            client.close()
