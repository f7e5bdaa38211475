import logging

import requests

from quant_scanner.monitoring import EventLog
from quant_scanner.performance import SentimentClient


class StubResponse:

    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


class StubSession:
    """Replays queued responses; exceptions in the queue are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _reading(value):
    return StubResponse({'data': [{'value': str(value), 'value_classification': 'Fear'}]})


def test_fetch_and_cooldown(clock):
    session = StubSession(_reading(25), _reading(80))
    client = SentimentClient(session=session, clock=clock)

    assert client.value() == 25
    assert session.calls[0][1] == 10

    clock.advance(120)
    assert client.value() == 25
    assert len(session.calls) == 1

    clock.advance(181)
    assert client.value() == 80
    assert len(session.calls) == 2


def test_failures_keep_last_value_and_log_sparingly(clock, caplog):
    session = StubSession(_reading(40), requests.ConnectionError("down"))
    event_log = EventLog()
    client = SentimentClient(session=session, clock=clock, event_log=event_log)
    client.value()

    with caplog.at_level(logging.WARNING, logger='quant_scanner.performance.sentiment'):
        for _ in range(5):
            clock.advance(301)
            assert client.value() == 40

    warnings = [r for r in caplog.records
                if r.name == 'quant_scanner.performance.sentiment' and r.levelno == logging.WARNING]
    assert client.failure_count == 5
    assert len(warnings) == 2
    assert len(event_log.recent()) == 2
    assert event_log.recent()[-1].context['category'] == 'external_fetch_failure'


def test_failed_attempt_respects_cooldown(clock):
    session = StubSession(StubResponse({}, status=503))
    client = SentimentClient(session=session, clock=clock)

    assert client.value() is None
    clock.advance(10)
    assert client.value() is None
    assert len(session.calls) == 1


def test_recovery_resets_failure_count(clock, caplog):
    session = StubSession(requests.Timeout("slow"), requests.Timeout("slow"), _reading(55))
    client = SentimentClient(session=session, clock=clock)

    client.get()
    clock.advance(301)
    client.get()
    assert client.failure_count == 2

    clock.advance(301)
    with caplog.at_level(logging.INFO, logger='quant_scanner.performance.sentiment'):
        reading = client.get()

    assert reading.value == 55
    assert reading.classification == 'Fear'
    assert client.failure_count == 0
    assert any('recovered' in r.getMessage() for r in caplog.records)


def test_malformed_payload_is_a_failure(clock):
    client = SentimentClient(session=StubSession(StubResponse({'data': []})), clock=clock)
    assert client.get() is None
    assert client.failure_count == 1
