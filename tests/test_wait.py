import pytest

from conftest import api_error
from knative_cli.errors import KnError, WaitTimeoutError
from knative_cli.wait import wait_for_deletion, wait_for_ready


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def _doc(status, generation=1, observed=1, reason=""):
    return {
        "metadata": {"generation": generation},
        "status": {
            "observedGeneration": observed,
            "conditions": [{"type": "Ready", "status": status, "reason": reason}],
        },
    }


def _sequence(*documents):
    documents = list(documents)

    def fetch():
        return documents.pop(0) if len(documents) > 1 else documents[0]

    return fetch


def test_ready_after_stale_generation():
    clock = FakeClock()
    fetch = _sequence(_doc("True", generation=2, observed=1), _doc("Unknown"), _doc("True"))
    elapsed = wait_for_ready(fetch, "Service", "hello", sleep=clock.sleep, clock=clock)
    assert elapsed == 2.0


def test_short_false_flicker_is_tolerated():
    clock = FakeClock()
    fetch = _sequence(_doc("False", reason="Deploying"), _doc("True"))
    assert wait_for_ready(fetch, "Service", "hello", error_window=2, sleep=clock.sleep, clock=clock) == 1.0


def test_persistent_false_fails():
    clock = FakeClock()
    with pytest.raises(KnError) as excinfo:
        wait_for_ready(_sequence(_doc("False", reason="RevisionFailed")), "Service", "hello", error_window=2, sleep=clock.sleep, clock=clock)
    assert "RevisionFailed" in str(excinfo.value)
    assert clock.now == 2.0


def test_timeout():
    clock = FakeClock()
    with pytest.raises(WaitTimeoutError):
        wait_for_ready(_sequence(_doc("Unknown")), "Service", "hello", timeout=5, sleep=clock.sleep, clock=clock)
    assert clock.now == 5.0


def test_wait_for_deletion():
    clock = FakeClock()
    calls = []

    def fetch():
        calls.append(1)
        if len(calls) < 3:
            return {}
        raise api_error(404, "gone")

    assert wait_for_deletion(fetch, "Service", "hello", sleep=clock.sleep, clock=clock) == 2.0
