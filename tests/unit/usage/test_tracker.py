"""Unit tests for usage accounting and token estimation."""

import threading

import pytest

from resilient_llm.models.llm_models import Message
from resilient_llm.usage.token_estimator import estimate_messages_token_count, estimate_token_count
from resilient_llm.usage.tracker import UsageTracker


def test_record_accumulates_tokens_and_cost(catalog):
    tracker = UsageTracker()
    sonnet = catalog.get("claude-3-sonnet-20240229")

    cost = tracker.record(100, 50, sonnet)

    assert cost == pytest.approx(0.00105)
    usage = tracker.snapshot()
    assert usage.input_tokens == 100
    assert usage.output_tokens == 50
    assert usage.total_tokens == 150
    assert usage.total_cost == pytest.approx(0.00105)


def test_reset_zeroes_counters(catalog):
    tracker = UsageTracker()
    tracker.record(100, 50, catalog.get("claude-3-haiku-20240307"))
    tracker.reset()

    usage = tracker.snapshot()
    assert (usage.input_tokens, usage.output_tokens, usage.total_cost) == (0, 0, 0.0)


def test_negative_counts_rejected(catalog):
    with pytest.raises(ValueError):
        UsageTracker().record(-1, 0, catalog.get("claude-2.1"))


def test_concurrent_records_are_not_lost(catalog):
    tracker = UsageTracker()
    haiku = catalog.get("claude-3-haiku-20240307")

    def worker():
        for _ in range(250):
            tracker.record(2, 1, haiku)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    usage = tracker.snapshot()
    assert usage.input_tokens == 2000
    assert usage.output_tokens == 1000


@pytest.mark.parametrize(
    "text, expected",
    [(None, 0), ("", 0), ("abc", 1), ("abcd", 1), ("abcde", 2)],
)
def test_estimate_token_count(text, expected):
    assert estimate_token_count(text) == expected


def test_estimate_messages_adds_per_message_overhead():
    messages = [Message(content="a" * 40), Message(role="assistant", content="b" * 8)]
    assert estimate_messages_token_count(messages) == (4 + 10) + (4 + 2)
    assert estimate_messages_token_count(messages, system="c" * 20) == 25
