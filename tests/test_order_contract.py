from __future__ import annotations

import pytest

from specman.exceptions import NeverThrown
from specman.order_contract import (
    ORDER_POLICY_ENV,
    OrderPolicy,
    get_order_policy,
    order_policy,
    order_telemetry,
    ordered_or_sorted,
)


def test_ordered_or_sorted_sorts_by_default() -> None:
    assert ordered_or_sorted(["b", "a", "c"], source="test") == ["a", "b", "c"]


def test_ordered_or_sorted_respects_key_and_reverse() -> None:
    values = [("b", 1), ("a", 2)]
    assert ordered_or_sorted(values, source="test", key=lambda item: item[1], reverse=True) == [
        ("a", 2),
        ("b", 1),
    ]


def test_check_policy_sorts_only_on_regression() -> None:
    observed: list[dict[str, object]] = []
    with order_policy(OrderPolicy.CHECK):
        with order_telemetry() as events:
            ordered = ordered_or_sorted(
                ["b", "a", "c"],
                source="test.check",
                on_unsorted=observed.append,
            )
            assert ordered_or_sorted(["a", "b"], source="test.check") == ["a", "b"]
    assert ordered == ["a", "b", "c"]
    assert len(observed) == 1
    assert observed[0]["violation_kind"] == "out_of_order"
    assert [event["action"] for event in events] == ["fallback_sort"]
    assert events[0]["source"] == "test.check"


def test_trust_policy_keeps_caller_order() -> None:
    with order_policy("trust"):
        assert ordered_or_sorted(["b", "a"], source="test") == ["b", "a"]


def test_enforce_policy_rejects_regressions() -> None:
    with order_policy(OrderPolicy.ENFORCE):
        assert ordered_or_sorted(["a", "b"], source="test") == ["a", "b"]
        with pytest.raises(NeverThrown):
            ordered_or_sorted(["b", "a"], source="test")
        with pytest.raises(NeverThrown):
            ordered_or_sorted([1, "a"], source="test")


def test_policy_from_environment(env_scope, restore_env) -> None:
    previous = env_scope({ORDER_POLICY_ENV: "1"})
    try:
        assert get_order_policy() is OrderPolicy.ENFORCE
        with pytest.raises(NeverThrown):
            ordered_or_sorted(["b", "a"], source="test")
        env_scope({ORDER_POLICY_ENV: "off"})
        assert get_order_policy() is OrderPolicy.SORT
        env_scope({ORDER_POLICY_ENV: "check"})
        assert get_order_policy() is OrderPolicy.CHECK
    finally:
        restore_env(previous)


def test_context_policy_overrides_environment(env_scope, restore_env) -> None:
    previous = env_scope({ORDER_POLICY_ENV: "enforce"})
    try:
        with order_policy(OrderPolicy.SORT):
            assert ordered_or_sorted(["b", "a"], source="test") == ["a", "b"]
    finally:
        restore_env(previous)


def test_unknown_policy_is_rejected() -> None:
    with pytest.raises(NeverThrown):
        ordered_or_sorted(["a"], source="test", policy="sometimes")
