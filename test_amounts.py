"""
test_amounts.py - Treatment decoding and amount aggregation checks.

Usage:
    python test_amounts.py
"""

from __future__ import annotations

import os
import sys
from typing import Any

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from amounts import (
    AggregationError,
    NilCustomerError,
    aggregate_amounts,
    decode_cost,
    decode_status,
    decode_treatment,
)
from customer_store import InMemoryCustomerStore, StorageError
from models import AmountsResult, Customer, TreatmentStatus


def _symbols() -> tuple[str, str, str]:
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except Exception:
        pass

    try:
        "✓✗═".encode(sys.stdout.encoding or "utf-8")
        return "✓", "✗", "═"
    except Exception:
        return "[OK]", "[FAIL]", "="


PASS, FAIL, LINE = _symbols()

ZERO = {"proposed": 0, "approved": 0, "rejected": 0}


def _store_with(email: str, records: list[dict[str, Any]]) -> InMemoryCustomerStore:
    return InMemoryCustomerStore(
        customers=[{"id": "c1", "email": email}],
        treatments={email: records},
    )


def _totals(records: list[dict[str, Any]]) -> dict[str, int]:
    customer = Customer(id="c1", email="c1@clinic.test")
    return aggregate_amounts(_store_with(customer.email, records), customer).as_dict()


class _CountingStore(InMemoryCustomerStore):
    """Counts how often the treatments stream is opened."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.opened = 0

    def iter_treatments(self, email: str):
        self.opened += 1
        return super().iter_treatments(email)


def run_checks() -> int:
    passed = 0
    failed = 0

    def check(name: str, condition: bool) -> None:
        nonlocal passed, failed
        if condition:
            passed += 1
            print(f"    {PASS} {name}")
        else:
            failed += 1
            print(f"    {FAIL} {name}")

    print(LINE * 62)
    print("  Amount Aggregation Tests")
    print(LINE * 62)

    # ----------------------------------------------------------
    # Cost decoding
    # ----------------------------------------------------------
    print("\n  Cost Decoding:")
    cost_cases: list[tuple[Any, Any, str]] = [
        (100, 100, "integer kept"),
        (0, 0, "zero kept"),
        (-7, -7, "negative integer kept"),
        (5.0, 5, "integral float -> int"),
        (5.9, 5, "float truncated, not rounded"),
        (-2.7, -2, "negative float truncated toward zero"),
        (10**15, 10**15, "large integer kept"),
        (True, None, "bool rejected"),
        (False, None, "False rejected"),
        ("12", None, "numeric string rejected"),
        ("twelve", None, "text rejected"),
        (None, None, "null rejected"),
        ([5], None, "list rejected"),
        ({"amount": 5}, None, "map rejected"),
        (float("nan"), None, "NaN rejected"),
        (float("inf"), None, "infinity rejected"),
        (float("-inf"), None, "negative infinity rejected"),
    ]
    for raw, expected, label in cost_cases:
        actual = decode_cost(raw)
        check(f"{label}: {raw!r} -> {expected!r}", actual == expected and type(actual) is type(expected))

    check("5 and 5.0 decode identically", decode_cost(5) == decode_cost(5.0))

    # ----------------------------------------------------------
    # Status decoding
    # ----------------------------------------------------------
    print("\n  Status Decoding:")
    check("'proposed' -> PROPOSED", decode_status("proposed") is TreatmentStatus.PROPOSED)
    check("'approved' -> APPROVED", decode_status("approved") is TreatmentStatus.APPROVED)
    check("'rejected' -> REJECTED", decode_status("rejected") is TreatmentStatus.REJECTED)
    check("'pending' is not a bucket", decode_status("pending") is None)
    check("case-sensitive ('Approved')", decode_status("Approved") is None)
    check("non-string status rejected", decode_status(7) is None)
    check("null status rejected", decode_status(None) is None)

    # ----------------------------------------------------------
    # Treatment decoding
    # ----------------------------------------------------------
    print("\n  Treatment Decoding:")
    record = decode_treatment({"status": "approved", "cost": 12.8, "notes": "x"})
    check(
        "valid document decodes with truncated cost",
        record is not None and record.status is TreatmentStatus.APPROVED and record.cost == 12,
    )
    check("missing status skipped", decode_treatment({"cost": 5}) is None)
    check("missing cost skipped", decode_treatment({"status": "approved"}) is None)
    check("empty document skipped", decode_treatment({}) is None)

    # ----------------------------------------------------------
    # Aggregation
    # ----------------------------------------------------------
    print("\n  Aggregation:")
    check("no treatments -> all buckets zero", _totals([]) == ZERO)

    example = _totals(
        [
            {"status": "approved", "cost": 100},
            {"status": "approved", "cost": 50},
            {"status": "rejected", "cost": 10},
            {"status": "pending", "cost": 5},
        ]
    )
    check(
        "worked example -> approved 150, rejected 10, pending ignored",
        example == {"proposed": 0, "approved": 150, "rejected": 10},
    )

    check(
        "int and float costs of equal value contribute identically",
        _totals([{"status": "proposed", "cost": 5}]) == _totals([{"status": "proposed", "cost": 5.0}]),
    )
    check(
        "5.9 contributes 5",
        _totals([{"status": "proposed", "cost": 5.9}])["proposed"] == 5,
    )
    check(
        "truncation happens per document, not on the sum",
        _totals([{"status": "approved", "cost": 0.6}, {"status": "approved", "cost": 0.6}])["approved"] == 0,
    )

    baseline = [{"status": "rejected", "cost": 30}]
    noise = [
        {"status": "pending", "cost": 5},
        {"status": "APPROVED", "cost": 5},
        {"status": "approved", "cost": "5"},
        {"status": "approved", "cost": True},
        {"status": "approved", "cost": None},
        {"status": "approved"},
        {"cost": 5},
        {"status": 3, "cost": 5},
        {"status": None, "cost": 5},
    ]
    check(
        "unrecognized status and bad costs leave totals unchanged",
        _totals(baseline + noise) == _totals(baseline),
    )
    check(
        "result keys are exactly the three buckets",
        set(_totals(noise + [{"status": "other", "cost": 1}])) == set(ZERO),
    )

    mixed = [
        {"status": "proposed", "cost": 1},
        {"status": "approved", "cost": 2.5},
        {"status": "rejected", "cost": 3},
        {"status": "proposed", "cost": 4.99},
        {"status": "approved", "cost": -1},
    ]
    check(
        "totals equal the per-status sum of truncated costs",
        _totals(mixed) == {"proposed": 5, "approved": 1, "rejected": 3},
    )

    counting = _CountingStore(
        customers=[{"id": "c1", "email": "c1@clinic.test"}],
        treatments={"c1@clinic.test": [{"status": "approved", "cost": 1}] * 3},
    )
    result = aggregate_amounts(counting, Customer(id="c1", email="c1@clinic.test"))
    check("stream is opened exactly once per call", counting.opened == 1)
    check("every document in the stream is counted", result.approved == 3)

    other = aggregate_amounts(
        _store_with("c1@clinic.test", [{"status": "approved", "cost": 9}]),
        Customer(id="c2", email="someone-else@clinic.test"),
    )
    check("treatments are read from the customer's own email path", other.as_dict() == ZERO)

    # ----------------------------------------------------------
    # Errors
    # ----------------------------------------------------------
    print("\n  Errors:")
    try:
        aggregate_amounts(_store_with("c1@clinic.test", []), None)
        check("None customer raises NilCustomerError", False)
    except NilCustomerError as exc:
        check("None customer raises NilCustomerError", True)
        check("NilCustomerError carries a zero result", exc.amounts.as_dict() == ZERO)
        check("NilCustomerError is a ValueError", isinstance(exc, ValueError))

    failing = _store_with(
        "c1@clinic.test",
        [
            {"status": "approved", "cost": 100},
            {"status": "rejected", "cost": 7},
            {"status": "approved", "cost": 1000},
        ],
    )
    failing.fail_treatments_after(2, "deadline exceeded")
    try:
        aggregate_amounts(failing, Customer(id="c1", email="c1@clinic.test"))
        check("mid-stream failure raises AggregationError", False)
    except AggregationError as exc:
        check("mid-stream failure raises AggregationError", True)
        check(
            "partial totals are kept on the error",
            exc.amounts.as_dict() == {"proposed": 0, "approved": 100, "rejected": 7},
        )
        check("AggregationError is a StorageError", isinstance(exc, StorageError))
        check("underlying failure is chained", isinstance(exc.__cause__, StorageError))
        check("message carries the underlying text", "deadline exceeded" in str(exc))

    immediate = _store_with("c1@clinic.test", [{"status": "approved", "cost": 5}])
    immediate.fail_treatments_after(0, "permission denied")
    try:
        aggregate_amounts(immediate, Customer(id="c1", email="c1@clinic.test"))
        check("failure before first document raises", False)
    except AggregationError as exc:
        check("failure before first document raises", True)
        check("partial result is all zeros", exc.amounts == AmountsResult())

    print(f"\n{LINE * 62}")
    print(f"  Results: {passed}/{passed + failed} passed")
    if failed == 0:
        print(f"  Amount aggregation checks complete {PASS}")
    else:
        print(f"  Amount aggregation checks failed: {failed}")
    print(LINE * 62)
    return failed


def test_amounts_checks() -> None:
    assert run_checks() == 0


def main() -> None:
    if run_checks():
        sys.exit(1)


if __name__ == "__main__":
    main()
