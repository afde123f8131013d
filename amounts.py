"""
amounts.py - Sum a customer's treatment costs into status buckets.

    aggregate_amounts(store, customer) -> AmountsResult

Each treatment document goes through decode_treatment() first:

    status  must be a string naming one of the three buckets
    cost    integer, else floating point truncated toward zero, else rejected

Documents that fail decoding are skipped, never counted and never an error.
A storage failure part-way through the stream raises AggregationError with
whatever was summed before it.
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Mapping, Optional, Union

from pydantic import Field, StrictFloat, StrictInt, StrictStr, TypeAdapter, ValidationError

from customer_store import StorageError
from logging_config import get_logger
from models import AmountsResult, Customer, TreatmentRecord, TreatmentStatus

logger = get_logger(__name__)

# Integer first, then float. Strict mode keeps bools and numeric strings out.
_COST_ADAPTER: TypeAdapter = TypeAdapter(
    Annotated[Union[StrictInt, StrictFloat], Field(union_mode="left_to_right")]
)
_STATUS_ADAPTER: TypeAdapter = TypeAdapter(StrictStr)
_BUCKETS = {status.value: status for status in TreatmentStatus}


class NilCustomerError(ValueError):
    """Aggregation was called without a resolved customer."""

    def __init__(self, message: str = "Customer is nil") -> None:
        super().__init__(message)
        self.amounts = AmountsResult()


class AggregationError(StorageError):
    """The treatments stream failed; .amounts holds the partial totals."""

    def __init__(self, message: str, amounts: AmountsResult) -> None:
        super().__init__(message)
        self.amounts = amounts


def decode_cost(raw: Any) -> Optional[int]:
    """Coerce a stored cost to an integer total, or None if it is not a number."""
    try:
        value = _COST_ADAPTER.validate_python(raw)
    except ValidationError:
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value)
    return value


def decode_status(raw: Any) -> Optional[TreatmentStatus]:
    try:
        text = _STATUS_ADAPTER.validate_python(raw)
    except ValidationError:
        return None
    return _BUCKETS.get(text)


def decode_treatment(data: Mapping[str, Any]) -> Optional[TreatmentRecord]:
    """Decode one raw treatment document; None means skip it."""
    if "status" not in data or "cost" not in data:
        return None
    status = decode_status(data["status"])
    if status is None:
        return None
    cost = decode_cost(data["cost"])
    if cost is None:
        return None
    return TreatmentRecord(status=status, cost=cost)


def aggregate_amounts(store, customer: Optional[Customer]) -> AmountsResult:
    """Walk customers/<email>/treatments once and total the costs per status."""
    if customer is None:
        raise NilCustomerError()

    result = AmountsResult()
    counted = 0
    skipped = 0

    treatments = store.iter_treatments(customer.email)
    try:
        for data in treatments:
            record = decode_treatment(data)
            if record is None:
                skipped += 1
                logger.debug(
                    "treatment_skipped | email=%s | status=%r | cost=%r",
                    customer.email,
                    data.get("status"),
                    data.get("cost"),
                )
                continue
            result.add(record)
            counted += 1
    except StorageError as exc:
        logger.warning(
            "amounts_partial | email=%s | counted=%s | error=%s",
            customer.email,
            counted,
            exc,
        )
        raise AggregationError(str(exc), amounts=result) from exc

    logger.info(
        "amounts_aggregated | email=%s | counted=%s | skipped=%s | totals=%s",
        customer.email,
        counted,
        skipped,
        result.as_dict(),
    )
    return result
