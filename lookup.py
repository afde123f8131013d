"""
lookup.py - Resolve an external customer id to a Customer.

    lookup_customer(store, customer_id) -> Customer | None

None means "no such customer" and is a normal outcome. Query and decode
failures raise StorageError.
"""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from customer_store import StorageError
from logging_config import get_logger
from models import Customer

logger = get_logger(__name__)


def lookup_customer(store, customer_id: str) -> Optional[Customer]:
    """Fetch the first customer whose "id" field equals customer_id."""
    logger.debug("customer_lookup | id=%s", customer_id)

    raw = store.find_customer(customer_id)
    if raw is None:
        logger.info("customer_not_found | id=%s", customer_id)
        return None

    try:
        customer = Customer.model_validate(raw)
    except ValidationError as exc:
        logger.warning(
            "customer_decode_error | id=%s | errors=%s",
            customer_id,
            exc.error_count(),
        )
        raise StorageError(f"cannot decode customer {customer_id!r}: {exc}") from exc

    logger.debug("customer_found | id=%s | email=%s", customer_id, customer.email)
    return customer
