"""
customer_store.py - Read-only access to customer and treatment documents.

Two interchangeable stores expose the same three methods:

    find_customer(customer_id) -> raw field map of the first match, or None
    iter_treatments(email)     -> lazy iterator of raw treatment field maps
    close()

FirestoreCustomerStore talks to Cloud Firestore. InMemoryCustomerStore is a
dict-backed stand-in for tests and local runs without a cloud project.
Every collaborator failure leaves this module as StorageError.
"""

from __future__ import annotations

import copy
import json
from contextlib import closing
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from logging_config import get_logger

if TYPE_CHECKING:
    from settings import Settings

logger = get_logger(__name__)

CUSTOMERS_COLLECTION = "customers"
TREATMENTS_COLLECTION = "treatments"


class StorageError(RuntimeError):
    """A query, fetch, iteration, or decode against the store failed."""


def treatments_path(email: str) -> str:
    """Sub-collection path for a customer's treatments.

    The email is interpolated as-is. An email containing "/" yields a path
    with the wrong number of segments, which Firestore rejects.
    """
    return f"{CUSTOMERS_COLLECTION}/{email}/{TREATMENTS_COLLECTION}"


class FirestoreCustomerStore:
    """Cloud Firestore-backed store. One client per process, shared by all requests."""

    def __init__(self, project_id: str, client: Any = None) -> None:
        self.project_id = str(project_id or "").strip()
        if client is None:
            client = self._make_client(self.project_id)
        self.client = client

    @staticmethod
    def _make_client(project_id: str) -> firestore.Client:
        try:
            return firestore.Client(project=project_id)
        except Exception as exc:
            raise StorageError(
                f"Error initializing Cloud Firestore client: {exc}"
            ) from exc

    def find_customer(self, customer_id: str) -> Optional[dict[str, Any]]:
        """Equality query on the "id" field, limited to one document."""
        try:
            query = (
                self.client.collection(CUSTOMERS_COLLECTION)
                .where(filter=FieldFilter("id", "==", customer_id))
                .limit(1)
            )
            with closing(query.stream()) as stream:
                snapshot = next(stream, None)
            if snapshot is None:
                return None
            return snapshot.to_dict() or {}
        except Exception as exc:
            logger.warning(
                "storage_error | op=find_customer | id=%s | error_type=%s | error=%s",
                customer_id,
                type(exc).__name__,
                exc,
            )
            raise StorageError(str(exc)) from exc

    def iter_treatments(self, email: str) -> Iterator[dict[str, Any]]:
        """Stream every document of customers/<email>/treatments."""
        path = treatments_path(email)
        try:
            for snapshot in self.client.collection(path).stream():
                yield snapshot.to_dict() or {}
        except Exception as exc:
            logger.warning(
                "storage_error | op=iter_treatments | path=%s | error_type=%s | error=%s",
                path,
                type(exc).__name__,
                exc,
            )
            raise StorageError(str(exc)) from exc

    def close(self) -> None:
        self.client.close()


class InMemoryCustomerStore:
    """Dict-backed store with the same query semantics as the Firestore one.

    Customers are kept in insertion order, so with duplicate ids the first
    one added wins. Treatments are keyed by the interpolated sub-collection
    path, exactly as they would be addressed in Firestore.
    """

    def __init__(
        self,
        customers: Optional[list[dict[str, Any]]] = None,
        treatments: Optional[dict[str, list[dict[str, Any]]]] = None,
    ) -> None:
        self._customers: list[dict[str, Any]] = []
        self._treatments: dict[str, list[dict[str, Any]]] = {}
        self._lookup_error: Optional[str] = None
        self._treatments_error: Optional[tuple[int, str]] = None
        self.closed = False

        for customer in customers or []:
            self.add_customer(customer)
        for email, records in (treatments or {}).items():
            for record in records:
                self.add_treatment(email, record)

    @classmethod
    def from_seed_file(cls, path: str) -> "InMemoryCustomerStore":
        """Load {"customers": [...], "treatments": {"<email>": [...]}} from JSON."""
        seed_path = Path(path)
        if not seed_path.exists():
            raise FileNotFoundError(f"Seed file not found: {seed_path}")
        try:
            raw = json.loads(seed_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Seed file is not valid JSON '{seed_path}': {exc}") from exc

        if not isinstance(raw, dict):
            raise ValueError(f"Seed file must contain a JSON object: {seed_path}")
        customers = raw.get("customers")
        treatments = raw.get("treatments")
        customers = [] if customers is None else customers
        treatments = {} if treatments is None else treatments
        if not isinstance(customers, list) or not isinstance(treatments, dict):
            raise ValueError(
                "Seed file needs 'customers' as a list and 'treatments' as an object "
                "keyed by email."
            )

        store = cls(customers=customers, treatments=treatments)
        logger.info(
            "seed_loaded | path=%s | customers=%s | treatment_groups=%s",
            seed_path,
            len(store._customers),
            len(store._treatments),
        )
        return store

    def add_customer(self, customer: dict[str, Any]) -> None:
        self._customers.append(copy.deepcopy(dict(customer)))

    def add_treatment(self, email: str, record: dict[str, Any]) -> None:
        path = treatments_path(email)
        self._treatments.setdefault(path, []).append(copy.deepcopy(dict(record)))

    def fail_lookups(self, message: str) -> None:
        """Make every find_customer call raise StorageError(message)."""
        self._lookup_error = message

    def fail_treatments_after(self, count: int, message: str) -> None:
        """Make iter_treatments raise StorageError(message) once count documents were yielded."""
        self._treatments_error = (max(0, int(count)), message)

    def find_customer(self, customer_id: str) -> Optional[dict[str, Any]]:
        if self._lookup_error is not None:
            raise StorageError(self._lookup_error)
        for customer in self._customers:
            if customer.get("id") == customer_id:
                return copy.deepcopy(customer)
        return None

    def iter_treatments(self, email: str) -> Iterator[dict[str, Any]]:
        records = self._treatments.get(treatments_path(email), [])
        for index, record in enumerate(records):
            if self._treatments_error is not None and index >= self._treatments_error[0]:
                raise StorageError(self._treatments_error[1])
            yield copy.deepcopy(record)
        if self._treatments_error is not None and len(records) <= self._treatments_error[0]:
            raise StorageError(self._treatments_error[1])

    def close(self) -> None:
        self.closed = True


def build_customer_store(settings: "Settings"):
    """Construct the store selected by CUSTOMER_STORE."""
    if settings.store_backend == "memory":
        if settings.seed_file:
            return InMemoryCustomerStore.from_seed_file(settings.seed_file)
        logger.warning("memory_store_empty | reason='CUSTOMER_SEED_FILE not set'")
        return InMemoryCustomerStore()

    logger.info("firestore_store | project_id=%s", settings.project_id)
    return FirestoreCustomerStore(settings.project_id)
