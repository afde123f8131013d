"""
models.py - Data Models for the Treatment Amounts Service

Every module communicates through these models:

    customer_store.py -> raw field maps (dict)
    lookup.py         -> Customer
    amounts.py        -> TreatmentRecord (per document), AmountsResult
    api.py            -> SuccessEnvelope / FailEnvelope / ServiceStatus

Design principles:
1. Documents are written by another system, so decoding is lenient about
   missing fields and strict about wrong types
2. AmountsResult always has exactly the three status buckets
3. The HTTP envelope shapes are fixed; clients key off "status"

Schema relationships:
    TreatmentStatus --used by--> TreatmentRecord.status, AmountsResult keys
    AmountsResult   --used by--> SuccessEnvelope.data
    NotFoundDetail  --used by--> FailEnvelope.data
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TreatmentStatus(str, Enum):
    """The three buckets a treatment cost can be summed into.

    Any other status string found in the store (e.g. "pending") is not a
    bucket and the document carrying it is skipped.
    """

    PROPOSED = "proposed"
    APPROVED = "approved"
    REJECTED = "rejected"


class Customer(BaseModel):
    """Customer document from the "customers" collection.

    Read-only here; an external system creates and edits these. The email
    doubles as the parent document key of the treatments sub-collection.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    email: str = Field(
        default="",
        description=(
            "Customer email. Used verbatim to build the path "
            "customers/<email>/treatments."
        ),
    )
    id: str = Field(
        default="",
        description="External lookup key. Expected unique, not enforced here.",
    )
    name: str = Field(default="", description="Display name.")
    phone: str = Field(default="", description="Contact phone number.")

    @field_validator("email", "id", "name", "phone", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> Any:
        # Null fields read as empty; other non-string values still fail.
        return "" if value is None else value


class TreatmentRecord(BaseModel):
    """A treatment document that survived decoding and counts toward a bucket."""

    model_config = ConfigDict(frozen=True)

    status: TreatmentStatus
    cost: int = Field(..., description="Cost truncated toward zero.")


class AmountsResult(BaseModel):
    """Per-status cost totals for one customer.

    All three buckets start at zero and no other keys ever appear, so the
    serialized form is always {"proposed": N, "approved": N, "rejected": N}.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    proposed: int = 0
    approved: int = 0
    rejected: int = 0

    def add(self, record: TreatmentRecord) -> None:
        """Add one decoded treatment's cost to its bucket."""
        field = record.status.value
        setattr(self, field, getattr(self, field) + record.cost)

    def as_dict(self) -> dict[str, int]:
        return self.model_dump()


class ServiceStatus(BaseModel):
    status: str = "running"


class NotFoundDetail(BaseModel):
    title: str


class SuccessEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: AmountsResult


class FailEnvelope(BaseModel):
    """Failure body. data is a plain message, or a {"title": ...} object for 404s."""

    status: Literal["fail"] = "fail"
    data: Union[NotFoundDetail, str]
