"""
Workflow Pydantic Models

Defines the data models for laundry requests and lost items with validation.
"""
from datetime import datetime, timezone
from typing import ClassVar, Iterable, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from .states import EntityKind, LaundryStatus, LostItemStatus, Role


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Session(BaseModel):
    """Who is acting. Supplied by the identity provider on every call."""
    actor_id: str = Field(..., min_length=1, description="Stable id of the acting user")
    role: Role = Field(..., description="Role the identity provider vouches for")
    display_name: Optional[str] = Field(default=None, description="Human readable name, if known")

    class Config:
        frozen = True


class LaundryRequest(BaseModel):
    """
    Laundry Request Model

    A requester's batch of clothing moving through the laundry workflow.
    """
    kind: ClassVar[EntityKind] = EntityKind.LAUNDRY_REQUEST

    id: str = Field(default_factory=new_id, description="Unique request identifier")
    owner_id: str = Field(..., min_length=1, description="Requester who owns the request")
    owner_name: Optional[str] = Field(default=None, description="Requester display name")
    items: List[str] = Field(..., min_length=1, description="Ordered item descriptions")
    status: LaundryStatus = Field(default=LaundryStatus.PENDING, description="Current workflow state")
    requested_pickup_time: datetime = Field(..., description="When the requester wants pickup")
    notes: Optional[str] = Field(default=None, description="Free-form notes from requester or staff")
    delivered_at: Optional[datetime] = Field(default=None, description="Set when the request is delivered")
    created_at: datetime = Field(default_factory=utc_now, description="Timestamp when request was created")
    updated_at: datetime = Field(default_factory=utc_now, description="Timestamp of last accepted write")
    version: int = Field(default=0, ge=0, description="Bumped by the store on every accepted write")

    class Config:
        frozen = True
        use_enum_values = False  # Keep enum objects, not just values

    @field_validator("items")
    @classmethod
    def _items_not_blank(cls, items: List[str]) -> List[str]:
        cleaned = [item.strip() for item in items]
        if any(not item for item in cleaned):
            raise ValueError("item descriptions must not be blank")
        return cleaned

    @model_validator(mode="after")
    def _check_timestamps(self) -> "LaundryRequest":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        return self


class ClaimRecord(BaseModel):
    """An ownership claim attached to a lost item."""
    claim_id: str = Field(default_factory=new_id, description="Unique claim identifier")
    claimant_id: str = Field(..., min_length=1, description="Actor who submitted the claim")
    justification: str = Field(..., min_length=1, description="Why the claimant believes the item is theirs")
    contact_info: str = Field(..., min_length=1, description="How staff can reach the claimant")
    claimed_at: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True


class VerificationRecord(BaseModel):
    """Staff decision on a claim, kept for audit."""
    decided_by: str = Field(..., min_length=1)
    approved: bool
    notes: Optional[str] = None
    decided_at: datetime = Field(default_factory=utc_now)
    resolved_claim: ClaimRecord = Field(..., description="The claim this decision resolved")

    class Config:
        frozen = True


class LostItem(BaseModel):
    """
    Lost Item Model

    A found object held by staff until its owner claims it.

    Invariant: ``claim`` is set exactly when ``status`` is CLAIMED.
    """
    kind: ClassVar[EntityKind] = EntityKind.LOST_ITEM

    id: str = Field(default_factory=new_id, description="Unique item identifier")
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1, description="Where the item was found")
    reported_by: str = Field(..., min_length=1, description="Handler who logged the item")
    status: LostItemStatus = Field(default=LostItemStatus.AVAILABLE)
    claim: Optional[ClaimRecord] = Field(default=None, description="Live claim, if any")
    verification: Optional[VerificationRecord] = Field(default=None, description="Latest claim decision")
    image_ref: Optional[str] = Field(default=None, description="Opaque object store reference for the photo")
    found_at: Optional[datetime] = None
    notes: Optional[str] = None
    returned_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, ge=0)

    class Config:
        frozen = True
        use_enum_values = False

    @model_validator(mode="after")
    def _check_claim_invariants(self) -> "LostItem":
        if (self.claim is not None) != (self.status == LostItemStatus.CLAIMED):
            raise ValueError(f"claim must be present exactly when status is claimed (status={self.status.value})")
        if self.status == LostItemStatus.RETURNED and not (self.verification and self.verification.approved):
            raise ValueError("a returned item needs an approved verification")
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        return self


Entity = Union[LaundryRequest, LostItem]

ENTITY_MODELS = {
    EntityKind.LAUNDRY_REQUEST: LaundryRequest,
    EntityKind.LOST_ITEM: LostItem,
}


def newest_first(entities: Iterable[Entity]) -> List[Entity]:
    """Order entities the way every list view shows them."""
    return sorted(entities, key=lambda e: (e.created_at, e.id), reverse=True)


class LaundryRequestCreate(BaseModel):
    """Request model for creating a new laundry request."""
    items: List[str] = Field(..., min_length=1, description="Item descriptions, e.g. '2 shirts'")
    pickup_time: datetime = Field(..., description="Requested pickup time")
    notes: Optional[str] = None


class LostItemCreate(BaseModel):
    """Request model for reporting a found item."""
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    image_ref: Optional[str] = None
    found_at: Optional[datetime] = None
    notes: Optional[str] = None


class Analytics(BaseModel):
    """Totals shown on the auditor dashboard."""
    total_requests: int
    completed_requests: int
    total_items: int
    pending_claims: int
    returned_items: int
