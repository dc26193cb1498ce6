"""
FastAPI Endpoints for Campus Desk

Provides REST API for laundry requests and lost-and-found items.
The acting session comes from identity headers set by the upstream
identity provider.
"""
import logging
from datetime import datetime
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from campusdesk.core.errors import (
    AlreadyClaimed,
    ConflictStale,
    InvalidTransition,
    NotAvailable,
    NotFound,
    NotInClaimedState,
    PermissionDenied,
    UpstreamUnavailable,
    ValidationError,
    WorkflowError,
)
from campusdesk.core.models import (
    Analytics,
    ClaimRecord,
    LaundryRequest,
    LaundryRequestCreate,
    LostItem,
    LostItemCreate,
    Session,
)
from campusdesk.core.states import EntityKind, Role
from campusdesk.services.workflow import WorkflowService

logger = logging.getLogger(__name__)

laundry_router = APIRouter(prefix="/laundry-requests", tags=["laundry"])
lost_items_router = APIRouter(prefix="/lost-items", tags=["lost-and-found"])
views_router = APIRouter(tags=["views"])

_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    InvalidTransition: status.HTTP_400_BAD_REQUEST,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    ConflictStale: status.HTTP_409_CONFLICT,
    AlreadyClaimed: status.HTTP_409_CONFLICT,
    NotAvailable: status.HTTP_409_CONFLICT,
    NotInClaimedState: status.HTTP_409_CONFLICT,
    UpstreamUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@lru_cache
def get_service() -> WorkflowService:
    """Process-wide service (in-memory store; would be a database in production)."""
    return WorkflowService()


def get_session(
    x_actor_id: str = Header(..., description="Actor id from the identity provider"),
    x_actor_role: Role = Header(..., description="Actor role from the identity provider"),
    x_actor_name: Optional[str] = Header(default=None),
) -> Session:
    if not x_actor_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing actor id")
    return Session(actor_id=x_actor_id.strip(), role=x_actor_role, display_name=x_actor_name)


def _http_error(error: WorkflowError) -> HTTPException:
    code = _STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST)
    if code >= 500:
        logger.error(f"{type(error).__name__}: {error}")
    return HTTPException(status_code=code, detail=f"{type(error).__name__}: {error}")


class LaundryListResponse(BaseModel):
    """Response model for a scoped list of laundry requests."""
    requests: List[LaundryRequest]
    counters: Dict[str, int]


class LostItemListResponse(BaseModel):
    """Response model for a scoped list of lost items."""
    items: List[LostItem]
    counters: Dict[str, int]


class AdvanceRequest(BaseModel):
    """Request model for advancing laundry status."""
    status: str = Field(..., description="Requested next status, e.g. 'in-process'")
    notes: Optional[str] = None


class ClaimSubmission(BaseModel):
    """Request model for claiming a lost item."""
    justification: str = Field(..., min_length=1)
    contact_info: str = Field(..., min_length=1)


class ClaimDecision(BaseModel):
    """Request model for a staff decision on a claim."""
    approved: bool
    notes: Optional[str] = None


# ============================================
# LAUNDRY REQUESTS
# ============================================

@laundry_router.post("/", response_model=LaundryRequest, status_code=status.HTTP_201_CREATED)
async def create_laundry_request(
    payload: LaundryRequestCreate,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> LaundryRequest:
    """
    Create a new laundry request.

    The request starts in pending state.
    """
    try:
        return await service.create_laundry_request(session, payload.items, payload.pickup_time, payload.notes)
    except WorkflowError as e:
        raise _http_error(e)


@laundry_router.get("/", response_model=LaundryListResponse)
async def list_laundry_requests(
    status_filter: Optional[str] = None,
    search: Optional[str] = None,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> LaundryListResponse:
    """List the laundry requests visible to the caller, newest first."""
    try:
        requests = await service.list_requests(session, status_filter, search)
        counters = await service.get_counters(session, EntityKind.LAUNDRY_REQUEST, status_filter, search)
    except WorkflowError as e:
        raise _http_error(e)
    return LaundryListResponse(requests=requests, counters=counters)


@laundry_router.get("/{request_id}", response_model=LaundryRequest)
async def get_laundry_request(
    request_id: str,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> LaundryRequest:
    try:
        return await service.get_request(session, request_id)
    except WorkflowError as e:
        raise _http_error(e)


@laundry_router.post("/{request_id}/advance", response_model=LaundryRequest)
async def advance_laundry_request(
    request_id: str,
    payload: AdvanceRequest,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> LaundryRequest:
    """
    Advance a laundry request to the requested status.

    Only the next status in the workflow (or the current one) is accepted.
    """
    try:
        return await service.advance_laundry_status(session, request_id, payload.status, payload.notes)
    except WorkflowError as e:
        raise _http_error(e)


# ============================================
# LOST AND FOUND
# ============================================

@lost_items_router.post("/", response_model=LostItem, status_code=status.HTTP_201_CREATED)
async def report_lost_item(
    payload: LostItemCreate,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> LostItem:
    """Report a found item. It starts out available for claiming."""
    try:
        return await service.report_lost_item(
            session,
            payload.description,
            payload.category,
            payload.location,
            image_ref=payload.image_ref,
            found_at=payload.found_at,
            notes=payload.notes,
        )
    except WorkflowError as e:
        raise _http_error(e)


@lost_items_router.get("/", response_model=LostItemListResponse)
async def list_lost_items(
    status_filter: Optional[str] = None,
    search: Optional[str] = None,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> LostItemListResponse:
    try:
        items = await service.list_items(session, status_filter, search)
        counters = await service.get_counters(session, EntityKind.LOST_ITEM, status_filter, search)
    except WorkflowError as e:
        raise _http_error(e)
    return LostItemListResponse(items=items, counters=counters)


@lost_items_router.get("/{item_id}", response_model=LostItem)
async def get_lost_item(
    item_id: str,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> LostItem:
    try:
        return await service.get_item(session, item_id)
    except WorkflowError as e:
        raise _http_error(e)


@lost_items_router.post("/{item_id}/claim", response_model=ClaimRecord, status_code=status.HTTP_201_CREATED)
async def submit_claim(
    item_id: str,
    payload: ClaimSubmission,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> ClaimRecord:
    """
    Claim an available item.

    Fails with 409 if another claim is pending or the item was returned.
    """
    try:
        return await service.submit_claim(session, item_id, payload.justification, payload.contact_info)
    except WorkflowError as e:
        raise _http_error(e)


@lost_items_router.post("/{item_id}/decision", response_model=LostItem)
async def decide_claim(
    item_id: str,
    payload: ClaimDecision,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> LostItem:
    """
    Staff approves or rejects the pending claim on an item.

    Approval marks the item returned. Rejection makes it available again.
    """
    try:
        return await service.decide_claim(session, item_id, payload.approved, payload.notes)
    except WorkflowError as e:
        raise _http_error(e)


# ============================================
# DASHBOARD HELPER ENDPOINTS
# ============================================

@views_router.get("/counters/{kind}", response_model=Dict[str, int])
async def get_counters(
    kind: EntityKind,
    status_filter: Optional[str] = None,
    search: Optional[str] = None,
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> Dict[str, int]:
    """Per-status counts over the entities visible to the caller."""
    try:
        return await service.get_counters(session, kind, status_filter, search)
    except WorkflowError as e:
        raise _http_error(e)


@views_router.get("/analytics", response_model=Analytics)
async def get_analytics(
    session: Session = Depends(get_session),
    service: WorkflowService = Depends(get_service),
) -> Analytics:
    """Get summary statistics for the auditor dashboard."""
    try:
        return await service.get_analytics(session)
    except WorkflowError as e:
        raise _http_error(e)
