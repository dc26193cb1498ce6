# Core module - states, models and errors
from .states import EntityKind, Role, LaundryStatus, LostItemStatus
from .models import (
    Analytics,
    ClaimRecord,
    Entity,
    LaundryRequest,
    LaundryRequestCreate,
    LostItem,
    LostItemCreate,
    Session,
    VerificationRecord,
)
from .errors import (
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

__all__ = [
    "EntityKind",
    "Role",
    "LaundryStatus",
    "LostItemStatus",
    "Analytics",
    "ClaimRecord",
    "Entity",
    "LaundryRequest",
    "LaundryRequestCreate",
    "LostItem",
    "LostItemCreate",
    "Session",
    "VerificationRecord",
    "AlreadyClaimed",
    "ConflictStale",
    "InvalidTransition",
    "NotAvailable",
    "NotFound",
    "NotInClaimedState",
    "PermissionDenied",
    "UpstreamUnavailable",
    "ValidationError",
    "WorkflowError",
]
