"""
Claim Arbitrator

Serializes claims and claim decisions on lost items.

Both operations read the item, decide, and write back with the version
they read as the expected version. Under concurrent claims for the same
item exactly one write lands; every other claimant gets AlreadyClaimed.
Nothing here retries.
"""
import logging
from typing import Optional

from campusdesk.core.errors import (
    AlreadyClaimed,
    ConflictStale,
    NotAvailable,
    NotInClaimedState,
    PermissionDenied,
    ValidationError,
)
from campusdesk.core.models import ClaimRecord, LostItem, Session, VerificationRecord
from campusdesk.core.states import EntityKind, LostItemStatus
from campusdesk.state_machine.machine import WorkflowStateMachine, state_machine
from campusdesk.store.entity_store import EntityStore

logger = logging.getLogger(__name__)


def _required(value: Optional[str], field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


class ClaimArbitrator:
    """Enforces at most one live claim per lost item."""

    def __init__(self, store: EntityStore, machine: WorkflowStateMachine = state_machine):
        self.store = store
        self.machine = machine

    async def submit_claim(
        self,
        session: Session,
        item_id: str,
        justification: str,
        contact_info: str,
    ) -> ClaimRecord:
        """
        Claim an available item for the session's actor.

        Args:
            session: Acting session; its actor becomes the claimant
            item_id: Lost item to claim
            justification: Why the item belongs to the claimant
            contact_info: How staff can reach the claimant

        Returns:
            The claim record now attached to the item

        Raises:
            NotFound: If the item does not exist
            AlreadyClaimed: If a claim is live, or another claim won the race
            NotAvailable: If the item was already returned
        """
        justification = _required(justification, "justification")
        contact_info = _required(contact_info, "contact_info")

        item = await self.store.get(EntityKind.LOST_ITEM, item_id)

        if item.status == LostItemStatus.CLAIMED:
            raise AlreadyClaimed(f"Item {item_id} already has a pending claim")
        if item.status == LostItemStatus.RETURNED:
            raise NotAvailable(f"Item {item_id} has been returned and can no longer be claimed")

        self.machine.validate_transition(EntityKind.LOST_ITEM, item.status, LostItemStatus.CLAIMED, session.role)

        claim = ClaimRecord(
            claimant_id=session.actor_id,
            justification=justification,
            contact_info=contact_info,
        )

        try:
            updated = await self.store.put(
                EntityKind.LOST_ITEM,
                item_id,
                {"status": LostItemStatus.CLAIMED, "claim": claim},
                expected_version=item.version,
            )
        except ConflictStale:
            logger.warning(f"Claim by {session.actor_id} on item {item_id} lost the race at version {item.version}")
            raise AlreadyClaimed(f"Item {item_id} was claimed by someone else") from None

        logger.info(f"Item {item_id} claimed by {session.actor_id} (claim {claim.claim_id})")
        return updated.claim

    async def decide_claim(
        self,
        session: Session,
        item_id: str,
        approved: bool,
        notes: Optional[str] = None,
    ) -> LostItem:
        """
        Approve or reject the live claim on an item.

        Approval returns the item to its owner (terminal). Rejection clears
        the claim and makes the item claimable again. Either way the decided
        claim is kept in the verification record.

        Raises:
            NotFound: If the item does not exist
            PermissionDenied: If the session may not decide claims
            NotInClaimedState: If the item has no live claim
            ConflictStale: If the item changed since it was read
        """
        target = LostItemStatus.RETURNED if approved else LostItemStatus.AVAILABLE
        if session.role not in self.machine.allowed_roles(EntityKind.LOST_ITEM, target):
            raise PermissionDenied(f"Role {session.role.value} may not decide claims")

        item = await self.store.get(EntityKind.LOST_ITEM, item_id)
        if item.status != LostItemStatus.CLAIMED:
            raise NotInClaimedState(f"Item {item_id} is {item.status.value}, not claimed")

        self.machine.validate_transition(EntityKind.LOST_ITEM, item.status, target, session.role)

        verification = VerificationRecord(
            decided_by=session.actor_id,
            approved=approved,
            notes=(notes or "").strip() or None,
            resolved_claim=item.claim,
        )
        changes = {"status": target, "claim": None, "verification": verification}
        if approved:
            changes["returned_at"] = verification.decided_at

        try:
            updated = await self.store.put(EntityKind.LOST_ITEM, item_id, changes, expected_version=item.version)
        except ConflictStale:
            logger.warning(f"Decision on item {item_id} by {session.actor_id} hit a stale version {item.version}")
            raise

        decision = "approved" if approved else "rejected"
        logger.info(f"Claim {item.claim.claim_id} on item {item_id} {decision} by {session.actor_id}")
        return updated
