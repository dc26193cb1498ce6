"""
End-to-end tests of the workflow commands through WorkflowService.
"""
import asyncio

import pytest

from campusdesk.config import Settings
from campusdesk.core.errors import (
    ConflictStale,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from campusdesk.core.states import EntityKind, LaundryStatus
from campusdesk.services.workflow import WorkflowService


class TestLaundryWorkflow:

    @pytest.mark.asyncio
    async def test_request_lifecycle_scenario(self, service, requester, handler, pickup):
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        assert request.status == LaundryStatus.PENDING
        assert request.owner_id == "u1"
        assert request.owner_name == "Uma"

        with pytest.raises(InvalidTransition):
            await service.advance_laundry_status(handler, request.id, "ready")

        in_process = await service.advance_laundry_status(handler, request.id, "in-process")
        assert in_process.status == LaundryStatus.IN_PROCESS

        ready = await service.advance_laundry_status(handler, request.id, "ready")
        assert ready.status == LaundryStatus.READY
        assert ready.version == 3

    @pytest.mark.asyncio
    async def test_failed_transition_leaves_request_untouched(self, service, requester, handler, pickup):
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        for bad in ["ready", "delivered", "washed"]:
            with pytest.raises(InvalidTransition):
                await service.advance_laundry_status(handler, request.id, bad)
        assert await service.get_request(handler, request.id) == request

    @pytest.mark.asyncio
    async def test_delivery_is_terminal_and_stamped(self, service, requester, auditor, pickup):
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        for status in ["in-process", "ready", "delivered"]:
            request = await service.advance_laundry_status(auditor, request.id, status, notes=f"now {status}")

        assert request.delivered_at is not None
        assert request.notes == "now delivered"
        with pytest.raises(InvalidTransition):
            await service.advance_laundry_status(auditor, request.id, "pending")

    @pytest.mark.asyncio
    async def test_same_status_is_a_noop(self, service, requester, handler, pickup):
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        same = await service.advance_laundry_status(handler, request.id, "pending")
        assert same.version == request.version
        assert same == request

    @pytest.mark.asyncio
    async def test_blank_notes_are_not_stored(self, service, requester, handler, pickup):
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup, notes="  ")
        assert request.notes is None

        advanced = await service.advance_laundry_status(handler, request.id, "in-process", notes="\t")
        assert advanced.notes is None
        assert advanced.version == 2

    @pytest.mark.asyncio
    async def test_requester_cannot_advance_own_request(self, service, requester, pickup):
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        with pytest.raises(PermissionDenied):
            await service.advance_laundry_status(requester, request.id, "in-process")

    @pytest.mark.asyncio
    async def test_only_requesters_create_requests(self, service, handler, pickup):
        with pytest.raises(PermissionDenied):
            await service.create_laundry_request(handler, ["2 shirts"], pickup)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("items", [[], ["  "], ["shirt", ""]])
    async def test_items_must_be_present(self, service, requester, pickup, items):
        with pytest.raises(ValidationError):
            await service.create_laundry_request(requester, items, pickup)

    @pytest.mark.asyncio
    async def test_item_limit_comes_from_settings(self, service, requester, pickup):
        with pytest.raises(ValidationError, match="at most 5"):
            await service.create_laundry_request(requester, [f"shirt {i}" for i in range(6)], pickup)

    @pytest.mark.asyncio
    async def test_requester_cannot_read_someone_elses_request(self, service, requester, other_requester, handler, pickup):
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        with pytest.raises(PermissionDenied):
            await service.get_request(other_requester, request.id)
        assert (await service.get_request(handler, request.id)).id == request.id

    @pytest.mark.asyncio
    async def test_advance_unknown_request(self, service, handler):
        with pytest.raises(NotFound):
            await service.advance_laundry_status(handler, "missing", "in-process")

    @pytest.mark.asyncio
    async def test_status_filter_and_order(self, service, requester, handler, pickup):
        first = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        await asyncio.sleep(0.002)
        second = await service.create_laundry_request(requester, ["1 towel"], pickup)
        await service.advance_laundry_status(handler, first.id, "in-process")

        assert [r.id for r in await service.list_requests(handler)] == [second.id, first.id]
        assert [r.id for r in await service.list_requests(handler, status="in-process")] == [first.id]
        counters = await service.get_counters(requester, EntityKind.LAUNDRY_REQUEST)
        assert counters == {"pending": 1, "in-process": 1, "ready": 0, "delivered": 0}

    @pytest.mark.asyncio
    async def test_stale_concurrent_advance_is_reported(self, settings, requester, handler, auditor, pickup):
        from campusdesk.store import EntityStore
        from tests.helpers import YieldingBackend

        service = WorkflowService(store=EntityStore(YieldingBackend()), settings=settings)
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup)

        results = await asyncio.gather(
            service.advance_laundry_status(handler, request.id, "in-process"),
            service.advance_laundry_status(auditor, request.id, "in-process"),
            return_exceptions=True,
        )
        assert sum(isinstance(r, ConflictStale) for r in results) == 1
        assert (await service.get_request(handler, request.id)).version == 2


class TestLostItems:

    @pytest.mark.asyncio
    async def test_report_creates_available_item(self, service, handler):
        item = await service.report_lost_item(
            handler, "Blue backpack", "accessories", "Library", image_ref="lost-items/abc/photo.jpg"
        )
        assert item.status.value == "available"
        assert item.category == "Accessories"
        assert item.reported_by == "h1"
        assert item.image_ref == "lost-items/abc/photo.jpg"
        assert item.claim is None
        assert item.version == 1

    @pytest.mark.asyncio
    async def test_requester_cannot_report(self, service, requester):
        with pytest.raises(PermissionDenied):
            await service.report_lost_item(requester, "Blue backpack", "Accessories", "Library")

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, service, handler):
        with pytest.raises(ValidationError):
            await service.report_lost_item(handler, "Blue backpack", "Spaceships", "Library")

    @pytest.mark.asyncio
    async def test_any_category_when_catalog_empty(self, handler):
        service = WorkflowService(settings=Settings(lost_item_categories=[]))
        item = await service.report_lost_item(handler, "Kite", "Toys", "Garden")
        assert item.category == "Toys"

    @pytest.mark.asyncio
    async def test_location_matches_catalog(self, service, handler):
        item = await service.report_lost_item(handler, "Water bottle", "Other", "  laundry room ")
        assert item.location == "Laundry Room"

        with pytest.raises(ValidationError, match="location"):
            await service.report_lost_item(handler, "Water bottle", "Other", "Moon base")

    @pytest.mark.asyncio
    async def test_any_location_when_catalog_empty(self, handler):
        service = WorkflowService(settings=Settings(lost_item_locations=[]))
        item = await service.report_lost_item(handler, "Kite", "Other", "Rooftop")
        assert item.location == "Rooftop"

    @pytest.mark.asyncio
    async def test_blank_notes_are_dropped(self, service, handler, s1):
        item = await service.report_lost_item(handler, "Scarf", "Clothing", "Garden", notes="   ")
        assert item.notes is None

        await service.submit_claim(s1, item.id, "mine", "room 4")
        decided = await service.decide_claim(handler, item.id, approved=False, notes=" ")
        assert decided.verification.notes is None

    @pytest.mark.asyncio
    async def test_blank_description_rejected(self, service, handler):
        with pytest.raises(ValidationError):
            await service.report_lost_item(handler, "   ", "Keys", "Garden")


class TestAnalytics:

    @pytest.mark.asyncio
    async def test_auditor_totals(self, service, requester, handler, auditor, s1, pickup):
        request = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        await service.create_laundry_request(requester, ["socks"], pickup)
        for status in ["in-process", "ready", "delivered"]:
            await service.advance_laundry_status(handler, request.id, status)

        claimed = await service.report_lost_item(handler, "Phone", "Electronics", "Library")
        await service.report_lost_item(handler, "Mug", "Other", "Cafeteria")
        await service.submit_claim(s1, claimed.id, "mine", "room 4")

        analytics = await service.get_analytics(auditor)
        assert analytics.total_requests == 2
        assert analytics.completed_requests == 1
        assert analytics.total_items == 2
        assert analytics.pending_claims == 1
        assert analytics.returned_items == 0

    @pytest.mark.asyncio
    async def test_only_auditors(self, service, handler):
        with pytest.raises(PermissionDenied):
            await service.get_analytics(handler)
