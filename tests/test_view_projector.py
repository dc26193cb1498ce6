"""
Tests for role-scoped lists, counters and live views.
"""
import asyncio

import pytest

from campusdesk.core.states import EntityKind, LostItemStatus
from campusdesk.feed import ChangeEvent, ChangeType
from campusdesk.views import ViewProjector, build_predicate, scope_for


def _event(change_type, entity):
    return ChangeEvent(
        change_type=change_type,
        kind=entity.kind,
        entity_id=entity.id,
        version=entity.version,
        entity=entity,
    )


class TestViewProjector:

    @pytest.mark.asyncio
    async def test_counters_start_from_snapshot(self, service, requester, handler, pickup):
        a = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        await service.create_laundry_request(requester, ["1 towel"], pickup)
        await service.advance_laundry_status(handler, a.id, "in-process")

        projector = ViewProjector(EntityKind.LAUNDRY_REQUEST, await service.list_requests(handler))
        assert projector.counters == {"pending": 1, "in-process": 1, "ready": 0, "delivered": 0}
        assert projector.total == 2

    @pytest.mark.asyncio
    async def test_counters_match_recount_after_every_event(self, service, handler, s1, s2):
        sub = await service.subscribe_items(handler)
        projector = ViewProjector(EntityKind.LOST_ITEM, sub.snapshot)

        item = await service.report_lost_item(handler, "Keys on a red lanyard", "Keys", "Gymnasium")
        await service.report_lost_item(handler, "Calculus textbook", "Books", "Library")
        await service.submit_claim(s1, item.id, "my keys", "room 4")
        await service.decide_claim(handler, item.id, approved=False)
        await service.submit_claim(s2, item.id, "actually mine", "room 9")
        await service.decide_claim(handler, item.id, approved=True)

        while sub.pending:
            event = await sub.next_event()
            projector.apply(event)
            assert projector.counters == projector.recount()
            for entity in projector.entities:
                assert (entity.claim is not None) == (entity.status == LostItemStatus.CLAIMED)

        assert projector.counters == {"available": 1, "claimed": 0, "returned": 1}

    @pytest.mark.asyncio
    async def test_stale_and_foreign_events_are_ignored(self, service, requester, handler, pickup):
        created = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        advanced = await service.advance_laundry_status(handler, created.id, "in-process")

        projector = ViewProjector(EntityKind.LAUNDRY_REQUEST, [advanced])
        assert projector.apply(_event(ChangeType.UPDATED, created)) is False
        assert projector.get(created.id) == advanced

        item = await service.report_lost_item(handler, "Scarf", "Clothing", "Garden")
        assert projector.apply(_event(ChangeType.ADDED, item)) is False
        assert projector.counters["in-process"] == 1

    @pytest.mark.asyncio
    async def test_removed_event_drops_entity(self, service, requester, handler, pickup):
        created = await service.create_laundry_request(requester, ["2 shirts"], pickup)
        projector = ViewProjector(EntityKind.LAUNDRY_REQUEST, [created])

        advanced = await service.advance_laundry_status(handler, created.id, "in-process")
        assert projector.apply(_event(ChangeType.REMOVED, advanced)) is True
        assert projector.total == 0
        assert projector.counters["pending"] == 0
        assert projector.apply(_event(ChangeType.REMOVED, advanced)) is False


class TestScopes:

    @pytest.mark.asyncio
    async def test_search_matches_item_text_case_insensitively(self, service, requester, handler, pickup):
        await service.create_laundry_request(requester, ["2 Shirts", "1 towel"], pickup)
        await service.create_laundry_request(requester, ["jeans"], pickup)
        await service.report_lost_item(handler, "Silver watch", "Accessories", "Library")
        await service.report_lost_item(handler, "Umbrella", "Accessories", "Cafeteria")

        assert len(await service.list_requests(handler, search="shirt")) == 1
        assert len(await service.list_items(requester, search="LIBRARY")) == 1
        assert len(await service.list_items(requester, search="accessories")) == 2
        assert len(await service.list_items(requester, search="   ")) == 2

    def test_requester_scope_pins_owner_for_requests_only(self, requester, handler):
        assert scope_for(requester, EntityKind.LAUNDRY_REQUEST).owner_id == "u1"
        assert scope_for(requester, EntityKind.LOST_ITEM).owner_id is None
        assert scope_for(handler, EntityKind.LAUNDRY_REQUEST).owner_id is None

    def test_unknown_status_filter_is_a_validation_error(self, handler):
        from campusdesk.core.errors import ValidationError

        with pytest.raises(ValidationError):
            scope_for(handler, EntityKind.LOST_ITEM, status="lost")

    @pytest.mark.asyncio
    async def test_predicate_rejects_other_kind(self, service, handler):
        item = await service.report_lost_item(handler, "Scarf", "Clothing", "Garden")
        predicate = build_predicate(scope_for(handler, EntityKind.LAUNDRY_REQUEST))
        assert predicate(item) is False


class TestLiveView:

    @pytest.mark.asyncio
    async def test_live_view_tracks_writes(self, service, requester, handler, pickup):
        changes = []
        view = await service.open_view(
            handler, EntityKind.LAUNDRY_REQUEST, on_change=lambda projector: changes.append(projector.total)
        )
        try:
            request = await service.create_laundry_request(requester, ["2 shirts"], pickup)
            await service.advance_laundry_status(handler, request.id, "in-process")
            await asyncio.wait_for(view.settle(), 1.0)

            assert [r.id for r in view.entities] == [request.id]
            assert view.counters == {"pending": 0, "in-process": 1, "ready": 0, "delivered": 0}
            assert changes == [1, 1]
        finally:
            await view.close()

        assert service.feed.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_async_callback_and_requester_scope(self, service, requester, other_requester, pickup):
        seen = []

        async def on_change(projector):
            await asyncio.sleep(0)
            seen.append(dict(projector.counters))

        view = await service.open_view(requester, EntityKind.LAUNDRY_REQUEST, on_change=on_change)
        try:
            await service.create_laundry_request(other_requester, ["jeans"], pickup)
            await service.create_laundry_request(requester, ["2 shirts"], pickup)
            await asyncio.wait_for(view.settle(), 1.0)
            assert view.projector.total == 1
            assert seen == [{"pending": 1, "in-process": 0, "ready": 0, "delivered": 0}]
        finally:
            await view.close()

    @pytest.mark.asyncio
    async def test_closed_view_stops_updating(self, service, requester, pickup):
        view = await service.open_view(requester, EntityKind.LAUNDRY_REQUEST)
        await view.close()
        await service.create_laundry_request(requester, ["2 shirts"], pickup)
        await asyncio.sleep(0)
        assert view.projector.total == 0
