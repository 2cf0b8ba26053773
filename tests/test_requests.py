"""
Tests for RequestService.
"""

import pytest

from redbut.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from redbut.models import RequestStatus
from redbut.services import RequestService
from redbut.services.notifications import MockNotificationService


class ExplodingNotifier(MockNotificationService):
    """Notifier whose every emit raises."""

    async def emit(self, *args, **kwargs):
        raise RuntimeError("notification sink unavailable")


# ==============================================================================
# CREATE REQUEST TESTS
# ==============================================================================

class TestCreateRequest:
    """Tests for create_request."""

    async def test_create_request_basic(self, request_service, store):
        request = await request_service.create_request("session-1", 12, "Need water", waiter_id="waiter-7")

        assert request.status == RequestStatus.NEW
        assert request.table_number == 12
        assert await request_service.get_request(request.id) == request

    async def test_duplicate_ready_to_pay_conflicts(self, request_service):
        await request_service.create_request("session-1", 12, "Ready to pay")

        with pytest.raises(ConflictError) as exc_info:
            await request_service.create_request("session-1", 12, "Ready to pay now")

        assert exc_info.value.message == "Already requested payment, buzzing waiter again"

    async def test_duplicate_check_is_case_insensitive(self, request_service):
        await request_service.create_request("session-1", 12, "READY TO PAY")

        with pytest.raises(ConflictError):
            await request_service.create_request("session-1", 12, "we are ready to pay, thanks")

    async def test_ready_to_pay_again_after_completion(self, request_service):
        first = await request_service.create_request("session-1", 12, "Ready to pay")
        await request_service.update_request(first.id, "waiter", status=RequestStatus.IN_PROGRESS)
        await request_service.update_request(first.id, "waiter", status=RequestStatus.COMPLETED)

        second = await request_service.create_request("session-1", 12, "Ready to pay now")

        assert second.status == RequestStatus.NEW

    async def test_on_hold_payment_request_still_blocks(self, request_service):
        first = await request_service.create_request("session-1", 12, "Ready to pay")
        await request_service.update_request(first.id, "waiter", status=RequestStatus.ON_HOLD)

        with pytest.raises(ConflictError):
            await request_service.create_request("session-1", 12, "Ready to pay now")

    async def test_other_sessions_are_independent(self, request_service):
        await request_service.create_request("session-1", 12, "Ready to pay")

        other = await request_service.create_request("session-2", 12, "Ready to pay")

        assert other.owner_id == "session-2"

    async def test_other_requests_are_not_guarded(self, request_service):
        await request_service.create_request("session-1", 12, "Need water")

        again = await request_service.create_request("session-1", 12, "Need water")

        assert again.content == "Need water"


# ==============================================================================
# READ TESTS
# ==============================================================================

class TestReadRequests:
    """Tests for reads and audit history."""

    async def test_get_unknown_request(self, request_service):
        with pytest.raises(NotFoundError):
            await request_service.get_request("req-404")

    async def test_list_for_table_filters_status(self, request_service, water_request):
        napkins = await request_service.create_request("session-1", 12, "Need napkins")
        await request_service.update_request(napkins.id, "waiter", status=RequestStatus.ACKNOWLEDGED)

        found = await request_service.list_for_table(12, status=RequestStatus.NEW)

        assert [r.id for r in found] == [water_request.id]

    async def test_list_for_owner(self, request_service, water_request):
        await request_service.create_request("session-2", 12, "Need a chair")

        found = await request_service.list_for_owner("session-1")

        assert [r.id for r in found] == [water_request.id]

    async def test_logs_for_unknown_request(self, request_service):
        with pytest.raises(NotFoundError):
            await request_service.get_logs("req-404")

    async def test_allowed_transitions_for_customer(self, request_service, water_request):
        options = await request_service.allowed_transitions(water_request.id, "client")

        assert [(o.status, o.label) for o in options] == [("New", "New"), ("Cancelled", "Cancel")]


# ==============================================================================
# UPDATE TESTS
# ==============================================================================

class TestUpdateRequest:
    """Tests for update_request."""

    async def test_update_notifies_session_and_waiter(self, request_service, notifier, water_request):
        notifier.sent.clear()

        updated = await request_service.update_request(
            water_request.id, "waiter", status=RequestStatus.ACKNOWLEDGED
        )

        assert updated.status == RequestStatus.ACKNOWLEDGED
        assert [e.channel for e in notifier.sent] == ["session:session-1", "waiter:waiter-7"]
        assert notifier.sent[0].metadata["previousStatus"] == "New"
        assert notifier.sent[0].metadata["status"] == "Acknowledged"

    async def test_noop_update_does_not_notify(self, request_service, notifier, water_request):
        notifier.sent.clear()

        await request_service.update_request(water_request.id, "waiter", status=RequestStatus.NEW)

        assert notifier.sent == []

    async def test_content_update_notifies(self, request_service, notifier, water_request):
        notifier.sent.clear()

        updated = await request_service.update_request(water_request.id, "client", content="Need ice water")

        assert updated.content == "Need ice water"
        assert len(notifier.sent) == 2

    async def test_customer_cannot_acknowledge(self, request_service, water_request):
        with pytest.raises(InvalidTransitionError):
            await request_service.update_request(water_request.id, "client", status=RequestStatus.ACKNOWLEDGED)

    async def test_failing_notifier_does_not_fail_transition(self, store, water_request):
        service = RequestService(store, ExplodingNotifier())

        updated = await service.update_request(water_request.id, "waiter", status=RequestStatus.IN_PROGRESS)

        assert updated.status == RequestStatus.IN_PROGRESS
        assert len(await service.get_logs(water_request.id)) == 1
