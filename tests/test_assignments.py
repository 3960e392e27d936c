"""Tests for buyer assignments and contact logging."""
import pytest
from datetime import datetime, timezone
from unittest.mock import Mock
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.assignments import AssignmentService, can_transition
from naybourhood.errors import (
    AssignmentConflictError,
    InvalidTransitionError,
    NotFoundError,
    RequestValidationError,
    StoreError,
)
from naybourhood.store import AssignmentStatus, MemoryStore

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def audit():
    return Mock()


@pytest.fixture
def service(store, audit):
    return AssignmentService(store, audit=audit, clock=lambda: NOW)


class TestTransitions:

    @pytest.mark.parametrize("current,new,allowed", [
        (AssignmentStatus.ASSIGNED, AssignmentStatus.CONTACTED, True),
        (AssignmentStatus.CONTACTED, AssignmentStatus.IN_PROGRESS, True),
        (AssignmentStatus.IN_PROGRESS, AssignmentStatus.CONVERTED, True),
        (AssignmentStatus.ASSIGNED, AssignmentStatus.CONVERTED, False),
        (AssignmentStatus.CONTACTED, AssignmentStatus.ASSIGNED, False),
        (AssignmentStatus.IN_PROGRESS, AssignmentStatus.RELEASED, True),
        (AssignmentStatus.ASSIGNED, AssignmentStatus.EXPIRED, True),
        (AssignmentStatus.RELEASED, AssignmentStatus.ASSIGNED, False),
        (AssignmentStatus.CONVERTED, AssignmentStatus.RELEASED, False),
    ])
    def test_can_transition(self, current, new, allowed):
        assert can_transition(current, new) is allowed


class TestAssignBuyer:

    def test_assign(self, service, audit):
        assignment = service.assign_buyer("recB1", "user-1", assigned_by="admin-1", notes="Call after 6pm")
        assert assignment.status == AssignmentStatus.ASSIGNED
        assert assignment.assigned_at == NOW
        audit.log_assignment.assert_called_once_with(
            "buyer_assigned", assignment.id, "admin-1", old_status=None, new_status="assigned"
        )

    def test_required_fields(self, service):
        with pytest.raises(RequestValidationError):
            service.assign_buyer("", "user-1")

    def test_second_active_assignment_conflicts(self, service):
        service.assign_buyer("recB1", "user-1")
        with pytest.raises(AssignmentConflictError):
            service.assign_buyer("recB1", "user-2")

    def test_notification_sent_with_buyer(self, store):
        buyer = Mock()
        buyers = Mock()
        buyers.get_buyer.return_value = buyer
        notifier = Mock()
        service = AssignmentService(store, buyers=buyers, notifier=notifier)

        service.assign_buyer("recB1", "user-1", caller_email="amy@example.com", caller_name="Amy")

        notifier.send_assignment_notification.assert_called_once_with("amy@example.com", "Amy", buyer)

    def test_notification_skipped_when_buyer_lookup_fails(self, store):
        buyers = Mock()
        buyers.get_buyer.side_effect = RuntimeError("Airtable down")
        notifier = Mock()
        service = AssignmentService(store, buyers=buyers, notifier=notifier)

        assignment = service.assign_buyer("recB1", "user-1", caller_email="amy@example.com")

        assert assignment.active
        notifier.send_assignment_notification.assert_not_called()


class TestUpdateStatus:

    def test_forward_path(self, service):
        assignment = service.assign_buyer("recB1", "user-1")
        for status in ("contacted", "in_progress", "converted"):
            assignment = service.update_status(assignment.id, status)
        assert assignment.status == AssignmentStatus.CONVERTED
        assert service.assignment_status("recB1") is None

    def test_skipping_a_step_is_rejected(self, service):
        assignment = service.assign_buyer("recB1", "user-1")
        with pytest.raises(InvalidTransitionError) as exc:
            service.update_status(assignment.id, "converted")
        assert exc.value.details == {"from": "assigned", "to": "converted"}

    def test_unknown_status(self, service):
        assignment = service.assign_buyer("recB1", "user-1")
        with pytest.raises(RequestValidationError, match="Invalid status"):
            service.update_status(assignment.id, "won")

    def test_missing_assignment(self, service):
        with pytest.raises(NotFoundError):
            service.update_status("nope", "contacted")

    def test_release_frees_the_buyer(self, service):
        assignment = service.assign_buyer("recB1", "user-1")
        released = service.release_buyer(assignment.id, "user-1")
        assert released.status == AssignmentStatus.RELEASED
        assert service.assign_buyer("recB1", "user-2").user_id == "user-2"

    def test_concurrent_change_detected(self, store, audit):
        service = AssignmentService(store, audit=audit)
        assignment = service.assign_buyer("recB1", "user-1")
        store.update_assignment = Mock(return_value=None)
        with pytest.raises(InvalidTransitionError, match="changed while updating"):
            service.update_status(assignment.id, "contacted")


class TestRecordContact:

    def test_first_contact_advances_status(self, service, store):
        assignment = service.assign_buyer("recB1", "user-1")
        contact = service.record_contact(assignment.id, "user-1", "phone", "Left a voicemail")

        assert contact.buyer_id == "recB1"
        assert contact.assignment_id == assignment.id
        assert store.get_assignment(assignment.id).status == AssignmentStatus.CONTACTED
        assert service.monthly_contact_count("user-1") == 1

    def test_later_contacts_keep_status(self, service, store):
        assignment = service.assign_buyer("recB1", "user-1")
        service.update_status(assignment.id, "contacted")
        service.update_status(assignment.id, "in_progress")
        service.record_contact(assignment.id, "user-1", "email")
        assert store.get_assignment(assignment.id).status == AssignmentStatus.IN_PROGRESS

    def test_invalid_method(self, service):
        assignment = service.assign_buyer("recB1", "user-1")
        with pytest.raises(RequestValidationError, match="Invalid contact method"):
            service.record_contact(assignment.id, "user-1", "carrier_pigeon")

    def test_inactive_assignment_rejected(self, service):
        assignment = service.assign_buyer("recB1", "user-1")
        service.release_buyer(assignment.id)
        with pytest.raises(InvalidTransitionError):
            service.record_contact(assignment.id, "user-1", "phone")

    def test_status_write_failure_keeps_contact(self, service, store):
        assignment = service.assign_buyer("recB1", "user-1")
        store.update_assignment = Mock(side_effect=StoreError("timeout"))

        contact = service.record_contact(assignment.id, "user-1", "whatsapp")

        assert contact.contact_method == "whatsapp"
        assert [c.id for c in service.contact_history("user-1")] == [contact.id]


class TestQueries:

    def test_my_assignments_only_active(self, service):
        active = service.assign_buyer("recB1", "user-1", company_id="co-1")
        released = service.assign_buyer("recB2", "user-1", company_id="co-1")
        service.release_buyer(released.id)
        service.assign_buyer("recB3", "user-2", company_id="co-1")

        assert [a.id for a in service.my_assignments("user-1")] == [active.id]
        assert len(service.all_assignments("co-1")) == 3

    def test_all_assignments_limited_to_company(self, service):
        own = service.assign_buyer("recB1", "user-1", company_id="co-1")
        service.assign_buyer("recB2", "user-9", company_id="co-9")

        assert [a.id for a in service.all_assignments("co-1")] == [own.id]


class TestCompanyScope:

    def test_other_company_cannot_release(self, service):
        assignment = service.assign_buyer("recB1", "user-1", company_id="co-1")
        with pytest.raises(NotFoundError):
            service.release_buyer(assignment.id, "user-9", company_id="co-9")
        assert service.assignment_status("recB1").status == AssignmentStatus.ASSIGNED

    def test_other_company_cannot_record_contact(self, service):
        assignment = service.assign_buyer("recB1", "user-1", company_id="co-1")
        with pytest.raises(NotFoundError):
            service.record_contact(assignment.id, "user-9", "phone", company_id="co-9")
        assert service.contact_history("user-9") == []

    def test_same_company_can_update(self, service):
        assignment = service.assign_buyer("recB1", "user-1", company_id="co-1")
        updated = service.update_status(assignment.id, "contacted", "user-2", company_id="co-1")
        assert updated.status == AssignmentStatus.CONTACTED
