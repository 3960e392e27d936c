"""
Buyer assignment and contact logging.

An admin assigns a buyer (Airtable record) to a user. The assignment then moves
through assigned -> contacted -> in_progress -> converted, and can be released
or expired from any active state.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .audit_log import AuditLogger
from .errors import InvalidTransitionError, NotFoundError, RequestValidationError, StoreError
from .feeds import BuyerFeed
from .notifications import Notifier
from .store import (
    ACTIVE_STATUSES,
    AssignmentStatus,
    BuyerAssignment,
    BuyerContact,
    DataStore,
)
from .subscription import start_of_month

logger = logging.getLogger(__name__)

ASSIGNMENT_CONTACT_METHODS = ("email", "whatsapp", "phone", "in_person")

TRANSITIONS = {
    AssignmentStatus.ASSIGNED: {AssignmentStatus.CONTACTED, AssignmentStatus.EXPIRED, AssignmentStatus.RELEASED},
    AssignmentStatus.CONTACTED: {AssignmentStatus.IN_PROGRESS, AssignmentStatus.EXPIRED, AssignmentStatus.RELEASED},
    AssignmentStatus.IN_PROGRESS: {AssignmentStatus.CONVERTED, AssignmentStatus.EXPIRED, AssignmentStatus.RELEASED},
    AssignmentStatus.CONVERTED: set(),
    AssignmentStatus.EXPIRED: set(),
    AssignmentStatus.RELEASED: set(),
}


def can_transition(current: AssignmentStatus, new: AssignmentStatus) -> bool:
    return new in TRANSITIONS[current]


def _to_status(status) -> AssignmentStatus:
    try:
        return AssignmentStatus(status)
    except ValueError:
        valid = ", ".join(s.value for s in AssignmentStatus)
        raise RequestValidationError(f"Invalid status '{status}'. Use: {valid}")


class AssignmentService:
    """Assign buyers to users and log the contacts made with them."""

    def __init__(
        self,
        store: DataStore,
        buyers: Optional[BuyerFeed] = None,
        notifier: Optional[Notifier] = None,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.buyers = buyers
        self.notifier = notifier
        self.audit = audit
        self._clock = clock

    def _audit(self, action: str, assignment: BuyerAssignment, user_id: Optional[str], old=None) -> None:
        if self.audit is None:
            return
        self.audit.log_assignment(
            action,
            assignment.id,
            user_id,
            old_status=old.value if old else None,
            new_status=assignment.status.value,
        )

    def _require(self, assignment_id: str, company_id: Optional[str] = None) -> BuyerAssignment:
        assignment = self.store.get_assignment(assignment_id)
        # Another company's assignment is reported as missing
        if assignment is None or (company_id is not None and assignment.company_id != company_id):
            raise NotFoundError(f"Assignment {assignment_id} not found")
        return assignment

    def assign_buyer(
        self,
        airtable_record_id: str,
        user_id: str,
        assigned_by: Optional[str] = None,
        company_id: Optional[str] = None,
        airtable_lead_id: Optional[int] = None,
        notes: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        caller_email: Optional[str] = None,
        caller_name: Optional[str] = None,
    ) -> BuyerAssignment:
        """Create the buyer's single active assignment.

        Raises AssignmentConflictError if the buyer is already assigned.
        """
        if not airtable_record_id or not user_id:
            raise RequestValidationError("airtableRecordId and userId are required")

        assignment = self.store.create_assignment(BuyerAssignment(
            airtable_record_id=airtable_record_id,
            user_id=user_id,
            airtable_lead_id=airtable_lead_id,
            company_id=company_id,
            assigned_by=assigned_by,
            assigned_at=self._clock(),
            notes=notes,
            expires_at=expires_at,
        ))
        logger.info(f"Assigned buyer {airtable_record_id} to {user_id} ({assignment.id})")
        self._audit("buyer_assigned", assignment, assigned_by)

        if caller_email and self.notifier is not None:
            self._notify(assignment, caller_email, caller_name)
        return assignment

    def _notify(self, assignment: BuyerAssignment, caller_email: str, caller_name: Optional[str]) -> None:
        if self.buyers is None:
            return
        try:
            buyer = self.buyers.get_buyer(assignment.airtable_record_id)
        except Exception as e:
            logger.error(f"Could not load buyer {assignment.airtable_record_id} for notification: {e}")
            return
        if buyer is None:
            logger.warning(f"Buyer {assignment.airtable_record_id} not found, notification not sent")
            return
        self.notifier.send_assignment_notification(caller_email, caller_name, buyer)

    def update_status(
        self,
        assignment_id: str,
        status,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> BuyerAssignment:
        """Move an assignment along the state machine.

        With company_id, assignments belonging to another company raise NotFoundError.
        """
        new_status = _to_status(status)
        current = self._require(assignment_id, company_id)

        if not can_transition(current.status, new_status):
            raise InvalidTransitionError(
                f"Cannot change assignment from {current.status.value} to {new_status.value}",
                details={"from": current.status.value, "to": new_status.value},
            )

        updated = self.store.update_assignment(
            assignment_id, {"status": new_status}, expected_status=current.status
        )
        if updated is None:
            raise InvalidTransitionError(
                f"Assignment {assignment_id} changed while updating, please retry",
                details={"from": current.status.value, "to": new_status.value},
            )

        logger.info(f"Assignment {assignment_id}: {current.status.value} -> {new_status.value}")
        self._audit("assignment_status_changed", updated, user_id, old=current.status)
        return updated

    def release_buyer(
        self, assignment_id: str, user_id: Optional[str] = None, company_id: Optional[str] = None
    ) -> BuyerAssignment:
        return self.update_status(assignment_id, AssignmentStatus.RELEASED, user_id, company_id)

    def record_contact(
        self,
        assignment_id: str,
        user_id: str,
        contact_method: str,
        message_content: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> BuyerContact:
        """Log a contact, then advance an 'assigned' assignment to 'contacted'."""
        if contact_method not in ASSIGNMENT_CONTACT_METHODS:
            raise RequestValidationError(
                f"Invalid contact method '{contact_method}'. Use: {', '.join(ASSIGNMENT_CONTACT_METHODS)}"
            )

        assignment = self._require(assignment_id, company_id)
        if not assignment.active:
            raise InvalidTransitionError(
                f"Cannot record a contact on a {assignment.status.value} assignment"
            )

        contact = self.store.create_contact(BuyerContact(
            user_id=user_id,
            buyer_id=assignment.airtable_record_id,
            assignment_id=assignment.id,
            contact_method=contact_method,
            message_content=message_content,
            contacted_at=self._clock(),
        ))
        logger.info(f"Recorded {contact_method} contact for assignment {assignment_id}")

        if assignment.status == AssignmentStatus.ASSIGNED:
            try:
                updated = self.store.update_assignment(
                    assignment_id,
                    {"status": AssignmentStatus.CONTACTED},
                    expected_status=AssignmentStatus.ASSIGNED,
                )
            except StoreError as e:
                # The contact is already stored; the status catches up on the next contact
                logger.error(f"Contact saved but assignment {assignment_id} not advanced: {e}")
            else:
                if updated is not None:
                    self._audit("assignment_status_changed", updated, user_id, old=AssignmentStatus.ASSIGNED)

        return contact

    def my_assignments(self, user_id: str) -> list[BuyerAssignment]:
        return self.store.list_assignments(user_id=user_id, statuses=ACTIVE_STATUSES)

    def all_assignments(self, company_id: str) -> list[BuyerAssignment]:
        """Every assignment made for the company, newest first."""
        return self.store.list_assignments(company_id=company_id)

    def assignment_status(self, airtable_record_id: str) -> Optional[BuyerAssignment]:
        """The buyer's active assignment, if any."""
        return self.store.find_active_assignment(airtable_record_id)

    def contact_history(self, user_id: str) -> list[BuyerContact]:
        return self.store.list_contacts(user_id=user_id)

    def monthly_contact_count(self, user_id: str) -> int:
        return self.store.count_contacts(user_id=user_id, since=start_of_month(self._clock()))
