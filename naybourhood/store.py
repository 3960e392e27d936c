"""
Persisted entities and the stores that hold them.

MemoryStore keeps everything in process behind a lock. SupabaseStore keeps the
same tables in Postgres through PostgREST. Both publish a ChangeEvent to the
change feed after every successful write.
"""

import dataclasses
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from .errors import AssignmentConflictError, ContactLimitError, NotFoundError, StoreError
from .events import ChangeEvent, ChangeFeed
from .supabase_client import UNIQUE_VIOLATION, SupabaseRestClient, eq, error_code, gte, in_list

logger = logging.getLogger(__name__)


class Tables:
    ASSIGNMENTS = "buyer_assignments"
    CONTACTS = "buyer_contacts"
    CONVERSATIONS = "conversations"
    MESSAGES = "messages"
    SUBSCRIPTIONS = "subscriptions"


class AssignmentStatus(Enum):
    ASSIGNED = "assigned"
    CONTACTED = "contacted"
    IN_PROGRESS = "in_progress"
    CONVERTED = "converted"
    EXPIRED = "expired"
    RELEASED = "released"


ACTIVE_STATUSES = (AssignmentStatus.ASSIGNED, AssignmentStatus.CONTACTED, AssignmentStatus.IN_PROGRESS)

CONTACT_METHODS = ("email", "whatsapp", "phone", "in_person", "platform")
CONTACT_OUTCOMES = ("no_response", "interested", "not_interested", "viewing_booked", "converted")
CONVERSATION_STATUSES = ("active", "buyer_responded", "awaiting_response", "closed")
SUBSCRIPTION_STATUSES = ("active", "past_due", "cancelled")

CONTACT_LIMIT_HINT = "contact_limit"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def parse_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def encode_values(values: dict) -> dict:
    return {key: encode_value(value) for key, value in values.items()}


class Entity:
    """Row conversion shared by the persisted dataclasses."""
    time_fields: tuple = ()

    def to_row(self) -> dict:
        return encode_values(dataclasses.asdict(self))

    @classmethod
    def from_row(cls, row: dict):
        """Build the entity from a stored row; malformed rows raise StoreError."""
        names = {f.name for f in dataclasses.fields(cls)}
        try:
            values = {}
            for key, value in row.items():
                if key not in names:
                    continue
                values[key] = parse_time(value) if key in cls.time_fields else value
            return cls(**values)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Malformed {cls.__name__} row: {e}", details={"id": row.get("id")}) from e


@dataclass
class BuyerAssignment(Entity):
    airtable_record_id: str
    user_id: str
    id: str = field(default_factory=new_id)
    airtable_lead_id: Optional[int] = None
    company_id: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: datetime = field(default_factory=utcnow)
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None

    time_fields = ("assigned_at", "expires_at")

    def __post_init__(self):
        self.status = AssignmentStatus(self.status)

    @property
    def active(self) -> bool:
        return self.status in ACTIVE_STATUSES


@dataclass
class BuyerContact(Entity):
    """One contact made by a user with a buyer."""
    user_id: str
    buyer_id: str  # Airtable record id
    id: str = field(default_factory=new_id)
    assignment_id: Optional[str] = None
    contact_method: str = "platform"
    message_content: Optional[str] = None
    contacted_at: datetime = field(default_factory=utcnow)
    response_received: bool = False
    response_at: Optional[datetime] = None
    outcome: Optional[str] = None

    time_fields = ("contacted_at", "response_at")


@dataclass
class Conversation(Entity):
    buyer_id: str
    user_id: str
    id: str = field(default_factory=new_id)
    status: str = "awaiting_response"
    last_message_at: datetime = field(default_factory=utcnow)
    last_message_preview: Optional[str] = None
    unread_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    time_fields = ("last_message_at", "created_at", "updated_at")


@dataclass
class Message(Entity):
    conversation_id: str
    sender_type: str  # user or buyer
    sender_id: str
    content: str
    id: str = field(default_factory=new_id)
    sent_via: str = "platform"
    delivered: bool = True
    delivered_at: Optional[datetime] = None
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    time_fields = ("delivered_at", "read_at", "created_at")


@dataclass
class SubscriptionRecord(Entity):
    company_id: str
    plan: str = "starter"
    status: str = "active"
    id: str = field(default_factory=new_id)
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    billing_cycle_start: Optional[str] = None  # YYYY-MM-DD
    billing_cycle_end: Optional[str] = None
    auto_renew: bool = True
    updated_at: datetime = field(default_factory=utcnow)

    time_fields = ("updated_at",)


class DataStore(ABC):
    """Persistence interface used by the services."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed

    def _publish(self, table: str, event_type: str, new: Optional[Entity] = None, old: Optional[Entity] = None):
        if self.feed is None:
            return
        self.feed.publish(ChangeEvent(
            table=table,
            event_type=event_type,
            new=new.to_row() if new else {},
            old=old.to_row() if old else {},
        ))

    # Assignments
    @abstractmethod
    def create_assignment(self, assignment: BuyerAssignment) -> BuyerAssignment:
        """Insert; raises AssignmentConflictError if the lead already has an active assignment."""

    @abstractmethod
    def get_assignment(self, assignment_id: str) -> Optional[BuyerAssignment]: ...

    @abstractmethod
    def find_active_assignment(self, airtable_record_id: str) -> Optional[BuyerAssignment]: ...

    @abstractmethod
    def list_assignments(
        self,
        user_id: Optional[str] = None,
        statuses: Optional[Iterable[AssignmentStatus]] = None,
        company_id: Optional[str] = None,
    ) -> list[BuyerAssignment]:
        """Assignments, newest first."""

    @abstractmethod
    def update_assignment(
        self, assignment_id: str, values: dict, expected_status: Optional[AssignmentStatus] = None
    ) -> Optional[BuyerAssignment]:
        """Apply values; with expected_status the write only happens if the row still has
        that status, and None is returned when it does not. Missing rows raise NotFoundError."""

    # Contacts
    @abstractmethod
    def create_contact(
        self,
        contact: BuyerContact,
        monthly_limit: Optional[int] = None,
        buyer_user_limit: Optional[int] = None,
        since: Optional[datetime] = None,
    ) -> BuyerContact:
        """Insert a contact, checking the caps in the same atomic step.

        monthly_limit caps the user's contacts since `since`. buyer_user_limit caps
        how many distinct users may contact one buyer. Raises ContactLimitError.
        """

    @abstractmethod
    def count_contacts(
        self, user_id: Optional[str] = None, buyer_id: Optional[str] = None, since: Optional[datetime] = None
    ) -> int: ...

    @abstractmethod
    def list_contacts(self, user_id: Optional[str] = None, buyer_id: Optional[str] = None) -> list[BuyerContact]:
        """Contacts, most recent first."""

    # Conversations and messages
    @abstractmethod
    def find_conversation(self, user_id: str, buyer_id: str) -> Optional[Conversation]: ...

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Optional[Conversation]: ...

    @abstractmethod
    def create_conversation(self, conversation: Conversation) -> Conversation: ...

    @abstractmethod
    def update_conversation(self, conversation_id: str, values: dict) -> Conversation: ...

    @abstractmethod
    def list_conversations(self, user_id: str) -> list[Conversation]:
        """Conversations, latest message first."""

    @abstractmethod
    def create_message(self, message: Message) -> Message: ...

    @abstractmethod
    def list_messages(self, conversation_id: str) -> list[Message]:
        """Messages, oldest first."""

    @abstractmethod
    def mark_messages_read(self, conversation_id: str, sender_type: str = "buyer") -> int: ...

    # Subscriptions
    @abstractmethod
    def get_subscription(self, company_id: str) -> Optional[SubscriptionRecord]: ...

    @abstractmethod
    def upsert_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Insert or replace the subscription for record.company_id."""

    @abstractmethod
    def update_subscription_by_stripe_id(self, stripe_subscription_id: str, values: dict) -> list[SubscriptionRecord]: ...


def _check_contact_caps(
    contacts: Iterable[BuyerContact],
    contact: BuyerContact,
    monthly_limit: Optional[int],
    buyer_user_limit: Optional[int],
    since: Optional[datetime],
) -> None:
    contacts = list(contacts)
    if monthly_limit is not None:
        used = sum(
            1 for c in contacts
            if c.user_id == contact.user_id and (since is None or c.contacted_at >= since)
        )
        if used >= monthly_limit:
            raise ContactLimitError(
                f"You've reached your monthly contact limit ({used}/{monthly_limit}). "
                "Upgrade to contact more buyers.",
                details={"used": used, "limit": monthly_limit},
            )

    if buyer_user_limit is not None:
        users = {c.user_id for c in contacts if c.buyer_id == contact.buyer_id}
        if contact.user_id not in users and len(users) >= buyer_user_limit:
            raise ContactLimitError(
                "This buyer has already been contacted by the maximum number of users.",
                details={"limit": buyer_user_limit},
            )


class MemoryStore(DataStore):
    """In-process store. All reads return copies."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        super().__init__(feed)
        self._lock = threading.Lock()
        self._assignments: dict[str, BuyerAssignment] = {}
        self._contacts: dict[str, BuyerContact] = {}
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, Message] = {}
        self._subscriptions: dict[str, SubscriptionRecord] = {}

    @staticmethod
    def _copy(item):
        return dataclasses.replace(item) if item is not None else None

    def create_assignment(self, assignment: BuyerAssignment) -> BuyerAssignment:
        with self._lock:
            for existing in self._assignments.values():
                if existing.airtable_record_id == assignment.airtable_record_id and existing.active:
                    raise AssignmentConflictError(
                        "Buyer is already assigned",
                        details={"assignment_id": existing.id, "user_id": existing.user_id},
                    )
            self._assignments[assignment.id] = self._copy(assignment)
        self._publish(Tables.ASSIGNMENTS, "INSERT", assignment)
        return self._copy(assignment)

    def get_assignment(self, assignment_id: str) -> Optional[BuyerAssignment]:
        with self._lock:
            return self._copy(self._assignments.get(assignment_id))

    def find_active_assignment(self, airtable_record_id: str) -> Optional[BuyerAssignment]:
        with self._lock:
            for assignment in self._assignments.values():
                if assignment.airtable_record_id == airtable_record_id and assignment.active:
                    return self._copy(assignment)
        return None

    def list_assignments(self, user_id=None, statuses=None, company_id=None) -> list[BuyerAssignment]:
        statuses = set(statuses) if statuses is not None else None
        with self._lock:
            items = [
                self._copy(a) for a in self._assignments.values()
                if (user_id is None or a.user_id == user_id)
                and (statuses is None or a.status in statuses)
                and (company_id is None or a.company_id == company_id)
            ]
        return sorted(items, key=lambda a: a.assigned_at, reverse=True)

    def update_assignment(self, assignment_id, values, expected_status=None) -> Optional[BuyerAssignment]:
        with self._lock:
            current = self._assignments.get(assignment_id)
            if current is None:
                raise NotFoundError(f"Assignment {assignment_id} not found")
            if expected_status is not None and current.status != expected_status:
                return None
            old = self._copy(current)
            updated = dataclasses.replace(current, **values)
            self._assignments[assignment_id] = updated
        self._publish(Tables.ASSIGNMENTS, "UPDATE", updated, old)
        return self._copy(updated)

    def create_contact(self, contact, monthly_limit=None, buyer_user_limit=None, since=None) -> BuyerContact:
        with self._lock:
            _check_contact_caps(self._contacts.values(), contact, monthly_limit, buyer_user_limit, since)
            self._contacts[contact.id] = self._copy(contact)
        self._publish(Tables.CONTACTS, "INSERT", contact)
        return self._copy(contact)

    def count_contacts(self, user_id=None, buyer_id=None, since=None) -> int:
        with self._lock:
            return sum(
                1 for c in self._contacts.values()
                if (user_id is None or c.user_id == user_id)
                and (buyer_id is None or c.buyer_id == buyer_id)
                and (since is None or c.contacted_at >= since)
            )

    def list_contacts(self, user_id=None, buyer_id=None) -> list[BuyerContact]:
        with self._lock:
            items = [
                self._copy(c) for c in self._contacts.values()
                if (user_id is None or c.user_id == user_id) and (buyer_id is None or c.buyer_id == buyer_id)
            ]
        return sorted(items, key=lambda c: c.contacted_at, reverse=True)

    def find_conversation(self, user_id: str, buyer_id: str) -> Optional[Conversation]:
        with self._lock:
            for conversation in self._conversations.values():
                if conversation.user_id == user_id and conversation.buyer_id == buyer_id:
                    return self._copy(conversation)
        return None

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._lock:
            return self._copy(self._conversations.get(conversation_id))

    def create_conversation(self, conversation: Conversation) -> Conversation:
        with self._lock:
            self._conversations[conversation.id] = self._copy(conversation)
        self._publish(Tables.CONVERSATIONS, "INSERT", conversation)
        return self._copy(conversation)

    def update_conversation(self, conversation_id: str, values: dict) -> Conversation:
        with self._lock:
            current = self._conversations.get(conversation_id)
            if current is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            values = {"updated_at": utcnow(), **values}
            updated = dataclasses.replace(current, **values)
            self._conversations[conversation_id] = updated
        self._publish(Tables.CONVERSATIONS, "UPDATE", updated, current)
        return self._copy(updated)

    def list_conversations(self, user_id: str) -> list[Conversation]:
        with self._lock:
            items = [self._copy(c) for c in self._conversations.values() if c.user_id == user_id]
        return sorted(items, key=lambda c: c.last_message_at, reverse=True)

    def create_message(self, message: Message) -> Message:
        with self._lock:
            if message.conversation_id not in self._conversations:
                raise NotFoundError(f"Conversation {message.conversation_id} not found")
            self._messages[message.id] = self._copy(message)
        self._publish(Tables.MESSAGES, "INSERT", message)
        return self._copy(message)

    def list_messages(self, conversation_id: str) -> list[Message]:
        with self._lock:
            items = [self._copy(m) for m in self._messages.values() if m.conversation_id == conversation_id]
        return sorted(items, key=lambda m: m.created_at)

    def mark_messages_read(self, conversation_id: str, sender_type: str = "buyer") -> int:
        now = utcnow()
        changed = []
        with self._lock:
            for message in self._messages.values():
                if message.conversation_id == conversation_id and message.sender_type == sender_type and not message.read:
                    message.read = True
                    message.read_at = now
                    changed.append(self._copy(message))
        for message in changed:
            self._publish(Tables.MESSAGES, "UPDATE", message)
        return len(changed)

    def get_subscription(self, company_id: str) -> Optional[SubscriptionRecord]:
        with self._lock:
            return self._copy(self._subscriptions.get(company_id))

    def upsert_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord:
        with self._lock:
            old = self._subscriptions.get(record.company_id)
            if old is not None:
                record = dataclasses.replace(record, id=old.id)
            self._subscriptions[record.company_id] = self._copy(record)
        self._publish(Tables.SUBSCRIPTIONS, "UPDATE" if old else "INSERT", record, old)
        return self._copy(record)

    def update_subscription_by_stripe_id(self, stripe_subscription_id: str, values: dict) -> list[SubscriptionRecord]:
        events = []
        with self._lock:
            for company_id, current in list(self._subscriptions.items()):
                if current.stripe_subscription_id != stripe_subscription_id:
                    continue
                updated = dataclasses.replace(current, **{"updated_at": utcnow(), **values})
                self._subscriptions[company_id] = updated
                events.append((updated, current))
        for updated, current in events:
            self._publish(Tables.SUBSCRIPTIONS, "UPDATE", updated, current)
        return [self._copy(updated) for updated, _ in events]


class SupabaseStore(DataStore):
    """Store backed by Supabase tables.

    Relies on the partial unique index on buyer_assignments(airtable_record_id)
    for active statuses and on the record_buyer_contact function for the
    contact caps (see sql/schema.sql).
    """

    def __init__(self, client: SupabaseRestClient, feed: Optional[ChangeFeed] = None):
        super().__init__(feed)
        self.client = client

    def create_assignment(self, assignment: BuyerAssignment) -> BuyerAssignment:
        try:
            row = self.client.insert(Tables.ASSIGNMENTS, assignment.to_row())
        except StoreError as e:
            if error_code(e) == UNIQUE_VIOLATION:
                existing = self.find_active_assignment(assignment.airtable_record_id)
                details = {"assignment_id": existing.id, "user_id": existing.user_id} if existing else None
                raise AssignmentConflictError("Buyer is already assigned", details=details) from e
            raise
        created = BuyerAssignment.from_row(row)
        self._publish(Tables.ASSIGNMENTS, "INSERT", created)
        return created

    def get_assignment(self, assignment_id: str) -> Optional[BuyerAssignment]:
        rows = self.client.select(Tables.ASSIGNMENTS, {"id": eq(assignment_id)}, limit=1)
        return BuyerAssignment.from_row(rows[0]) if rows else None

    def find_active_assignment(self, airtable_record_id: str) -> Optional[BuyerAssignment]:
        rows = self.client.select(
            Tables.ASSIGNMENTS,
            {
                "airtable_record_id": eq(airtable_record_id),
                "status": in_list(s.value for s in ACTIVE_STATUSES),
            },
            limit=1,
        )
        return BuyerAssignment.from_row(rows[0]) if rows else None

    def list_assignments(self, user_id=None, statuses=None, company_id=None) -> list[BuyerAssignment]:
        filters = {}
        if user_id is not None:
            filters["user_id"] = eq(user_id)
        if company_id is not None:
            filters["company_id"] = eq(company_id)
        if statuses is not None:
            filters["status"] = in_list(AssignmentStatus(s).value for s in statuses)
        rows = self.client.select(Tables.ASSIGNMENTS, filters, order="assigned_at.desc")
        return [BuyerAssignment.from_row(row) for row in rows]

    def update_assignment(self, assignment_id, values, expected_status=None) -> Optional[BuyerAssignment]:
        filters = {"id": eq(assignment_id)}
        if expected_status is not None:
            filters["status"] = eq(expected_status.value)
        try:
            rows = self.client.update(Tables.ASSIGNMENTS, filters, encode_values(values))
        except StoreError as e:
            if error_code(e) == UNIQUE_VIOLATION:
                raise AssignmentConflictError("Buyer is already assigned") from e
            raise
        if not rows:
            if self.get_assignment(assignment_id) is None:
                raise NotFoundError(f"Assignment {assignment_id} not found")
            return None
        updated = BuyerAssignment.from_row(rows[0])
        self._publish(Tables.ASSIGNMENTS, "UPDATE", updated)
        return updated

    def create_contact(self, contact, monthly_limit=None, buyer_user_limit=None, since=None) -> BuyerContact:
        args = {
            "p_id": contact.id,
            "p_user_id": contact.user_id,
            "p_buyer_id": contact.buyer_id,
            "p_assignment_id": contact.assignment_id,
            "p_contact_method": contact.contact_method,
            "p_message_content": contact.message_content,
            "p_monthly_limit": monthly_limit,
            "p_buyer_user_limit": buyer_user_limit,
            "p_since": encode_value(since),
        }
        try:
            row = self.client.rpc("record_buyer_contact", args)
        except StoreError as e:
            details = e.details if isinstance(e.details, dict) else {}
            if details.get("hint") == CONTACT_LIMIT_HINT:
                raise ContactLimitError(e.message, details={"limit": monthly_limit or buyer_user_limit}) from e
            raise
        if isinstance(row, list):
            row = row[0] if row else {}
        created = BuyerContact.from_row(row)
        self._publish(Tables.CONTACTS, "INSERT", created)
        return created

    @staticmethod
    def _contact_filters(user_id=None, buyer_id=None, since=None) -> dict:
        filters = {}
        if user_id is not None:
            filters["user_id"] = eq(user_id)
        if buyer_id is not None:
            filters["buyer_id"] = eq(buyer_id)
        if since is not None:
            filters["contacted_at"] = gte(since.isoformat())
        return filters

    def count_contacts(self, user_id=None, buyer_id=None, since=None) -> int:
        return self.client.count(Tables.CONTACTS, self._contact_filters(user_id, buyer_id, since))

    def list_contacts(self, user_id=None, buyer_id=None) -> list[BuyerContact]:
        rows = self.client.select(
            Tables.CONTACTS, self._contact_filters(user_id, buyer_id), order="contacted_at.desc"
        )
        return [BuyerContact.from_row(row) for row in rows]

    def find_conversation(self, user_id: str, buyer_id: str) -> Optional[Conversation]:
        rows = self.client.select(
            Tables.CONVERSATIONS, {"user_id": eq(user_id), "buyer_id": eq(buyer_id)}, limit=1
        )
        return Conversation.from_row(rows[0]) if rows else None

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        rows = self.client.select(Tables.CONVERSATIONS, {"id": eq(conversation_id)}, limit=1)
        return Conversation.from_row(rows[0]) if rows else None

    def create_conversation(self, conversation: Conversation) -> Conversation:
        created = Conversation.from_row(self.client.insert(Tables.CONVERSATIONS, conversation.to_row()))
        self._publish(Tables.CONVERSATIONS, "INSERT", created)
        return created

    def update_conversation(self, conversation_id: str, values: dict) -> Conversation:
        values = {"updated_at": utcnow(), **values}
        rows = self.client.update(Tables.CONVERSATIONS, {"id": eq(conversation_id)}, encode_values(values))
        if not rows:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        updated = Conversation.from_row(rows[0])
        self._publish(Tables.CONVERSATIONS, "UPDATE", updated)
        return updated

    def list_conversations(self, user_id: str) -> list[Conversation]:
        rows = self.client.select(Tables.CONVERSATIONS, {"user_id": eq(user_id)}, order="last_message_at.desc")
        return [Conversation.from_row(row) for row in rows]

    def create_message(self, message: Message) -> Message:
        created = Message.from_row(self.client.insert(Tables.MESSAGES, message.to_row()))
        self._publish(Tables.MESSAGES, "INSERT", created)
        return created

    def list_messages(self, conversation_id: str) -> list[Message]:
        rows = self.client.select(
            Tables.MESSAGES, {"conversation_id": eq(conversation_id)}, order="created_at.asc"
        )
        return [Message.from_row(row) for row in rows]

    def mark_messages_read(self, conversation_id: str, sender_type: str = "buyer") -> int:
        rows = self.client.update(
            Tables.MESSAGES,
            {"conversation_id": eq(conversation_id), "sender_type": eq(sender_type), "read": eq("false")},
            {"read": True, "read_at": utcnow().isoformat()},
        )
        for row in rows:
            self._publish(Tables.MESSAGES, "UPDATE", Message.from_row(row))
        return len(rows)

    def get_subscription(self, company_id: str) -> Optional[SubscriptionRecord]:
        rows = self.client.select(Tables.SUBSCRIPTIONS, {"company_id": eq(company_id)}, limit=1)
        return SubscriptionRecord.from_row(rows[0]) if rows else None

    def upsert_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord:
        row = record.to_row()
        row.pop("id")
        saved = SubscriptionRecord.from_row(self.client.upsert(Tables.SUBSCRIPTIONS, row, on_conflict="company_id"))
        self._publish(Tables.SUBSCRIPTIONS, "UPDATE", saved)
        return saved

    def update_subscription_by_stripe_id(self, stripe_subscription_id: str, values: dict) -> list[SubscriptionRecord]:
        values = {"updated_at": utcnow(), **values}
        rows = self.client.update(
            Tables.SUBSCRIPTIONS, {"stripe_subscription_id": eq(stripe_subscription_id)}, encode_values(values)
        )
        records = [SubscriptionRecord.from_row(row) for row in rows]
        for record in records:
            self._publish(Tables.SUBSCRIPTIONS, "UPDATE", record)
        return records
