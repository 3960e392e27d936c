"""Tests for user-buyer conversations and contact quotas."""
import pytest
from datetime import datetime, timezone
from unittest.mock import Mock
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.errors import (
    ContactLimitError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    RequestValidationError,
)
from naybourhood.messaging import BUYER_CONTACT_USER_LIMIT, MessagingService, contact_limit
from naybourhood.store import BuyerContact, MemoryStore
from naybourhood.tiers import UNLIMITED

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def service(store):
    return MessagingService(store, clock=lambda: NOW)


def fill_contacts(store, user_id, count):
    for i in range(count):
        store.create_contact(BuyerContact(user_id=user_id, buyer_id=f"recOld{i}", contacted_at=NOW))


class TestStartConversation:

    def test_first_message_opens_conversation_and_counts_contact(self, service, store):
        conversation, message = service.start_conversation("user-1", "access", "recB1", "Hello Sarah")

        assert conversation.status == "awaiting_response"
        assert conversation.last_message_preview == "Hello Sarah"
        assert message.sender_type == "user"
        assert store.count_contacts(user_id="user-1") == 1

    def test_second_message_reuses_conversation(self, service, store):
        first, _ = service.start_conversation("user-1", "access", "recB1", "Hello")
        second, _ = service.start_conversation("user-1", "access", "recB1", "Following up")

        assert second.id == first.id
        assert store.count_contacts(user_id="user-1") == 1
        assert len(store.list_messages(first.id)) == 2

    def test_monthly_quota_enforced(self, service, store):
        fill_contacts(store, "user-1", contact_limit("access"))
        with pytest.raises(ContactLimitError):
            service.start_conversation("user-1", "access", "recNew", "Hello")
        assert store.find_conversation("user-1", "recNew") is None

    def test_quota_does_not_block_existing_buyer(self, service, store):
        service.start_conversation("user-1", "access", "recB1", "Hello")
        fill_contacts(store, "user-1", contact_limit("access"))
        conversation, _ = service.start_conversation("user-1", "access", "recB1", "Still there?")
        assert conversation.buyer_id == "recB1"

    def test_enterprise_is_unlimited(self, service, store):
        assert contact_limit("enterprise") == UNLIMITED
        fill_contacts(store, "user-1", 500)
        service.start_conversation("user-1", "enterprise", "recB1", "Hello")

    def test_buyer_user_cap(self, service):
        for i in range(BUYER_CONTACT_USER_LIMIT):
            service.start_conversation(f"user-{i}", "growth", "recB1", "Hello")
        with pytest.raises(ContactLimitError):
            service.start_conversation("user-late", "growth", "recB1", "Hello")

    def test_blank_message_rejected(self, service):
        with pytest.raises(RequestValidationError):
            service.start_conversation("user-1", "growth", "recB1", "   ")

    def test_buyer_notified(self, store):
        buyer = Mock(email="sarah@example.com")
        buyer.name = "Sarah"
        buyers = Mock()
        buyers.get_buyer.return_value = buyer
        notifier = Mock()
        service = MessagingService(store, buyers=buyers, notifier=notifier)

        conversation, _ = service.start_conversation("user-1", "growth", "recB1", "Hello")

        notifier.send_message_notification.assert_called_once_with(
            "sarah@example.com", conversation.id, "Sarah", "Hello"
        )


class TestConversationAccess:

    def test_other_users_cannot_read(self, service):
        conversation, _ = service.start_conversation("user-1", "growth", "recB1", "Hello")
        with pytest.raises(ForbiddenError):
            service.fetch_messages(conversation.id, "user-2")

    def test_missing_conversation(self, service):
        with pytest.raises(NotFoundError):
            service.send_message("missing", "user-1", "Hello")

    def test_closed_conversation_rejects_messages(self, service):
        conversation, _ = service.start_conversation("user-1", "growth", "recB1", "Hello")
        service.close_conversation(conversation.id, "user-1")
        with pytest.raises(InvalidTransitionError):
            service.send_message(conversation.id, "user-1", "Anyone?")


class TestUnread:

    def test_buyer_reply_then_read(self, service, store):
        conversation, _ = service.start_conversation("user-1", "growth", "recB1", "Hello")
        service.receive_buyer_message(conversation.id, "Yes, interested")
        service.receive_buyer_message(conversation.id, "When can we view?")

        assert service.unread_count("user-1") == 2
        assert store.get_conversation(conversation.id).status == "buyer_responded"

        read = service.mark_conversation_read(conversation.id, "user-1")
        assert read.unread_count == 0
        assert service.unread_count("user-1") == 0
        assert all(m.read for m in service.fetch_messages(conversation.id, "user-1") if m.sender_type == "buyer")

    def test_preview_truncated(self, service):
        conversation, _ = service.start_conversation("user-1", "growth", "recB1", "x" * 250)
        assert len(conversation.last_message_preview) == 100
