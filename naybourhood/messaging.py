"""
Conversations between users and buyers.

The first message a user sends a buyer counts as a contact against the tier's
monthly quota, and at most four different users may contact the same buyer.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .errors import ForbiddenError, InvalidTransitionError, NotFoundError, RequestValidationError
from .feeds import BuyerFeed
from .notifications import Notifier
from .store import BuyerContact, Conversation, DataStore, Message
from .subscription import start_of_month
from .tiers import UNLIMITED, TierLike, get_tier_config

logger = logging.getLogger(__name__)

BUYER_CONTACT_USER_LIMIT = 4
PREVIEW_LENGTH = 100


def contact_limit(tier: TierLike):
    """Monthly contact quota for the tier (an int or UNLIMITED)."""
    return get_tier_config(tier).monthly_contacts


class MessagingService:
    """Start conversations, exchange messages and track unread counts."""

    def __init__(
        self,
        store: DataStore,
        buyers: Optional[BuyerFeed] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.buyers = buyers
        self.notifier = notifier
        self._clock = clock

    def _owned_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        if conversation.user_id != user_id:
            raise ForbiddenError("You do not have access to this conversation")
        return conversation

    def start_conversation(
        self, user_id: str, tier: TierLike, buyer_id: str, message: str
    ) -> tuple[Conversation, Message]:
        """Contact a buyer, opening a conversation on first contact.

        Raises ContactLimitError when the monthly quota or the buyer's user cap
        is reached. Writing to a buyer already contacted does not count again.
        """
        if not buyer_id:
            raise RequestValidationError("buyerId is required")
        if not message or not message.strip():
            raise RequestValidationError("Message is required")

        already_contacted = self.store.count_contacts(user_id=user_id, buyer_id=buyer_id) > 0
        if not already_contacted:
            limit = contact_limit(tier)
            self.store.create_contact(
                BuyerContact(
                    user_id=user_id,
                    buyer_id=buyer_id,
                    contact_method="platform",
                    message_content=message,
                    contacted_at=self._clock(),
                ),
                monthly_limit=None if limit == UNLIMITED else limit,
                buyer_user_limit=BUYER_CONTACT_USER_LIMIT,
                since=start_of_month(self._clock()),
            )
            logger.info(f"User {user_id} contacted buyer {buyer_id}")

        conversation = self.store.find_conversation(user_id, buyer_id)
        if conversation is None:
            now = self._clock()
            conversation = self.store.create_conversation(Conversation(
                buyer_id=buyer_id,
                user_id=user_id,
                status="awaiting_response",
                last_message_at=now,
                created_at=now,
                updated_at=now,
            ))

        sent = self.send_message(conversation.id, user_id, message)
        return self.store.get_conversation(conversation.id), sent

    def send_message(self, conversation_id: str, user_id: str, content: str) -> Message:
        if not content or not content.strip():
            raise RequestValidationError("Message is required")

        conversation = self._owned_conversation(conversation_id, user_id)
        if conversation.status == "closed":
            raise InvalidTransitionError("Conversation is closed")

        now = self._clock()
        message = self.store.create_message(Message(
            conversation_id=conversation_id,
            sender_type="user",
            sender_id=user_id,
            content=content,
            sent_via="platform",
            delivered=True,
            delivered_at=now,
            created_at=now,
        ))
        self.store.update_conversation(conversation_id, {
            "status": "awaiting_response",
            "last_message_at": now,
            "last_message_preview": content[:PREVIEW_LENGTH],
        })

        self._notify_buyer(conversation, content)
        return message

    def _notify_buyer(self, conversation: Conversation, content: str) -> None:
        if self.notifier is None or self.buyers is None:
            return
        try:
            buyer = self.buyers.get_buyer(conversation.buyer_id)
        except Exception as e:
            logger.error(f"Could not load buyer {conversation.buyer_id} for notification: {e}")
            return
        if buyer is None:
            return
        self.notifier.send_message_notification(buyer.email, conversation.id, buyer.name, content)

    def receive_buyer_message(
        self, conversation_id: str, content: str, sender_id: str = "", sent_via: str = "email"
    ) -> Message:
        """Store a reply from the buyer and bump the unread count."""
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")

        now = self._clock()
        message = self.store.create_message(Message(
            conversation_id=conversation_id,
            sender_type="buyer",
            sender_id=sender_id or conversation.buyer_id,
            content=content,
            sent_via=sent_via,
            delivered=True,
            delivered_at=now,
            created_at=now,
        ))
        self.store.update_conversation(conversation_id, {
            "status": "buyer_responded",
            "unread_count": conversation.unread_count + 1,
            "last_message_at": now,
            "last_message_preview": content[:PREVIEW_LENGTH],
        })
        return message

    def list_conversations(self, user_id: str) -> list[Conversation]:
        return self.store.list_conversations(user_id)

    def fetch_messages(self, conversation_id: str, user_id: str) -> list[Message]:
        self._owned_conversation(conversation_id, user_id)
        return self.store.list_messages(conversation_id)

    def unread_count(self, user_id: str) -> int:
        return sum(c.unread_count or 0 for c in self.store.list_conversations(user_id))

    def mark_conversation_read(self, conversation_id: str, user_id: str) -> Conversation:
        self._owned_conversation(conversation_id, user_id)
        conversation = self.store.update_conversation(conversation_id, {"unread_count": 0})
        self.store.mark_messages_read(conversation_id, sender_type="buyer")
        return conversation

    def close_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        self._owned_conversation(conversation_id, user_id)
        return self.store.update_conversation(conversation_id, {"status": "closed"})
