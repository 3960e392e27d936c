"""Tests for the Supabase REST client, Supabase-backed store, email notifier and introductions."""
import pytest
from unittest.mock import Mock
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import requests

from naybourhood.config import EmailConfig, SupabaseConfig
from naybourhood.errors import (
    AssignmentConflictError,
    AuthError,
    ContactLimitError,
    NotificationError,
    RequestValidationError,
    StoreError,
)
from naybourhood.introductions import IntroductionService, Sender
from naybourhood.notifications import RESEND_URL, Notifier, intent_badge
from naybourhood.records import Buyer
from naybourhood.store import BuyerAssignment, BuyerContact, SupabaseStore
from naybourhood.subscription import AccountContext, SubscriptionState
from naybourhood.supabase_client import SupabaseAuth, SupabaseRestClient, eq, error_code, in_list
from naybourhood.tiers import SubscriptionTier


def make_response(data=None, status_code=200, headers=None):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = data
    response.text = str(data)
    response.headers = headers or {}
    return response


@pytest.fixture
def supabase_config():
    return SupabaseConfig(url="https://abc.supabase.co", service_role_key="service-key", anon_key="anon-key")


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def rest(supabase_config, session):
    return SupabaseRestClient(supabase_config, session=session)


def create_buyer(**overrides):
    values = {"id": "recB1", "name": "Sarah Ahmed", "score": 82, "status": "Contacted", "email": "sarah@example.com"}
    values.update(overrides)
    return Buyer(**values)


class TestSupabaseRestClient:

    def test_filter_helpers(self):
        assert eq("user-1") == "eq.user-1"
        assert in_list(["assigned", "contacted"]) == "in.(assigned,contacted)"

    def test_select_params(self, rest, session):
        session.request.return_value = make_response([{"id": "1"}])
        rows = rest.select("buyer_assignments", {"user_id": eq("user-1")}, order="assigned_at.desc", limit=5)

        assert rows == [{"id": "1"}]
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "https://abc.supabase.co/rest/v1/buyer_assignments"
        assert session.request.call_args.kwargs["params"] == {
            "select": "*", "user_id": "eq.user-1", "order": "assigned_at.desc", "limit": 5,
        }

    def test_count_reads_content_range(self, rest, session):
        session.request.return_value = make_response(headers={"Content-Range": "0-0/42"})
        assert rest.count("buyer_contacts") == 42
        assert session.request.call_args.kwargs["headers"]["Prefer"] == "count=exact"

    def test_error_carries_postgres_code(self, rest, session):
        session.request.return_value = make_response(
            {"code": "23505", "message": "duplicate key value violates unique constraint"}, status_code=409
        )
        with pytest.raises(StoreError) as exc:
            rest.insert("buyer_assignments", {"id": "a1"})
        assert error_code(exc.value) == "23505"

    def test_network_error_becomes_store_error(self, rest, session):
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(StoreError):
            rest.select("subscriptions")

    def test_non_json_body_is_store_error(self, rest, session):
        response = make_response(status_code=200)
        response.json.side_effect = ValueError("Expecting value")
        session.request.return_value = response
        with pytest.raises(StoreError, match="Invalid response from Supabase"):
            rest.select("subscriptions")

    def test_connection_failure(self, rest, session):
        session.request.return_value = make_response({"message": "bad key"}, status_code=401)
        assert rest.test_connection() is False


class TestSupabaseStore:

    def test_unique_violation_is_conflict(self, rest, session):
        existing = BuyerAssignment(airtable_record_id="recB1", user_id="user-9")
        session.request.side_effect = [
            make_response({"code": "23505", "message": "duplicate key"}, status_code=409),
            make_response([existing.to_row()]),
        ]
        with pytest.raises(AssignmentConflictError) as exc:
            SupabaseStore(rest).create_assignment(BuyerAssignment(airtable_record_id="recB1", user_id="user-1"))
        assert exc.value.details == {"assignment_id": existing.id, "user_id": "user-9"}

    def test_contact_limit_hint(self, rest, session):
        session.request.return_value = make_response(
            {"code": "P0001", "message": "Monthly contact limit reached", "hint": "contact_limit"}, status_code=400
        )
        with pytest.raises(ContactLimitError, match="Monthly contact limit reached"):
            SupabaseStore(rest).create_contact(BuyerContact(user_id="user-1", buyer_id="recB1"), monthly_limit=30)
        assert session.request.call_args.args[1].endswith("/rest/v1/rpc/record_buyer_contact")

    def test_contact_created(self, rest, session):
        contact = BuyerContact(user_id="user-1", buyer_id="recB1")
        session.request.return_value = make_response([contact.to_row()])
        created = SupabaseStore(rest).create_contact(contact, monthly_limit=30)
        assert created == contact
        assert session.request.call_args.kwargs["json"]["p_monthly_limit"] == 30


    def test_subscription_load_survives_bad_rows(self, rest, session):
        """A garbled body or a bad timestamp leaves the default tier in place."""
        garbled = make_response(status_code=200)
        garbled.json.side_effect = ValueError("Expecting value")
        session.request.return_value = garbled
        state = SubscriptionState(SupabaseStore(rest), AccountContext(user_id="user-1", company_id="co-1")).load()
        assert state.tier == SubscriptionTier.GROWTH
        assert "Invalid response from Supabase" in state.error

        session.request.return_value = make_response([{"company_id": "co-1", "plan": "enterprise", "updated_at": "soon"}])
        state.load()
        assert state.tier == SubscriptionTier.GROWTH
        assert "Malformed SubscriptionRecord row" in state.error


class TestSupabaseAuth:

    def test_missing_token(self, supabase_config, session):
        with pytest.raises(AuthError):
            SupabaseAuth(supabase_config, session=session).get_user(None)
        session.get.assert_not_called()

    def test_rejected_token(self, supabase_config, session):
        session.get.return_value = make_response({}, status_code=401)
        with pytest.raises(AuthError, match="Invalid or expired token"):
            SupabaseAuth(supabase_config, session=session).get_user("expired")

    def test_company_from_metadata(self, supabase_config, session):
        session.get.return_value = make_response({
            "id": "user-1", "email": "amy@example.com", "user_metadata": {"company_id": "co-1"},
        })
        user = SupabaseAuth(supabase_config, session=session).get_user("token")
        assert user.to_dict() == {"id": "user-1", "email": "amy@example.com", "companyId": "co-1"}
        assert session.get.call_args.kwargs["headers"]["apikey"] == "anon-key"


class TestNotifier:

    def test_disabled_without_key(self, session):
        notifier = Notifier(EmailConfig(), session=session)
        assert notifier.send_assignment_notification("amy@example.com", "Amy", create_buyer()) is False
        session.post.assert_not_called()

    def test_assignment_email(self, session):
        session.post.return_value = make_response({"id": "email-1"})
        notifier = Notifier(EmailConfig(resend_api_key="re_test"), site_url="https://app.naybourhood.ai", session=session)

        assert notifier.send_assignment_notification("amy@example.com", "Amy", create_buyer(intent="Hot")) is True

        assert session.post.call_args.args[0] == RESEND_URL
        payload = session.post.call_args.kwargs["json"]
        assert payload["to"] == ["amy@example.com"]
        assert payload["subject"] == "New Lead Assigned: Sarah Ahmed (Hot Intent)"
        assert "Quality Score: 82" in payload["text"]
        assert "https://app.naybourhood.ai/buyers" in payload["html"]

    def test_html_escaped(self, session):
        session.post.return_value = make_response({"id": "email-2"})
        notifier = Notifier(EmailConfig(resend_api_key="re_test"), session=session)
        notifier.send_message_notification("sarah@example.com", "conv-1", "Sarah", "<b>Hi</b>")
        assert "&lt;b&gt;Hi&lt;/b&gt;" in session.post.call_args.kwargs["json"]["html"]

    def test_api_error_returns_false(self, session):
        session.post.return_value = make_response({"message": "invalid from"}, status_code=422)
        notifier = Notifier(EmailConfig(resend_api_key="re_test"), session=session)
        assert notifier.send_message_notification("sarah@example.com", "conv-1", "Sarah", "Hello") is False

    def test_connection_error_returns_false(self, session):
        session.post.side_effect = requests.ConnectionError("refused")
        notifier = Notifier(EmailConfig(resend_api_key="re_test"), session=session)
        assert notifier.send_message_notification("sarah@example.com", "conv-1", "Sarah", "Hello") is False

    def test_message_without_recipient(self, session):
        notifier = Notifier(EmailConfig(resend_api_key="re_test"), session=session)
        assert notifier.send_message_notification("", "conv-1", "Sarah", "Hello") is False
        session.post.assert_not_called()

    def test_intent_badge(self):
        assert intent_badge("Hot") == "🔥"
        assert intent_badge(None) == "❄️"


class TestIntroductions:

    def intro(self, **overrides):
        body = {
            "buyerId": "recHot",
            "buyerName": "Sarah",
            "buyerEmail": "sarah@example.com",
            "buyerPhone": "+447700900123",
            "channel": "email",
            "customMessage": "I have a two-bed in <Ancoats> you may like.",
        }
        body.update(overrides)
        return body

    def test_sender_from_email(self):
        sender = Sender.from_email("amy.jones@example.com")
        assert sender.name == "amy.jones"
        assert sender.company == "Naybourhood Partner"
        assert Sender.from_email(None).name == "A Naybourhood Partner"

    def test_email_sent(self, session):
        session.post.return_value = make_response({"id": "email-9"})
        service = IntroductionService(Notifier(EmailConfig(resend_api_key="re_test"), session=session))

        result = service.send(self.intro(), Sender.from_email("amy@example.com"))

        assert result == {"success": True, "message": "Introduction email sent successfully", "emailId": "email-9"}
        payload = session.post.call_args.kwargs["json"]
        assert payload["subject"] == "amy from Naybourhood Partner would like to connect"
        assert payload["reply_to"] == "amy@example.com"
        assert payload["from"] == "Naybourhood <introductions@resend.dev>"
        assert "&lt;Ancoats&gt;" in payload["html"]

    def test_resend_failure_raises(self, session):
        session.post.return_value = make_response({"message": "domain not verified"}, status_code=403)
        service = IntroductionService(Notifier(EmailConfig(resend_api_key="re_test"), session=session))
        with pytest.raises(NotificationError):
            service.send(self.intro(), Sender.from_email("amy@example.com"))

    def test_logged_without_email_service(self, session):
        service = IntroductionService(Notifier(EmailConfig(), session=session))
        result = service.send(self.intro(), Sender.from_email("amy@example.com"))
        assert result["demo"] is True
        session.post.assert_not_called()

    def test_email_needs_address(self, session):
        service = IntroductionService(Notifier(EmailConfig(resend_api_key="re_test"), session=session))
        with pytest.raises(RequestValidationError):
            service.send(self.intro(buyerEmail=""), Sender.from_email("amy@example.com"))

    def test_whatsapp_logged(self, session):
        service = IntroductionService(Notifier(EmailConfig(resend_api_key="re_test"), session=session))
        result = service.send(self.intro(channel="whatsapp"), Sender.from_email("amy@example.com"))
        assert result["message"] == "WhatsApp introduction logged (integration pending)"
        session.post.assert_not_called()

    def test_invalid_channel(self, session):
        service = IntroductionService(Notifier(EmailConfig(), session=session))
        with pytest.raises(RequestValidationError, match="Invalid channel specified"):
            service.send(self.intro(channel="sms"), Sender.from_email("amy@example.com"))
