"""
Flask HTTP surface for Naybourhood.

/functions/v1/* keeps the request and response shapes of the hosted
functions the dashboard calls. /api/* serves the account-scoped data the
dashboard used to read straight from its backend.
"""

import hmac
import logging
from datetime import datetime
from functools import wraps
from typing import TYPE_CHECKING

from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import HTTPException

from .errors import AuthError, ConfigurationError, ForbiddenError, NaybourhoodError, RequestValidationError
from .introductions import Sender
from .store import parse_time
from .subscription import AccountContext
from .tiers import SubscriptionTier, can_view_buyer, to_tier

if TYPE_CHECKING:
    from .main import Application

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, stripe-signature, x-webhook-secret",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
}


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise RequestValidationError("Request body must be a JSON object")
    return data


def _bearer_token():
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


def _rows(entities) -> list[dict]:
    return [entity.to_row() for entity in entities]


def _tier_param(value) -> SubscriptionTier:
    try:
        return to_tier(value)
    except ValueError:
        raise RequestValidationError(f"Invalid tier '{value}'. Use: access, growth, enterprise")


def _time_param(name: str, value):
    if not value:
        return None
    try:
        return parse_time(value)
    except ValueError:
        raise RequestValidationError(f"{name} must be an ISO 8601 timestamp")


def create_app(application: "Application") -> Flask:
    """Build the Flask app around an assembled Application."""
    app = Flask(__name__)
    app.json.sort_keys = False

    def authenticated(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            user = application.auth.get_user(_bearer_token())
            g.user = user
            g.account = AccountContext(user_id=user.id, company_id=user.company_id, email=user.email)
            return view(*args, **kwargs)
        return wrapper

    def subscription():
        return application.subscription_for(g.account)

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        for key, value in CORS_HEADERS.items():
            response.headers.setdefault(key, value)
        return response

    @app.errorhandler(NaybourhoodError)
    def handle_app_error(error: NaybourhoodError):
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {error.message}")
        else:
            logger.info(f"{request.method} {request.path} -> {error.status_code}: {error.message}")
        return jsonify(error.to_payload()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"error": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify({"error": "Internal server error"}), 500

    # ---------- hosted functions ----------

    @app.route("/functions/v1/lead-scoring", methods=["POST"])
    @authenticated
    def lead_scoring():
        result = application.lead_scorer.score_lead(_body().get("lead"))
        return jsonify(result.to_payload())

    @app.route("/functions/v1/master-agent", methods=["POST"])
    @authenticated
    def master_agent():
        body = _body()
        return jsonify(application.master_agent.query(body.get("query"), body.get("context")))

    @app.route("/functions/v1/airtable-api", methods=["POST"])
    @authenticated
    def airtable_api():
        return jsonify(application.airtable_proxy.handle(_body()))

    @app.route("/functions/v1/analyze-data", methods=["POST"])
    @authenticated
    def analyze_data():
        body = _body()
        if body.get("chatMessage"):
            return jsonify(application.data_analyzer.chat(
                body["chatMessage"],
                history=body.get("chatHistory"),
                campaigns=body.get("campaigns"),
                leads=body.get("leads"),
                analysis_context=body.get("analysisContext"),
            ))
        analysis = application.data_analyzer.analyze(body.get("campaigns"), body.get("leads"))
        return jsonify(analysis.to_payload())

    @app.route("/functions/v1/recommend-cities", methods=["POST"])
    @authenticated
    def recommend_cities():
        return jsonify(application.city_recommender.recommend(_body()))

    @app.route("/functions/v1/ai-lead-analysis", methods=["POST"])
    @authenticated
    def ai_lead_analysis():
        body = _body()
        return jsonify(application.lead_analyzer.run(body.get("action"), body.get("lead"), body.get("leads")))

    @app.route("/functions/v1/stripe-webhook", methods=["POST"])
    def stripe_webhook():
        result = application.webhook_handler.handle(
            request.get_data(), request.headers.get("stripe-signature")
        )
        return jsonify(result)

    @app.route("/functions/v1/create-checkout", methods=["POST"])
    @authenticated
    def create_checkout():
        tier = _body().get("tier")
        if not tier:
            raise RequestValidationError("tier is required")
        return jsonify({"url": subscription().initiate_checkout(_tier_param(tier))})

    @app.route("/functions/v1/customer-portal", methods=["POST"])
    @authenticated
    def customer_portal():
        return jsonify({"url": subscription().open_customer_portal()})

    @app.route("/functions/v1/campaign-analysis", methods=["POST"])
    @authenticated
    def campaign_analysis():
        return jsonify(application.campaign_analyst.analyze(_body().get("campaign")))

    @app.route("/functions/v1/ai-campaign-intelligence", methods=["POST"])
    @authenticated
    def ai_campaign_intelligence():
        return jsonify(application.campaign_analyst.intelligence(_body()))

    @app.route("/functions/v1/optimize-budget", methods=["POST"])
    @authenticated
    def optimize_budget():
        return jsonify(application.campaign_analyst.optimize_budget(_body()))

    @app.route("/functions/v1/analyze-lead", methods=["POST"])
    @authenticated
    def analyze_lead():
        return jsonify(application.lead_scorer.analyze_lead(_body().get("lead")))

    @app.route("/functions/v1/send-introduction", methods=["POST"])
    @authenticated
    def send_introduction():
        return jsonify(application.introductions.send(_body(), Sender.from_email(g.user.email)))

    @app.route("/functions/v1/tracking-webhook", methods=["GET"])
    @authenticated
    def tracking_events():
        return jsonify(application.tracker.lookup(
            email=request.args.get("email"),
            phone=request.args.get("phone"),
            lead_id=request.args.get("lead_id"),
        ))

    @app.route("/functions/v1/tracking-webhook", methods=["POST"], defaults={"kind": "event"})
    @app.route("/functions/v1/tracking-webhook/<kind>", methods=["POST"])
    def tracking_webhook(kind: str):
        secret = application.config.tracking_webhook_secret
        if not secret:
            raise ConfigurationError("TRACKING_WEBHOOK_SECRET is not configured")
        provided = request.headers.get("x-webhook-secret", "")
        if not hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8")):
            raise AuthError("Invalid webhook secret")
        return jsonify(application.tracker.receive(kind, _body()))

    # ---------- buyers and campaigns ----------

    @app.route("/api/buyers")
    @authenticated
    def list_buyers():
        state = subscription()
        tier = state.tier
        first_refusal = {buyer.id for buyer in application.buyers.first_refusal_buyers(tier)}
        buyers = []
        for buyer in application.buyers.visible_buyers(tier):
            row = buyer.to_dict()
            row["firstRefusal"] = buyer.id in first_refusal
            buyers.append(row)
        return jsonify({
            "buyers": buyers,
            "tier": tier.value,
            "filters": application.buyers.filters(),
            "status": application.buyers.query.status,
        })

    @app.route("/api/buyers/<record_id>")
    @authenticated
    def get_buyer(record_id: str):
        buyer = application.buyers.get_buyer(record_id)
        if buyer is None or not can_view_buyer(subscription().tier, buyer.score):
            return jsonify({"error": f"Buyer {record_id} not found"}), 404
        return jsonify(buyer.to_dict())

    @app.route("/api/campaigns")
    @authenticated
    def list_campaigns():
        return jsonify({"campaigns": [c.to_dict() for c in application.campaigns.campaigns()]})

    # ---------- subscription ----------

    @app.route("/api/subscription")
    @authenticated
    def get_subscription():
        return jsonify(subscription().snapshot())

    @app.route("/api/subscription/refresh", methods=["POST"])
    @authenticated
    def refresh_subscription():
        return jsonify(subscription().load().snapshot())

    @app.route("/api/subscription/tier", methods=["PUT"])
    @authenticated
    def set_tier():
        if not application.config.debug_mode:
            raise ForbiddenError("Tier override is only available in debug mode")
        tier = _body().get("tier")
        state = subscription()
        state.set_tier(_tier_param(tier) if tier else None)
        return jsonify(state.snapshot())

    # ---------- assignments ----------

    @app.route("/api/assignments", methods=["GET"])
    @authenticated
    def list_assignments():
        if request.args.get("scope") == "all":
            assignments = application.assignments.all_assignments(g.account.company_key)
        else:
            assignments = application.assignments.my_assignments(g.user.id)
        return jsonify({"assignments": _rows(assignments)})

    @app.route("/api/assignments", methods=["POST"])
    @authenticated
    def create_assignment():
        body = _body()
        assignment = application.assignments.assign_buyer(
            airtable_record_id=body.get("airtableRecordId"),
            user_id=body.get("userId"),
            assigned_by=g.user.id,
            company_id=g.account.company_key,
            airtable_lead_id=body.get("airtableLeadId"),
            notes=body.get("notes"),
            expires_at=_time_param("expiresAt", body.get("expiresAt")),
            caller_email=body.get("callerEmail"),
            caller_name=body.get("callerName"),
        )
        return jsonify(assignment.to_row()), 201

    @app.route("/api/assignments/status/<record_id>")
    @authenticated
    def assignment_status(record_id: str):
        assignment = application.assignments.assignment_status(record_id)
        # Other companies only learn that the buyer is taken
        visible = assignment is not None and assignment.company_id == g.account.company_key
        return jsonify({"assigned": assignment is not None, "assignment": assignment.to_row() if visible else None})

    @app.route("/api/assignments/<assignment_id>/status", methods=["PATCH"])
    @authenticated
    def update_assignment_status(assignment_id: str):
        updated = application.assignments.update_status(
            assignment_id, _body().get("status"), g.user.id, company_id=g.account.company_key
        )
        return jsonify(updated.to_row())

    @app.route("/api/assignments/<assignment_id>/release", methods=["POST"])
    @authenticated
    def release_assignment(assignment_id: str):
        return jsonify(application.assignments.release_buyer(
            assignment_id, g.user.id, company_id=g.account.company_key
        ).to_row())

    @app.route("/api/assignments/<assignment_id>/contacts", methods=["POST"])
    @authenticated
    def record_contact(assignment_id: str):
        body = _body()
        contact = application.assignments.record_contact(
            assignment_id,
            g.user.id,
            body.get("contactMethod"),
            message_content=body.get("messageContent"),
            company_id=g.account.company_key,
        )
        return jsonify(contact.to_row()), 201

    @app.route("/api/contacts")
    @authenticated
    def contact_history():
        return jsonify({
            "contacts": _rows(application.assignments.contact_history(g.user.id)),
            "monthlyCount": application.assignments.monthly_contact_count(g.user.id),
        })

    # ---------- conversations ----------

    @app.route("/api/conversations", methods=["GET"])
    @authenticated
    def list_conversations():
        return jsonify({
            "conversations": _rows(application.messaging.list_conversations(g.user.id)),
            "unreadCount": application.messaging.unread_count(g.user.id),
        })

    @app.route("/api/conversations", methods=["POST"])
    @authenticated
    def start_conversation():
        body = _body()
        state = subscription()
        conversation, message = application.messaging.start_conversation(
            g.user.id, state.tier, body.get("buyerId"), body.get("message")
        )
        return jsonify({"conversation": conversation.to_row(), "message": message.to_row()}), 201

    @app.route("/api/conversations/<conversation_id>/messages", methods=["GET"])
    @authenticated
    def fetch_messages(conversation_id: str):
        return jsonify({"messages": _rows(application.messaging.fetch_messages(conversation_id, g.user.id))})

    @app.route("/api/conversations/<conversation_id>/messages", methods=["POST"])
    @authenticated
    def send_message(conversation_id: str):
        message = application.messaging.send_message(conversation_id, g.user.id, _body().get("content"))
        return jsonify(message.to_row()), 201

    @app.route("/api/conversations/<conversation_id>/read", methods=["POST"])
    @authenticated
    def mark_read(conversation_id: str):
        return jsonify(application.messaging.mark_conversation_read(conversation_id, g.user.id).to_row())

    @app.route("/api/conversations/<conversation_id>/close", methods=["POST"])
    @authenticated
    def close_conversation(conversation_id: str):
        return jsonify(application.messaging.close_conversation(conversation_id, g.user.id).to_row())

    # ---------- insights and workspace ----------

    @app.route("/api/insights", methods=["POST"])
    @authenticated
    def insights():
        body = _body()
        workspace = application.workspace_for(g.account).state
        leads = body.get("leads")
        campaigns = body.get("campaigns")
        if leads is None and campaigns is None:
            leads, campaigns = workspace.lead_data, workspace.campaign_data
        result = application.master_agent.insights(body.get("context"), leads, campaigns)
        return jsonify({"insights": [insight.to_dict() for insight in result]})

    @app.route("/api/workspace", methods=["GET"])
    @authenticated
    def get_workspace():
        return jsonify(application.workspace_for(g.account).snapshot())

    @app.route("/api/workspace/<kind>", methods=["POST"])
    @authenticated
    def import_workspace_file(kind: str):
        body = _body()
        workspace = application.workspace_for(g.account)
        count = workspace.import_csv(kind, body.get("fileName", ""), body.get("content", ""))
        workspace.save()
        return jsonify({"imported": count, "workspace": workspace.snapshot()}), 201

    @app.route("/api/workspace/<kind>/insights", methods=["PUT"])
    @authenticated
    def set_workspace_insights(kind: str):
        workspace = application.workspace_for(g.account)
        workspace.set_insights(kind, _body().get("insights"))
        workspace.save()
        return jsonify(workspace.snapshot())

    @app.route("/api/workspace/<kind>", methods=["DELETE"])
    @authenticated
    def clear_workspace(kind: str):
        workspace = application.workspace_for(g.account)
        workspace.clear(kind)
        workspace.save()
        return jsonify(workspace.snapshot())

    @app.route("/health")
    def health():
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "store": application.config.store_backend,
            "buyers": application.buyers.query.status,
        })

    return app


def run_server(app: Flask, host: str = "127.0.0.1", port: int = 8080, debug: bool = False) -> None:
    """Run the Flask development server."""
    logger.info(f"Starting server on http://{host}:{port}")
    app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
