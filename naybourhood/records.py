"""
Normalisation of Airtable Buyers and Campaign_Data records.

Field names drifted over the life of the base, so every logical field is
read through an alias tuple tried in order. Mapping either succeeds with a
typed record or raises RecordMappingError naming the bad field.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, TypeVar

from .classification import LeadClassification, classify_lead
from .errors import RecordMappingError

logger = logging.getLogger(__name__)

T = TypeVar("T")

BUYER_FIELD_ALIASES = {
    "lead_id": ("Lead ID",),
    "name": ("Lead Name",),
    "first_name": ("first_name", "First Name"),
    "last_name": ("last_name", "Last Name"),
    "email": ("Email", "Email Address"),
    "phone": ("Phone Number", "Phone", "Mobile"),
    "budget_range": ("Budget Range", "Budget"),
    "bedrooms": ("Preferred Bedrooms",),
    "location": ("Preferred Location",),
    "country": ("Country",),
    "timeline": ("Timeline to Purchase",),
    "payment_method": ("Cash/Mortgage",),
    "purpose": ("Purpose for Purchase",),
    "preferred_comm": ("Preferred Communication",),
    "score": ("Score", "Lead Score"),
    "quality_score": ("Quality Score", "quality_score"),
    "intent_score": ("Intent Score", "intent_score"),
    "intent": ("Intent",),
    "status": ("Status",),
    "assigned_caller": ("Assigned Caller",),
    "summary": ("Buyer Summary",),
    "development": ("Development Name",),
    "linkedin": ("LinkedIn Profile",),
    "purchase_in_28_days": ("Purchase in 28 Days",),
    "broker_needed": ("Broker Needed",),
    "campaign_name": ("Campaign Name",),
    "source": ("Source",),
    "notes": ("Notes",),
}

CAMPAIGN_FIELD_ALIASES = {
    "name": ("Campaign Name", "Campaign name"),
    "client": ("Client",),
    "status": ("Status", "Campaign delivery", "Delivery Status"),
    "spend": ("Spend", "Amount spent (GBP)", "Total Spent"),
    "budget": ("Budget",),
    "leads": ("Results", "Leads"),
    "cpl": ("CPL", "Cost per result"),
    "start_date": ("Start Date", "Reporting starts", "Date"),
    "end_date": ("End Date", "Reporting ends"),
    "platform": ("Platform",),
    "impressions": ("Impressions",),
    "reach": ("Reach",),
    "clicks": ("Clicks", "Link clicks", "Link Clicks"),
    "ctr": ("CTR",),
    "cpc": ("CPC",),
    "ad_set_name": ("Ad set name", "Ad Set Name"),
    "frequency": ("Frequency",),
}

BUYER_DEFAULTS = {
    "name": "Unknown",
    "status": "Contact Pending",
    "score": 0,
}

BUYER_STATUS_OPTIONS = (
    "Contact Pending",
    "Contacted",
    "Qualified",
    "Viewing Scheduled",
    "Offer Made",
    "Closed Won",
    "Closed Lost",
    "Not Interested",
)

INTENT_OPTIONS = ("Low", "Medium", "Warm", "Hot", "High")

CAMPAIGN_DEFAULTS = {
    "name": "Unknown Campaign",
    "client": "Airtable",
    "platform": "Facebook",
    "budget": 1000,
}

# Campaign budget when none is recorded, as a multiple of spend
IMPLIED_BUDGET_FACTOR = 1.5

_PAUSED_MARKERS = ("paused", "inactive", "archived")
_NUMBER_CLEAN_RE = re.compile(r"[£$€,%\s]")


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def first_present(fields: dict, aliases: Iterable[str]) -> Any:
    """Value of the first alias that holds a non-blank value."""
    for alias in aliases:
        value = fields.get(alias)
        if not _is_blank(value):
            return value
    return None


def coerce_text(value: Any) -> str:
    """Flatten Airtable values (selects, collaborators, linked records) to text."""
    if _is_blank(value):
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (int, float)):
        return f"{value:g}" if isinstance(value, float) else str(value)
    if isinstance(value, dict):
        return str(value.get("name") or value.get("email") or value.get("id") or "")
    if isinstance(value, (list, tuple)):
        return ", ".join(text for text in (coerce_text(item) for item in value) if text)
    return str(value)


def coerce_number(value: Any, field_name: str, record_id: Optional[str] = None) -> Optional[float]:
    """Parse numbers, numeric strings and currency strings; blank gives None."""
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise RecordMappingError(f"{field_name} must be numeric, got a boolean", record_id, field_name)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, (list, tuple)):
        # Lookup and rollup fields arrive as single-element arrays
        return coerce_number(value[0], field_name, record_id)
    if isinstance(value, str):
        cleaned = _NUMBER_CLEAN_RE.sub("", value)
        try:
            return float(cleaned)
        except ValueError:
            pass
    raise RecordMappingError(f"{field_name} must be numeric, got {value!r}", record_id, field_name)


def parse_boolean_field(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("yes", "true", "1")
    return False


def extract_buyer_name(fields: dict) -> str:
    """'Lead Name', else first + last name, else 'Unknown'."""
    name = coerce_text(first_present(fields, BUYER_FIELD_ALIASES["name"]))
    if name:
        return name
    first = coerce_text(first_present(fields, BUYER_FIELD_ALIASES["first_name"]))
    last = coerce_text(first_present(fields, BUYER_FIELD_ALIASES["last_name"]))
    return f"{first} {last}".strip() or BUYER_DEFAULTS["name"]


def extract_assigned_caller(value: Any) -> str:
    return coerce_text(value)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        logger.warning(f"Could not parse Airtable timestamp: {value}")
        return None


def _record_parts(record: Any) -> tuple[str, dict]:
    if not isinstance(record, dict):
        raise RecordMappingError(f"Expected an Airtable record object, got {type(record).__name__}")
    record_id = record.get("id")
    if not record_id:
        raise RecordMappingError("Record has no id", field="id")
    fields = record.get("fields")
    if not isinstance(fields, dict):
        raise RecordMappingError("Record has no fields object", record_id, "fields")
    return record_id, fields


def _score(fields: dict, key: str, record_id: str) -> Optional[float]:
    value = coerce_number(first_present(fields, BUYER_FIELD_ALIASES[key]), key, record_id)
    if value is not None and not 0 <= value <= 100:
        raise RecordMappingError(f"{key} must be between 0 and 100, got {value:g}", record_id, key)
    return value


@dataclass
class Buyer:
    """A buyer (lead) from the Buyers table."""
    id: str
    name: str
    score: float
    status: str
    lead_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    budget_range: str = ""
    bedrooms: str = ""
    location: str = ""
    country: str = ""
    timeline: str = ""
    payment_method: str = ""
    purpose: str = ""
    preferred_comm: str = ""
    intent: str = ""
    assigned_caller: str = ""
    summary: str = ""
    development: str = ""
    linkedin: str = ""
    campaign_name: str = ""
    source: str = ""
    notes: str = ""
    purchase_in_28_days: bool = False
    broker_needed: bool = False
    quality_score: Optional[float] = None
    intent_score: Optional[float] = None
    created_time: Optional[datetime] = None
    raw_fields: dict = field(default_factory=dict)

    @classmethod
    def from_airtable_record(cls, record: dict) -> "Buyer":
        """Create a Buyer from an Airtable API record."""
        record_id, fields = _record_parts(record)

        def text(key: str) -> str:
            return coerce_text(first_present(fields, BUYER_FIELD_ALIASES[key]))

        score = _score(fields, "score", record_id)

        return cls(
            id=record_id,
            name=extract_buyer_name(fields),
            score=score if score is not None else BUYER_DEFAULTS["score"],
            status=text("status") or BUYER_DEFAULTS["status"],
            lead_id=text("lead_id"),
            first_name=text("first_name"),
            last_name=text("last_name"),
            email=text("email"),
            phone=text("phone"),
            budget_range=text("budget_range"),
            bedrooms=text("bedrooms"),
            location=text("location"),
            country=text("country"),
            timeline=text("timeline"),
            payment_method=text("payment_method"),
            purpose=text("purpose"),
            preferred_comm=text("preferred_comm"),
            intent=text("intent"),
            assigned_caller=extract_assigned_caller(
                first_present(fields, BUYER_FIELD_ALIASES["assigned_caller"])
            ),
            summary=text("summary"),
            development=text("development"),
            linkedin=text("linkedin"),
            campaign_name=text("campaign_name"),
            source=text("source"),
            notes=text("notes"),
            purchase_in_28_days=parse_boolean_field(
                first_present(fields, BUYER_FIELD_ALIASES["purchase_in_28_days"])
            ),
            broker_needed=parse_boolean_field(first_present(fields, BUYER_FIELD_ALIASES["broker_needed"])),
            quality_score=_score(fields, "quality_score", record_id),
            intent_score=_score(fields, "intent_score", record_id),
            created_time=_parse_timestamp(record.get("createdTime")),
            raw_fields=fields,
        )

    @property
    def classification(self) -> Optional[LeadClassification]:
        if self.quality_score is None or self.intent_score is None:
            return None
        return classify_lead(self.intent_score, self.quality_score)

    def to_dict(self) -> dict:
        classification = self.classification
        return {
            "id": self.id,
            "leadId": self.lead_id,
            "name": self.name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "budgetRange": self.budget_range,
            "bedrooms": self.bedrooms,
            "location": self.location,
            "country": self.country,
            "timeline": self.timeline,
            "paymentMethod": self.payment_method,
            "purpose": self.purpose,
            "score": self.score,
            "qualityScore": self.quality_score,
            "intentScore": self.intent_score,
            "classification": classification.value if classification else None,
            "intent": self.intent,
            "status": self.status,
            "assignedCaller": self.assigned_caller,
            "preferredComm": self.preferred_comm,
            "summary": self.summary,
            "development": self.development,
            "linkedin": self.linkedin,
            "purchaseIn28Days": self.purchase_in_28_days,
            "brokerNeeded": self.broker_needed,
            "campaignName": self.campaign_name,
            "source": self.source,
            "notes": self.notes,
            "createdTime": self.created_time.isoformat() if self.created_time else None,
        }


def campaign_status(raw_status: str) -> str:
    """Collapse Airtable delivery states to live / paused / draft."""
    lower = (raw_status or "active").lower()
    if any(marker in lower for marker in _PAUSED_MARKERS):
        return "paused"
    if "draft" in lower:
        return "draft"
    return "live"


@dataclass
class Campaign:
    """A campaign performance row from Campaign_Data."""
    id: str
    name: str
    client: str
    status: str
    raw_status: str
    budget: int
    spent: int
    leads: int
    cpl: float
    start_date: Optional[str]
    end_date: str = ""
    platform: str = "Facebook"
    impressions: float = 0
    reach: float = 0
    clicks: float = 0
    ctr: float = 0
    cpc: float = 0
    ad_set_name: str = ""
    frequency: float = 0

    @classmethod
    def from_airtable_record(cls, record: dict) -> "Campaign":
        record_id, fields = _record_parts(record)

        def text(key: str) -> str:
            return coerce_text(first_present(fields, CAMPAIGN_FIELD_ALIASES[key]))

        def number(key: str) -> float:
            value = coerce_number(first_present(fields, CAMPAIGN_FIELD_ALIASES[key]), key, record_id)
            return value or 0

        spend = number("spend")
        leads = number("leads")
        budget = number("budget") or spend * IMPLIED_BUDGET_FACTOR or CAMPAIGN_DEFAULTS["budget"]
        cpl = number("cpl") or (spend / leads if leads > 0 else 0)
        raw_status = text("status") or "Active"

        return cls(
            id=record_id,
            name=text("name") or CAMPAIGN_DEFAULTS["name"],
            client=text("client") or CAMPAIGN_DEFAULTS["client"],
            status=campaign_status(raw_status),
            raw_status=raw_status,
            budget=round(budget),
            spent=round(spend),
            leads=round(leads),
            cpl=float(cpl),
            start_date=text("start_date") or None,
            end_date=text("end_date"),
            platform=text("platform") or CAMPAIGN_DEFAULTS["platform"],
            impressions=number("impressions"),
            reach=number("reach"),
            clicks=number("clicks"),
            ctr=number("ctr"),
            cpc=number("cpc"),
            ad_set_name=text("ad_set_name"),
            frequency=number("frequency"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "client": self.client,
            "status": self.status,
            "budget": self.budget,
            "spent": self.spent,
            "leads": self.leads,
            "cpl": self.cpl,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "platform": self.platform,
            "impressions": self.impressions,
            "reach": self.reach,
            "clicks": self.clicks,
            "ctr": self.ctr,
            "cpc": self.cpc,
            "adSetName": self.ad_set_name,
            "frequency": self.frequency,
        }

    def to_raw_format(self) -> dict:
        """Spreadsheet-style row used as model context."""
        return {
            "Campaign Name": self.name,
            "Platform": self.platform,
            "Spend": self.spent,
            "Results": self.leads,
            "CPL": self.cpl,
            "Status": self.raw_status,
            "Start Date": self.start_date or "",
            "Impressions": self.impressions,
            "Reach": self.reach,
            "Clicks": self.clicks,
            "CTR": self.ctr,
            "CPC": self.cpc,
            "Ad set name": self.ad_set_name,
            "Frequency": self.frequency,
        }


def normalize_records(
    records: Iterable[dict],
    mapper: Callable[[dict], T],
) -> tuple[list[T], list[RecordMappingError]]:
    """Map every record, collecting failures instead of stopping at the first."""
    items: list[T] = []
    errors: list[RecordMappingError] = []
    for record in records:
        try:
            items.append(mapper(record))
        except RecordMappingError as e:
            logger.error(f"Error mapping record {e.record_id or '?'}: {e}")
            errors.append(e)
    return items, errors


def unique_statuses(buyers: Iterable[Buyer]) -> list[str]:
    return sorted({buyer.status for buyer in buyers if buyer.status})


def unique_callers(buyers: Iterable[Buyer]) -> list[str]:
    callers = set()
    for buyer in buyers:
        for caller in buyer.assigned_caller.split(","):
            if caller.strip():
                callers.add(caller.strip())
    return sorted(callers)
