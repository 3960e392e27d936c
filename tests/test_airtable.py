"""Tests for the Airtable client, proxy, record mapping and polled feeds."""
import pytest
from unittest.mock import Mock
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.airtable_client import AirtableClient, sort_params
from naybourhood.airtable_proxy import AirtableProxy
from naybourhood.classification import LeadClassification
from naybourhood.config import AirtableConfig, PollingConfig
from naybourhood.errors import AirtableError, ConfigurationError, RecordMappingError, RequestValidationError
from naybourhood.feeds import BuyerFeed, CampaignFeed
from naybourhood.polling import PollingQuery
from naybourhood.records import Buyer, Campaign, normalize_records, unique_callers


def make_response(data, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = data
    response.text = str(data)
    return response


@pytest.fixture
def airtable_config():
    return AirtableConfig(api_key="pat_test123", base_id="appTEST")


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def client(airtable_config, session):
    return AirtableClient(airtable_config, session=session)


def buyer_record(record_id="rec1", **fields):
    defaults = {"Lead Name": "Sarah Ahmed", "Score": 72, "Status": "Contacted"}
    defaults.update(fields)
    return {"id": record_id, "createdTime": "2025-03-01T10:00:00.000Z", "fields": defaults}


class TestAirtableClient:

    def test_list_all_follows_offsets(self, client, session):
        session.request.side_effect = [
            make_response({"records": [{"id": "rec1"}, {"id": "rec2"}], "offset": "itr1"}),
            make_response({"records": [{"id": "rec3"}], "offset": "itr2"}),
            make_response({"records": [{"id": "rec4"}]}),
        ]

        records = client.list_all("Buyers", page_size=100)

        assert [r["id"] for r in records] == ["rec1", "rec2", "rec3", "rec4"]
        assert session.request.call_count == 3
        offsets = [call.kwargs["params"].get("offset") for call in session.request.call_args_list]
        assert offsets == [None, "itr1", "itr2"]

    def test_list_all_single_page(self, client, session):
        session.request.return_value = make_response({"records": [{"id": "rec1"}]})
        assert len(client.list_all("Buyers")) == 1
        assert session.request.call_count == 1

    def test_sort_params_encoding(self):
        params = sort_params([{"field": "Score", "direction": "desc"}, {"field": "Name"}])
        assert params == {
            "sort[0][field]": "Score",
            "sort[0][direction]": "desc",
            "sort[1][field]": "Name",
            "sort[1][direction]": "asc",
        }

    def test_legacy_table_alias(self, client, session):
        session.request.return_value = make_response({"records": []})
        client.list_records("Campaign_Date")
        url = session.request.call_args.args[1]
        assert url.endswith("/appTEST/Campaign_Data")

    def test_error_status_raises(self, client, session):
        session.request.return_value = make_response({"error": {"type": "NOT_FOUND"}}, status_code=404)
        with pytest.raises(AirtableError) as exc:
            client.get_record("Buyers", "recMissing")
        assert exc.value.status_code == 404
        assert exc.value.details == {"error": {"type": "NOT_FOUND"}}

    def test_unconfigured_client_raises(self, session):
        client = AirtableClient(AirtableConfig(), session=session)
        with pytest.raises(ConfigurationError):
            client.list_records("Buyers")
        session.request.assert_not_called()

    def test_create_wraps_fields(self, client, session):
        session.request.return_value = make_response({"records": []})
        client.create_records("Buyers", {"Lead Name": "New"})
        assert session.request.call_args.kwargs["json"] == {"records": [{"fields": {"Lead Name": "New"}}]}

    def test_connection_failure_returns_false(self, client, session):
        session.request.return_value = make_response({"error": "AUTHENTICATION_REQUIRED"}, status_code=401)
        assert client.test_connection() is False


class TestAirtableProxy:

    @pytest.fixture
    def proxy(self, client):
        return AirtableProxy(client)

    def test_table_required(self, proxy):
        with pytest.raises(RequestValidationError, match="Table name is required"):
            proxy.handle({"action": "list"})

    def test_get_requires_record_id(self, proxy):
        with pytest.raises(RequestValidationError, match="Record ID is required"):
            proxy.handle({"action": "get", "table": "Buyers"})

    def test_update_requires_data(self, proxy):
        with pytest.raises(RequestValidationError):
            proxy.handle({"action": "update", "table": "Buyers", "recordId": "rec1"})

    def test_unknown_action(self, proxy):
        with pytest.raises(RequestValidationError, match="Invalid action"):
            proxy.handle({"action": "truncate", "table": "Buyers"})

    def test_list_forwards_options(self, proxy, session):
        session.request.return_value = make_response({"records": [], "offset": "itr9"})
        result = proxy.handle({
            "action": "list",
            "table": "Buyers",
            "filterByFormula": "{Score} > 50",
            "maxRecords": 10,
        })
        assert result["offset"] == "itr9"
        params = session.request.call_args.kwargs["params"]
        assert params["filterByFormula"] == "{Score} > 50"
        assert params["maxRecords"] == 10

    def test_unconfigured(self, session):
        proxy = AirtableProxy(AirtableClient(AirtableConfig(), session=session))
        with pytest.raises(ConfigurationError):
            proxy.handle({"action": "list", "table": "Buyers"})


class TestBuyerMapping:

    def test_basic_fields(self):
        buyer = Buyer.from_airtable_record(buyer_record(**{
            "Email": "sarah@example.com",
            "Budget Range": "£500K - £1M",
            "Quality Score": 85,
            "Intent Score": "82",
            "Purchase in 28 Days": "Yes",
        }))
        assert buyer.id == "rec1"
        assert buyer.name == "Sarah Ahmed"
        assert buyer.score == 72
        assert buyer.email == "sarah@example.com"
        assert buyer.purchase_in_28_days is True
        assert buyer.classification == LeadClassification.HOT
        assert buyer.created_time.year == 2025

    def test_name_from_first_and_last(self):
        record = {"id": "rec2", "fields": {"First Name": "Tom", "Last Name": "Reed"}}
        assert Buyer.from_airtable_record(record).name == "Tom Reed"

    def test_defaults(self):
        buyer = Buyer.from_airtable_record({"id": "rec3", "fields": {}})
        assert buyer.name == "Unknown"
        assert buyer.status == "Contact Pending"
        assert buyer.score == 0
        assert buyer.classification is None

    def test_collaborator_and_select_values(self):
        buyer = Buyer.from_airtable_record(buyer_record(**{
            "Assigned Caller": [{"name": "Amy"}, {"name": "Ben"}],
            "Status": {"name": "Qualified"},
        }))
        assert buyer.assigned_caller == "Amy, Ben"
        assert buyer.status == "Qualified"

    def test_lookup_array_score(self):
        assert Buyer.from_airtable_record(buyer_record(Score=[64])).score == 64

    def test_non_numeric_score_names_field(self):
        with pytest.raises(RecordMappingError) as exc:
            Buyer.from_airtable_record(buyer_record(Score="high"))
        assert exc.value.field == "score"
        assert exc.value.record_id == "rec1"

    def test_out_of_range_score(self):
        with pytest.raises(RecordMappingError):
            Buyer.from_airtable_record(buyer_record(**{"Quality Score": 140}))

    def test_record_without_fields(self):
        with pytest.raises(RecordMappingError):
            Buyer.from_airtable_record({"id": "rec4"})

    def test_normalize_collects_errors(self):
        buyers, errors = normalize_records(
            [buyer_record("rec1"), buyer_record("rec2", Score="n/a"), buyer_record("rec3")],
            Buyer.from_airtable_record,
        )
        assert [b.id for b in buyers] == ["rec1", "rec3"]
        assert len(errors) == 1

    def test_unique_callers(self):
        buyers = [
            Buyer.from_airtable_record(buyer_record("rec1", **{"Assigned Caller": "Amy, Ben"})),
            Buyer.from_airtable_record(buyer_record("rec2", **{"Assigned Caller": "Ben"})),
        ]
        assert unique_callers(buyers) == ["Amy", "Ben"]


class TestCampaignMapping:

    def test_currency_strings_and_derived_cpl(self):
        campaign = Campaign.from_airtable_record({"id": "recC1", "fields": {
            "Campaign Name": "Battersea Launch",
            "Amount spent (GBP)": "£1,200.00",
            "Results": 40,
            "Campaign delivery": "inactive",
        }})
        assert campaign.spent == 1200
        assert campaign.leads == 40
        assert campaign.cpl == 30
        assert campaign.budget == 1800
        assert campaign.status == "paused"

    def test_defaults(self):
        campaign = Campaign.from_airtable_record({"id": "recC2", "fields": {}})
        assert campaign.name == "Unknown Campaign"
        assert campaign.budget == 1000
        assert campaign.cpl == 0
        assert campaign.status == "live"

    def test_raw_format_keys(self):
        campaign = Campaign.from_airtable_record({"id": "recC3", "fields": {"Campaign Name": "X", "Spend": 10}})
        row = campaign.to_raw_format()
        assert row["Campaign Name"] == "X"
        assert row["Spend"] == 10


class TestPollingQuery:

    def test_caches_until_stale(self):
        now = [0.0]
        fetcher = Mock(side_effect=[["a"], ["b"]])
        query = PollingQuery("test", fetcher, stale_seconds=60, clock=lambda: now[0])

        assert query.status == "idle"
        assert query.get() == ["a"]
        now[0] = 30
        assert query.get() == ["a"]
        now[0] = 61
        assert query.get() == ["b"]
        assert fetcher.call_count == 2

    def test_invalidate_forces_refetch(self):
        fetcher = Mock(side_effect=[1, 2])
        query = PollingQuery("test", fetcher, stale_seconds=1000)
        query.get()
        query.invalidate()
        assert query.get() == 2

    def test_error_kept_and_previous_data_retained(self):
        fetcher = Mock(side_effect=[["a"], RuntimeError("Airtable down")])
        query = PollingQuery("test", fetcher, stale_seconds=0)
        query.refetch()

        with pytest.raises(RuntimeError):
            query.refetch()

        assert query.status == "error"
        assert query.data == ["a"]

    def test_start_without_interval_is_noop(self):
        query = PollingQuery("test", Mock(), refetch_interval_seconds=None)
        query.start()
        assert query._thread is None


class TestFeeds:

    @pytest.fixture
    def polling(self):
        return PollingConfig(buyers_refetch_seconds=None)

    def test_buyers_sorted_request_and_tier_filter(self, client, session, airtable_config, polling):
        session.request.return_value = make_response({"records": [
            buyer_record("rec1", Score=90),
            buyer_record("rec2", Score=65),
            buyer_record("rec3", Score=40),
        ]})
        feed = BuyerFeed(client, airtable_config, polling)

        assert [b.id for b in feed.visible_buyers("access")] == ["rec2"]
        assert [b.id for b in feed.visible_buyers("growth")] == ["rec1", "rec2"]
        assert [b.id for b in feed.visible_buyers("enterprise")] == ["rec1", "rec2", "rec3"]
        assert [b.id for b in feed.first_refusal_buyers("enterprise")] == ["rec1"]

        params = session.request.call_args.kwargs["params"]
        assert params["sort[0][field]"] == "Score"
        assert params["sort[0][direction]"] == "desc"
        assert params["pageSize"] == 100

    def test_get_buyer(self, client, session, airtable_config, polling):
        session.request.return_value = make_response({"records": [buyer_record("rec1")]})
        feed = BuyerFeed(client, airtable_config, polling)
        assert feed.get_buyer("rec1").name == "Sarah Ahmed"
        assert feed.get_buyer("recX") is None

    def test_update_invalidates_cache(self, client, session, airtable_config, polling):
        session.request.return_value = make_response({"records": [buyer_record("rec1")]})
        feed = BuyerFeed(client, airtable_config, polling)
        feed.buyers()
        feed.update_buyer("rec1", {"Status": "Qualified"})
        assert feed.query.is_stale is True

    def test_campaign_rows(self, client, session, airtable_config, polling):
        session.request.return_value = make_response({"records": [
            {"id": "recC1", "fields": {"Campaign Name": "A", "Spend": 100, "Results": 4}},
        ]})
        feed = CampaignFeed(client, airtable_config, polling)
        rows = feed.campaign_rows()
        assert rows[0]["CPL"] == 25
        assert session.request.call_args.kwargs["params"]["maxRecords"] == 1000
