"""Tests for uploaded spreadsheet state and its JSON persistence."""
import json
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.errors import RequestValidationError
from naybourhood.workspace import JsonFileStateRepository, Workspace, WorkspaceState, parse_csv, workspace_path

CAMPAIGN_CSV = (
    "\ufeffCampaign Name,Spend,Results\n"
    "Battersea Launch, 1200 ,40\n"
    ",,\n"
    "Nine Elms Retarget,300,12\n"
)


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "state" / "naybourhood_state.json"


class TestParseCsv:

    def test_rows_keyed_by_header(self):
        rows = parse_csv(CAMPAIGN_CSV)
        assert rows == [
            {"Campaign Name": "Battersea Launch", "Spend": "1200", "Results": "40"},
            {"Campaign Name": "Nine Elms Retarget", "Spend": "300", "Results": "12"},
        ]

    def test_empty_file(self):
        with pytest.raises(RequestValidationError, match="no header row"):
            parse_csv("")

    def test_header_only(self):
        assert parse_csv("Lead Name,Email\n") == []


class TestWorkspace:

    def test_import_replaces_rows_and_drops_insights(self):
        workspace = Workspace()
        workspace.set_insights("campaign", {"summary": "old"})
        workspace.set_insights("lead", {"summary": "keep"})

        count = workspace.import_csv("campaign", "campaigns.csv", CAMPAIGN_CSV)

        snapshot = workspace.snapshot()
        assert count == 2
        assert snapshot["campaignFileName"] == "campaigns.csv"
        assert snapshot["insights"] == {"lead": {"summary": "keep"}}

    def test_invalid_kind(self):
        with pytest.raises(RequestValidationError, match="Invalid data type"):
            Workspace().import_csv("developments", "d.csv", "Name\nA\n")

    def test_clear(self):
        workspace = Workspace()
        workspace.import_csv("lead", "leads.csv", "Lead Name\nSarah\n")
        workspace.clear("lead")
        snapshot = workspace.snapshot()
        assert snapshot["leadData"] == []
        assert snapshot["leadFileName"] == ""

    def test_snapshot_is_a_copy(self):
        workspace = Workspace()
        workspace.import_csv("lead", "leads.csv", "Lead Name\nSarah\n")
        workspace.snapshot()["leadData"].append({"Lead Name": "Intruder"})
        assert len(workspace.state.lead_data) == 1

    def test_save_without_repository_is_noop(self):
        Workspace().save()


class TestPersistence:

    def test_round_trip(self, state_file):
        workspace = Workspace(JsonFileStateRepository(state_file))
        workspace.import_csv("lead", "leads.csv", "Lead Name,Email\nSarah,sarah@example.com\n")
        workspace.set_insights("lead", {"summary": "One strong lead"})
        workspace.save()

        saved = json.loads(state_file.read_text())
        assert saved["naybourhood_lead_file_name"] == "leads.csv"
        assert saved["naybourhood_insights"] == {"lead": {"summary": "One strong lead"}}

        reloaded = Workspace(JsonFileStateRepository(state_file))
        assert reloaded.state.lead_data == [{"Lead Name": "Sarah", "Email": "sarah@example.com"}]

    def test_no_temp_files_left(self, state_file):
        workspace = Workspace(JsonFileStateRepository(state_file))
        workspace.save()
        assert [p.name for p in state_file.parent.iterdir()] == [state_file.name]

    def test_missing_file_is_empty(self, state_file):
        assert JsonFileStateRepository(state_file).load() == WorkspaceState()

    def test_corrupt_file_is_empty(self, state_file):
        state_file.parent.mkdir(parents=True)
        state_file.write_text("{not json")
        assert JsonFileStateRepository(state_file).load() == WorkspaceState()

    def test_non_object_is_empty(self, state_file):
        state_file.parent.mkdir(parents=True)
        state_file.write_text("[1, 2, 3]")
        assert JsonFileStateRepository(state_file).load() == WorkspaceState()

    def test_null_values_ignored(self):
        state = WorkspaceState.from_dict({"naybourhood_campaign_data": None, "naybourhood_lead_file_name": "a.csv"})
        assert state.campaign_data == []
        assert state.lead_file_name == "a.csv"


class TestWorkspacePath:

    def test_company_suffix(self, state_file):
        assert workspace_path(state_file, "co-1") == state_file.with_name("naybourhood_state.co-1.json")

    def test_unsafe_key_hashed(self, state_file):
        path = workspace_path(state_file, "../../etc/passwd")
        assert path.parent == state_file.parent
        assert ".." not in path.name
        assert path == workspace_path(state_file, "../../etc/passwd")

    def test_companies_do_not_share_files(self, state_file):
        amy = Workspace(JsonFileStateRepository(workspace_path(state_file, "co-1")))
        amy.import_csv("campaign", "meta.csv", CAMPAIGN_CSV)
        amy.save()

        ben = Workspace(JsonFileStateRepository(workspace_path(state_file, "co-2")))
        assert ben.state.campaign_data == []
