import json

import pytest

from plane_importer import cli

DATA = "\n".join(
    [
        "A;Parent;taches en planning;;;null;[Alice];1;2 h",
        "B;Child;taches à completer;;;A;[Alice,Nobody];null;",
        "C;Orphan;taches à completer;;;Z;[];3;",
    ]
)

ENV = {
    "PLANE_API_URL": "https://plane.example.com/api/v1",
    "PLANE_API_KEY": "secret",
    "WORKSPACE_SLUG": "acme",
    "PROJECT_NAME": "Site",
}


class RecordingClient:
    instances = []

    def __init__(self, cfg):
        self.cfg = cfg
        self.created = []
        self.deleted = []
        RecordingClient.instances.append(self)

    def initialize(self):
        return "p-1"

    def list_states(self):
        return [{"id": "s1", "group": "backlog"}, {"id": "s2", "group": "unstarted"}]

    def create_issue(self, payload):
        self.created.append(payload)
        return {"id": f"r-{len(self.created)}"}

    def list_issues(self, page=1, per_page=100):
        return [{"id": "old-1", "name": "Old"}]

    def delete_issue(self, issue_id):
        self.deleted.append(issue_id)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    for key in ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    RecordingClient.instances = []
    monkeypatch.setattr(cli, "PlaneClient", RecordingClient)
    (tmp_path / "datas.csv").write_text(DATA, encoding="utf-8")
    (tmp_path / "assignees.json").write_text(json.dumps({"Alice": "u-1"}))
    return tmp_path


def _env(monkeypatch):
    for key, value in ENV.items():
        monkeypatch.setenv(key, value)


def test_missing_settings_fail(workspace, capsys):
    assert cli.main(["--env-file", ""]) == 1
    assert "PLANE_API_KEY" in capsys.readouterr().err


def test_settings_from_env_file(workspace):
    env_file = workspace / ".env"
    env_file.write_text(
        "# plane\n" + "\n".join(f"{k}='{v}'" for k, v in ENV.items()) + "\nexport OTHER=1\n"
    )

    assert cli.main(["--pacing", "0"]) == 0
    cfg = RecordingClient.instances[0].cfg
    assert cfg.base_url == "https://plane.example.com"
    assert cfg.api_key == "secret"
    assert cfg.project_name == "Site"


def test_flags_override_environment(workspace, monkeypatch):
    _env(monkeypatch)

    assert cli.main(["--pacing", "0", "--project-name", "Other", "--insecure"]) == 0
    cfg = RecordingClient.instances[0].cfg
    assert cfg.project_name == "Other"
    assert cfg.verify_ssl is False


def test_hierarchical_import(workspace, monkeypatch, capsys):
    _env(monkeypatch)

    code = cli.main(["--pacing", "0", "--assignee-map", "assignees.json"])

    assert code == 0
    created = RecordingClient.instances[0].created
    assert [p["name"] for p in created] == ["Parent", "Child"]
    assert created[0]["assignees"] == ["u-1"]
    assert created[0]["description"] == "Estimated time: 2 h"
    assert created[1]["parent"] == "r-1"
    assert created[1]["state"] == "s2"
    out = capsys.readouterr().out
    assert "Successfully created 2/3 tasks" in out
    assert "skipped_missing_parent" in out


def test_flat_import_with_limit(workspace, monkeypatch):
    _env(monkeypatch)

    assert cli.main(["--pacing", "0", "--flat", "--limit-tasks", "2"]) == 0
    created = RecordingClient.instances[0].created
    assert [p["name"] for p in created] == ["Parent", "Child"]
    assert "parent" not in created[1]


def test_purge_only(workspace, monkeypatch):
    _env(monkeypatch)

    assert cli.main(["--pacing", "0", "--purge-only", "--purge-confirm", "YES"]) == 0
    client = RecordingClient.instances[0]
    assert client.deleted == ["old-1"]
    assert client.created == []


def test_purge_without_confirmation_fails(workspace, monkeypatch, capsys):
    _env(monkeypatch)

    assert cli.main(["--pacing", "0", "--purge-project"]) == 1
    assert "purge-confirm" in capsys.readouterr().err
    assert RecordingClient.instances[0].created == []


def test_malformed_abort_policy(workspace, monkeypatch, capsys):
    _env(monkeypatch)
    (workspace / "datas.csv").write_text(DATA + "\nbad;row\n", encoding="utf-8")

    assert cli.main(["--pacing", "0", "--on-malformed-row", "abort"]) == 1
    assert "line 4" in capsys.readouterr().err


def test_write_assignee_map(workspace):
    assert cli.main(["--write-assignee-map", "template.json"]) == 0
    assert json.loads((workspace / "template.json").read_text()) == {
        "Alice": None,
        "Nobody": None,
    }
    assert RecordingClient.instances == []


def test_group_aliases_file(workspace, monkeypatch):
    _env(monkeypatch)
    (workspace / "aliases.json").write_text(json.dumps({"to_do": "backlog"}))

    assert cli.main(["--pacing", "0", "--group-aliases", "aliases.json"]) == 0
    created = RecordingClient.instances[0].created
    assert created[1]["name"] == "Child"
    assert created[1]["state"] == "s1"
