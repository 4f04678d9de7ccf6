import json

import pytest
import requests

from plane_importer.client import (
    Config,
    PlaneAuthError,
    PlaneClient,
    PlaneError,
    PlaneHTTPError,
    PlaneNetworkError,
    PlaneRateLimitError,
    PlaneResponseError,
    PlaneValidationError,
    normalize_results,
    parse_retry_after,
)


class FakeResponse:
    def __init__(self, status_code=200, data=None, headers=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = "" if data is None else json.dumps(data)
        self.headers = headers or {}
        self._data = data

    def json(self):
        return self._data


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


PROJECTS = {"results": [{"id": "p-0", "name": "Other"}, {"id": "p-1", "name": "Site"}]}


def _cfg(**overrides):
    values = {
        "base_url": "https://plane.example.com/",
        "api_key": "secret",
        "workspace_slug": "acme",
        "project_name": "Site",
    }
    values.update(overrides)
    return Config(**values)


def _client(responses, **overrides):
    session = FakeSession(responses)
    return PlaneClient(_cfg(**overrides), session=session), session


def test_headers_and_project_resolution():
    client, session = _client([FakeResponse(data=PROJECTS)])

    assert client.initialize() == "p-1"
    assert session.headers["X-API-Key"] == "secret"
    method, url, kwargs = session.requests[0]
    assert method == "GET"
    assert url == "https://plane.example.com/api/v1/workspaces/acme/projects/"
    assert kwargs["verify"] is True


def test_missing_project_raises():
    client, _ = _client([FakeResponse(data=[{"id": "p-0", "name": "Other"}])])

    with pytest.raises(PlaneError, match="Site"):
        client.initialize()


def test_calls_before_initialize_raise():
    client, _ = _client([])

    with pytest.raises(PlaneError, match="not initialized"):
        client.list_states()


def test_list_states_and_issues_normalize_shapes():
    client, session = _client(
        [
            FakeResponse(data=PROJECTS),
            FakeResponse(data=[{"id": "s1", "group": "backlog"}]),
            FakeResponse(data={"results": [{"id": "i-1"}], "next_cursor": "x"}),
        ]
    )
    client.initialize()

    assert client.list_states() == [{"id": "s1", "group": "backlog"}]
    assert client.list_issues(page=2, per_page=10) == [{"id": "i-1"}]
    method, url, kwargs = session.requests[-1]
    assert url.endswith("/workspaces/acme/projects/p-1/issues/")
    assert kwargs["params"] == {"page": 2, "per_page": 10}


def test_create_update_delete_requests():
    client, session = _client(
        [
            FakeResponse(data=PROJECTS),
            FakeResponse(201, data={"id": "i-9", "name": "New"}),
            FakeResponse(data={"id": "i-9", "priority": "low"}),
            FakeResponse(204),
        ]
    )
    client.initialize()

    assert client.create_issue({"name": "New"})["id"] == "i-9"
    assert client.update_issue("i-9", {"priority": "low"})["priority"] == "low"
    assert client.delete_issue("i-9") is None

    methods = [(m, u.split("/api/v1")[1]) for m, u, _ in session.requests[1:]]
    assert methods == [
        ("POST", "/workspaces/acme/projects/p-1/issues/"),
        ("PATCH", "/workspaces/acme/projects/p-1/issues/i-9/"),
        ("DELETE", "/workspaces/acme/projects/p-1/issues/i-9/"),
    ]
    assert session.requests[1][2]["json"] == {"name": "New"}


@pytest.mark.parametrize(
    "status, error_cls",
    [
        (400, PlaneValidationError),
        (422, PlaneValidationError),
        (401, PlaneAuthError),
        (403, PlaneAuthError),
        (500, PlaneHTTPError),
    ],
)
def test_error_classification(status, error_cls):
    client, _ = _client([FakeResponse(status, data={"detail": "nope"})])

    with pytest.raises(error_cls) as excinfo:
        client.initialize()
    assert excinfo.value.status_code == status
    assert not isinstance(excinfo.value, PlaneRateLimitError)


def test_rate_limit_error_carries_retry_after():
    client, _ = _client(
        [FakeResponse(data=PROJECTS), FakeResponse(429, data={}, headers={"Retry-After": "7"})]
    )
    client.initialize()

    with pytest.raises(PlaneRateLimitError) as excinfo:
        client.create_issue({"name": "x"})
    assert excinfo.value.retry_after == 7


def test_non_json_success_body_is_wrapped():
    proxy_page = FakeResponse(201)
    proxy_page.text = "<html>proxy</html>"
    proxy_page.json = lambda: json.loads(proxy_page.text)
    client, _ = _client([FakeResponse(data=PROJECTS), proxy_page])
    client.initialize()

    with pytest.raises(PlaneResponseError) as excinfo:
        client.create_issue({"name": "x"})
    assert excinfo.value.status_code == 201
    assert "proxy" in excinfo.value.text


def test_network_errors_are_wrapped():
    client, _ = _client([requests.ConnectionError("refused")])

    with pytest.raises(PlaneNetworkError):
        client.initialize()


def test_dry_run_skips_mutations(capsys):
    client, session = _client([FakeResponse(data=PROJECTS)], dry_run=True)
    client.initialize()

    first = client.create_issue({"name": "A"})
    second = client.create_issue({"name": "B", "parent": first["id"]})
    client.update_issue("i-1", {"name": "C"})
    client.delete_issue("i-1")

    assert first["id"] == "dry-run-1"
    assert second["id"] == "dry-run-2"
    assert len(session.requests) == 1
    assert "DRY RUN DELETE" in capsys.readouterr().out


def test_parse_retry_after():
    assert parse_retry_after(None) is None
    assert parse_retry_after("") is None
    assert parse_retry_after("2") == 2
    assert parse_retry_after(" 3.5 ") == 3
    assert parse_retry_after("-1") is None
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


def test_normalize_results():
    assert normalize_results([1, 2]) == [1, 2]
    assert normalize_results({"results": [3]}) == [3]
    assert normalize_results({"results": None}) == []
    assert normalize_results({}) == []
    assert normalize_results(None) == []
