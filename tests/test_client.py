"""Tests for the core ApiClient against a fake transport."""

import json
import logging
import urllib.error
import urllib.parse

import pytest

from circleci_provider.core.client import (
    DEFAULT_BASE_URL,
    APIError,
    ApiClient,
    ProjectNotFoundError,
)
from circleci_provider.core.types import AWSKeypair, Project
from tests.conftest import FakeOpener, FakeResponse, http_error

PROJECTS = [
    {"vcs_type": "github", "username": "acme", "reponame": "api", "aws": {"keypair": None}},
    {
        "vcs_type": "bitbucket",
        "username": "acme",
        "reponame": "web",
        "aws": {"keypair": {"access_key_id": "AKIA1", "secret_access_key": "xxxxcret"}},
    },
    {"vcs_type": "github", "username": "acme", "reponame": "web"},
]


def query(req) -> dict[str, list[str]]:
    return urllib.parse.parse_qs(urllib.parse.urlsplit(req.full_url).query)


def path(req) -> str:
    return urllib.parse.urlsplit(req.full_url).path


# =============================================================================
# Request construction
# =============================================================================


class TestRequests:
    """Every request is authenticated and JSON-typed."""

    def test_token_and_headers(self, client, opener):
        opener.queue(FakeResponse(body=[]))
        client.list_projects()

        req = opener.last
        assert req.get_method() == "GET"
        assert path(req) == "/api/v1.1/projects"
        assert query(req) == {"circle-token": ["test-token"]}
        assert req.get_header("Accept") == "application/json"
        assert req.get_header("Content-type") == "application/json"
        assert req.data is None

    def test_default_base_url(self):
        client = ApiClient(token="t", opener=FakeOpener())
        assert client.base_url == DEFAULT_BASE_URL

    def test_base_url_without_trailing_slash(self, opener):
        client = ApiClient(token="t", base_url="https://circleci.test/api/v1.1", opener=opener)
        opener.queue(FakeResponse(body=[]))
        client.list_projects()
        assert path(opener.last) == "/api/v1.1/projects"

    def test_no_timeout_unless_configured(self, client, opener):
        opener.queue(FakeResponse(body=[]))
        client.list_projects()
        assert opener.kwargs[-1] == {}

    def test_timeout_passed_to_transport(self, opener):
        client = ApiClient(token="t", opener=opener, timeout=5)
        opener.queue(FakeResponse(body=[]))
        client.list_projects()
        assert opener.kwargs[-1] == {"timeout": 5}

    def test_path_segments_are_quoted(self, client, opener):
        opener.queue(FakeResponse(status=204))
        client.delete_env_var("github", "acme", "api", "A B/C")
        assert path(opener.last) == "/api/v1.1/project/github/acme/api/envvar/A%20B%2FC"

    def test_response_is_closed(self, client, opener):
        response = FakeResponse(body=[])
        opener.queue(response)
        client.list_projects()
        assert response.closed


# =============================================================================
# Operations
# =============================================================================


class TestProjects:
    def test_list_projects_keeps_server_order(self, client, opener):
        opener.queue(FakeResponse(body=PROJECTS))
        projects = client.list_projects()

        assert [p.key for p in projects] == [
            ("github", "acme", "api"),
            ("bitbucket", "acme", "web"),
            ("github", "acme", "web"),
        ]
        assert projects[0].aws.keypair is None
        assert projects[1].aws.keypair == AWSKeypair("AKIA1", "xxxxcret")

    def test_get_project_matches_full_triple(self, client, opener):
        opener.queue(FakeResponse(body=PROJECTS))
        project = client.get_project("github", "acme", "web")
        assert project == Project.from_dict(PROJECTS[2])

    @pytest.mark.parametrize(
        "triple",
        [
            ("github", "acme", "missing"),
            ("bitbucket", "acme", "api"),
            ("github", "other", "api"),
        ],
    )
    def test_get_project_not_found(self, client, opener, triple):
        opener.queue(FakeResponse(body=PROJECTS))
        with pytest.raises(ProjectNotFoundError) as exc:
            client.get_project(*triple)
        assert exc.value.message == "Unable to find project {}/{}/{}".format(*triple)

    def test_follow_project(self, client, opener):
        opener.queue(FakeResponse(body=PROJECTS[0]))
        project = client.follow_project("github", "acme", "api")

        assert opener.last.get_method() == "POST"
        assert path(opener.last) == "/api/v1.1/project/github/acme/api/follow"
        assert project.key == ("github", "acme", "api")

    def test_disable_project_discards_body(self, client, opener):
        opener.queue(FakeResponse(status=200, body="not json"))
        assert client.disable_project("github", "acme", "api") is None

        assert opener.last.get_method() == "DELETE"
        assert path(opener.last) == "/api/v1.1/project/github/acme/api/enable"


class TestAwsKeys:
    def test_set_aws_keys(self, client, opener):
        opener.queue(FakeResponse(status=200))
        client.set_aws_keys("github", "acme", "api", "AKIA1", "secret")

        assert opener.last.get_method() == "PUT"
        assert path(opener.last) == "/api/v1.1/project/github/acme/api/settings"
        assert opener.bodies()[-1] == {
            "aws": {"keypair": {"access_key_id": "AKIA1", "secret_access_key": "secret"}}
        }

    def test_remove_aws_keys_sends_null_keypair(self, client, opener):
        opener.queue(FakeResponse(status=200))
        client.remove_aws_keys("github", "acme", "api")

        assert opener.last.get_method() == "PUT"
        assert opener.bodies()[-1] == {"aws": {"keypair": None}}


class TestEnvVars:
    def test_list_env_vars(self, client, opener):
        opener.queue(FakeResponse(body=[{"name": "FOO", "value": "xxxxr"}]))
        env_vars = client.list_env_vars("github", "acme", "api")

        assert path(opener.last) == "/api/v1.1/project/github/acme/api/envvar"
        assert [(ev.name, ev.value) for ev in env_vars] == [("FOO", "xxxxr")]

    def test_add_env_var_returns_server_value(self, client, opener):
        opener.queue(FakeResponse(status=201, body={"name": "FOO", "value": "xxxxr"}))
        env_var = client.add_env_var("github", "acme", "api", "FOO", "bar")

        assert opener.last.get_method() == "POST"
        assert opener.bodies()[-1] == {"name": "FOO", "value": "bar"}
        assert env_var.value == "xxxxr"

    def test_delete_env_var(self, client, opener):
        opener.queue(FakeResponse(status=204))
        client.delete_env_var("github", "acme", "api", "FOO")

        assert opener.last.get_method() == "DELETE"
        assert path(opener.last) == "/api/v1.1/project/github/acme/api/envvar/FOO"


# =============================================================================
# Error handling
# =============================================================================


class TestErrors:
    @pytest.mark.parametrize("status", [404, 422, 500])
    def test_message_from_body(self, client, opener, status):
        opener.queue(http_error(status, b'{"message": "X"}'))
        with pytest.raises(APIError) as exc:
            client.list_projects()

        assert exc.value.status_code == status
        assert exc.value.message == "X"
        assert str(exc.value) == f"{status}: X"

    @pytest.mark.parametrize("status", [404, 422, 500])
    def test_empty_body(self, client, opener, status):
        opener.queue(http_error(status))
        with pytest.raises(APIError) as exc:
            client.list_projects()

        assert exc.value.status_code == status
        assert exc.value.message == ""

    def test_unparseable_body(self, client, opener):
        opener.queue(http_error(500, b"<html>Bad gateway</html>"))
        with pytest.raises(APIError) as exc:
            client.list_projects()

        assert exc.value.status_code == 500
        assert exc.value.message.startswith("unable to parse API response:")

    def test_body_without_message(self, client, opener):
        opener.queue(http_error(400, b'{"error": "nope"}'))
        with pytest.raises(APIError) as exc:
            client.list_projects()
        assert exc.value.message == ""

    def test_status_300_is_an_error(self, client, opener):
        # A transport that does not raise still gets classified by status
        opener.queue(FakeResponse(status=304, body=b""))
        with pytest.raises(APIError) as exc:
            client.list_projects()
        assert exc.value.status_code == 304

    def test_to_dict(self):
        assert APIError(404, "Project not found").to_dict() == {"error": "Project not found", "status": 404}

    def test_transport_errors_propagate(self, client, opener):
        opener.queue(urllib.error.URLError("name resolution failed"))
        with pytest.raises(urllib.error.URLError):
            client.list_projects()

    def test_decode_errors_propagate(self, client, opener):
        opener.queue(FakeResponse(status=200, body=b"{not json"))
        with pytest.raises(json.JSONDecodeError):
            client.list_projects()

    def test_no_retry(self, client, opener):
        opener.queue(http_error(503), FakeResponse(body=[]))
        with pytest.raises(APIError):
            client.list_projects()
        assert len(opener.requests) == 1


# =============================================================================
# Debug logging
# =============================================================================


class TestDebugLogging:
    def test_silent_by_default(self, client, opener, caplog):
        caplog.set_level(logging.DEBUG)
        opener.queue(FakeResponse(body=[]))
        client.list_projects()
        assert not [r for r in caplog.records if r.name.startswith("circleci_provider")]

    def test_dumps_request_and_response(self, opener, caplog):
        logger = logging.getLogger("tests.circleci.debug")
        caplog.set_level(logging.DEBUG, logger=logger.name)
        client = ApiClient(
            token="super-secret-token",
            base_url="https://circleci.test/api/v1.1/",
            opener=opener,
            debug=True,
            logger=logger,
        )
        opener.queue(FakeResponse(status=201, body={"name": "FOO", "value": "xxxxr"}))
        client.add_env_var("github", "acme", "api", "FOO", "bar")

        messages = [r.getMessage() for r in caplog.records if r.name == logger.name]
        assert messages[0].startswith("building request for https://circleci.test/api/v1.1/project/")
        assert any(m.startswith("request:\nPOST ") and '"value": "bar"' in m for m in messages)
        assert any(m.startswith("response:\nHTTP 201") and "xxxxr" in m for m in messages)

        text = "\n".join(messages)
        assert "super-secret-token" not in text
        assert "circle-token=xxxxoken" in text
