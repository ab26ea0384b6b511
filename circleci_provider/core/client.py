"""
Core HTTP client for the CircleCI v1.1 API.

Handles authentication, request/response, debug dumps, and error handling.
"""

import json
import logging
import sys
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from circleci_provider.core.masking import mask_secret
from circleci_provider.core.types import AWSConfig, AWSKeypair, EnvVar, Project

# Configuration
DEFAULT_BASE_URL = "https://circleci.com/api/v1.1/"
LOGGER_NAME = "circleci_provider"
TOKEN_PARAM = "circle-token"


class CircleCIError(Exception):
    """Base error class for provider errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        result: dict[str, Any] = {"error": self.message}
        if self.details:
            result["details"] = self.details
        return result


class APIError(CircleCIError):
    """Non-2xx response from CircleCI: status code plus the body's message, if any."""

    def __init__(self, status_code: int, message: str = "", details: dict | None = None):
        super().__init__(message, details)
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        result = super().to_dict()
        result["status"] = self.status_code
        return result


class ProjectNotFoundError(CircleCIError):
    """The project is not in the list of followed projects."""

    def __init__(self, vcs_type: str, account: str, reponame: str):
        super().__init__(f"Unable to find project {vcs_type}/{account}/{reponame}")
        self.vcs_type = vcs_type
        self.account = account
        self.reponame = reponame


class ValidationError(CircleCIError):
    """Validation error for local input/config issues (not API errors)."""


def default_logger() -> logging.Logger:
    """Return the package logger, attaching a stderr handler on first use."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(message)s", "%Y/%m/%d %H:%M:%S"))
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
    return logger


class ApiClient:
    """
    Low-level HTTP client for the CircleCI v1.1 API.

    Handles:
    - Authentication via the circle-token query parameter
    - JSON request/response bodies
    - Classification of responses into results and APIError
    - Optional debug dumps of every request and response

    Every call is a single round trip: no retries, no caching.
    """

    def __init__(
        self,
        token: str = "",
        base_url: str | None = None,
        opener: urllib.request.OpenerDirector | None = None,
        timeout: float | None = None,
        debug: bool = False,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the API client.

        Args:
            token: CircleCI API token (needed for private repositories and mutative actions)
            base_url: API endpoint (defaults to DEFAULT_BASE_URL)
            opener: Transport used to send requests (defaults to urllib's default opener)
            timeout: Request timeout in seconds (defaults to the transport's own)
            debug: Log every request and response
            logger: Logger for debug messages (defaults to a stderr logger)

        """
        base = base_url or DEFAULT_BASE_URL
        self._base_url = base if base.endswith("/") else f"{base}/"
        self._token = token
        self._opener = opener or urllib.request.build_opener()
        self._timeout = timeout
        self._debug = debug
        self._logger = logger

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token(self) -> str:
        return self._token

    @property
    def timeout(self) -> float | None:
        return self._timeout

    @property
    def debug(self) -> bool:
        return self._debug

    @property
    def logger(self) -> logging.Logger:
        """Logger that receives debug dumps."""
        if self._logger is None:
            return default_logger()
        return self._logger

    # =========================================================================
    # Projects
    # =========================================================================

    def list_projects(self) -> list[Project]:
        """List the projects the token's user is following, in server order."""
        result = self._request("GET", "projects")
        return [Project.from_dict(item) for item in result or []]

    def get_project(self, vcs_type: str, account: str, reponame: str) -> Project:
        """
        Get a followed project.

        There is no single-project endpoint in v1.1, so this scans list_projects().

        Raises:
            ProjectNotFoundError: If no followed project matches the triple

        """
        for project in self.list_projects():
            if project.key == (vcs_type, account, reponame):
                return project
        raise ProjectNotFoundError(vcs_type, account, reponame)

    def follow_project(self, vcs_type: str, account: str, reponame: str) -> Project:
        """Follow a project."""
        result = self._request("POST", self._project_path(vcs_type, account, reponame, "follow"))
        return Project.from_dict(result)

    def disable_project(self, vcs_type: str, account: str, reponame: str) -> None:
        """Disable (stop building) a project."""
        self._request(
            "DELETE",
            self._project_path(vcs_type, account, reponame, "enable"),
            decode=False,
        )

    # =========================================================================
    # AWS keys
    # =========================================================================

    def set_aws_keys(self, vcs_type: str, account: str, reponame: str, key_id: str, secret: str) -> None:
        """Set the project's AWS keypair."""
        aws = AWSConfig(keypair=AWSKeypair(access_key_id=key_id, secret_access_key=secret))
        self._request(
            "PUT",
            self._project_path(vcs_type, account, reponame, "settings"),
            body={"aws": aws.to_dict()},
            decode=False,
        )

    def remove_aws_keys(self, vcs_type: str, account: str, reponame: str) -> None:
        """Remove the project's AWS keypair."""
        self._request(
            "PUT",
            self._project_path(vcs_type, account, reponame, "settings"),
            body={"aws": AWSConfig(keypair=None).to_dict()},
            decode=False,
        )

    # =========================================================================
    # Environment variables
    # =========================================================================

    def list_env_vars(self, vcs_type: str, account: str, reponame: str) -> list[EnvVar]:
        """List the project's environment variables (values come back masked)."""
        result = self._request("GET", self._project_path(vcs_type, account, reponame, "envvar"))
        return [EnvVar.from_dict(item) for item in result or []]

    def add_env_var(self, vcs_type: str, account: str, reponame: str, name: str, value: str) -> EnvVar:
        """
        Add an environment variable to the project.

        Returns:
            The stored variable, with its value masked by the server

        """
        result = self._request(
            "POST",
            self._project_path(vcs_type, account, reponame, "envvar"),
            body=EnvVar(name=name, value=value).to_dict(),
        )
        return EnvVar.from_dict(result)

    def delete_env_var(self, vcs_type: str, account: str, reponame: str, name: str) -> None:
        """Delete an environment variable from the project."""
        self._request(
            "DELETE",
            self._project_path(vcs_type, account, reponame, "envvar", name),
            decode=False,
        )

    # =========================================================================
    # Request plumbing
    # =========================================================================

    @staticmethod
    def _project_path(vcs_type: str, account: str, reponame: str, *rest: str) -> str:
        """Build project/{vcs}/{account}/{repo}/... with each segment quoted."""
        segments = (vcs_type, account, reponame, *rest)
        return "project/" + "/".join(urllib.parse.quote(s, safe="") for s in segments)

    def _build_url(self, path: str) -> str:
        """Build full URL from path, adding the auth token to the query."""
        query = urllib.parse.urlencode({TOKEN_PARAM: self._token})
        return f"{urllib.parse.urljoin(self._base_url, path)}?{query}"

    def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        decode: bool = True,
    ) -> Any:
        """
        Make an HTTP request to the API.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: API path relative to the base URL (e.g., projects)
            body: JSON-serialisable request body
            decode: Decode the response body as JSON (otherwise it is discarded)

        Returns:
            Parsed JSON response, or None when decode is False

        Raises:
            APIError: On any response with status >= 300
            urllib.error.URLError: On transport failures (not wrapped)
            json.JSONDecodeError: On an undecodable success body (not wrapped)

        """
        url = self._build_url(path)
        self._log("building request for %s", self._redact(url))

        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(
            url,
            data=data,
            method=method,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )
        self._debug_request(req, data)

        kwargs = {} if self._timeout is None else {"timeout": self._timeout}
        try:
            response = self._opener.open(req, **kwargs)
        except urllib.error.HTTPError as e:
            # Error statuses are classified below like any other response
            response = e

        try:
            status = response.status
            payload = response.read()
            self._debug_response(status, response.headers, payload)
        finally:
            response.close()

        if status >= 300:
            raise self._api_error(status, payload)

        if not decode:
            return None
        return json.loads(payload)

    @staticmethod
    def _api_error(status: int, payload: bytes) -> APIError:
        """Build an APIError from an error response body."""
        if not payload:
            return APIError(status)

        try:
            data = json.loads(payload)
        except ValueError as e:
            return APIError(status, f"unable to parse API response: {e}")

        if not isinstance(data, dict):
            return APIError(status, "unable to parse API response: expected a JSON object")

        message = data.get("message")
        return APIError(status, message if isinstance(message, str) else "", details=data)

    # =========================================================================
    # Debug logging
    # =========================================================================

    def _log(self, msg: str, *args: Any) -> None:
        if self._debug:
            self.logger.debug(msg, *args)

    def _redact(self, url: str) -> str:
        """Replace the token in a URL with its masked form."""
        if not self._token:
            return url
        quoted = urllib.parse.quote_plus(self._token)
        return url.replace(f"{TOKEN_PARAM}={quoted}", f"{TOKEN_PARAM}={mask_secret(self._token)}")

    def _debug_request(self, req: urllib.request.Request, data: bytes | None) -> None:
        if not self._debug:
            return
        lines = [f"{req.get_method()} {self._redact(req.full_url)}"]
        lines.extend(f"{name}: {value}" for name, value in req.header_items())
        if data:
            lines.extend(["", data.decode("utf-8", errors="replace")])
        self._log("request:\n%s", "\n".join(lines))

    def _debug_response(self, status: int, headers: Any, payload: bytes) -> None:
        if not self._debug:
            return
        lines = [f"HTTP {status}"]
        if headers is not None:
            lines.extend(f"{name}: {value}" for name, value in headers.items())
        if payload:
            lines.extend(["", payload.decode("utf-8", errors="replace")])
        self._log("response:\n%s", "\n".join(lines))
