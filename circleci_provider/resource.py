"""
The circleci_project resource.

A desired-state reconciler over the core client: a ProjectSpec describes what
the project should look like, ProjectState is what CircleCI last reported, and
ProjectResource moves one towards the other with follow/read/update/disable.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from circleci_provider.core.client import ApiClient, ProjectNotFoundError, ValidationError
from circleci_provider.core.masking import is_masked, mask_secret
from circleci_provider.core.types import AWSKeypair

logger = logging.getLogger(__name__)

RESOURCE_NAME = "circleci_project"
VCS_TYPES = ("github", "bitbucket")
DEFAULT_VCS_TYPE = "github"
ID_SEPARATOR = ":"


# =============================================================================
# Identifiers
# =============================================================================


def build_id(vcs_type: str, account: str, reponame: str) -> str:
    """Format the triple into an id ``vcs_type:account:reponame``."""
    return ID_SEPARATOR.join((vcs_type, account, reponame))


def expand_id(resource_id: str) -> tuple[str, str, str]:
    """
    Split an id ``a:b:c`` back into its three parts.

    Only the first two separators split; the repository name may contain colons.
    """
    parts = resource_id.split(ID_SEPARATOR, 2)
    if len(parts) != 3:
        raise ValidationError(
            f"Invalid project ID {resource_id!r}",
            details={"expected": "vcs_type:account:project"},
        )
    return parts[0], parts[1], parts[2]


def _comparable(value: str) -> str:
    """
    Values are compared in masked form; already-masked values are kept as-is.

    A desired value that itself starts with xxxx never matches the server's
    masked form, so it is re-added on every apply.
    """
    return value if is_masked(value) else mask_secret(value)


# =============================================================================
# Desired and observed state
# =============================================================================


@dataclass
class ProjectSpec:
    """Desired configuration of a circleci_project."""

    account: str
    project: str
    vcs_type: str = DEFAULT_VCS_TYPE
    variables: dict[str, str] = field(default_factory=dict)
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check the configuration against the resource schema."""
        if not self.account:
            raise ValidationError("account is required")
        if ID_SEPARATOR in self.account:
            raise ValidationError(f"account must not contain {ID_SEPARATOR!r}")
        if not self.project:
            raise ValidationError("project is required")
        if self.vcs_type not in VCS_TYPES:
            raise ValidationError("Value of vcs_type must be either github or bitbucket.")
        if bool(self.aws_access_key_id) != bool(self.aws_secret_access_key):
            raise ValidationError("aws_access_key_id and aws_secret_access_key must be set together")

    @property
    def id(self) -> str:
        return build_id(self.vcs_type, self.account, self.project)

    @property
    def aws_keypair(self) -> AWSKeypair | None:
        if not self.aws_access_key_id or not self.aws_secret_access_key:
            return None
        return AWSKeypair(
            access_key_id=self.aws_access_key_id,
            secret_access_key=self.aws_secret_access_key,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectSpec":
        """
        Create from a configuration mapping.

        ``variable`` is a list of ``{"name": ..., "value": ...}`` blocks; names
        must be unique.
        """
        variables: dict[str, str] = {}
        for block in data.get("variable") or []:
            name = block.get("name")
            if not name or block.get("value") is None:
                raise ValidationError("Each variable requires a name and a value", details={"variable": name})
            if name in variables:
                raise ValidationError(f"Duplicate variable {name!r}")
            variables[name] = str(block["value"])

        return cls(
            account=data.get("account") or "",
            project=data.get("project") or "",
            vcs_type=data.get("vcs_type") or DEFAULT_VCS_TYPE,
            variables=variables,
            aws_access_key_id=data.get("aws_access_key_id"),
            aws_secret_access_key=data.get("aws_secret_access_key"),
        )


@dataclass
class ProjectState:
    """Observed state of a circleci_project. Secret values are always masked."""

    id: str
    vcs_type: str
    account: str
    project: str
    variables: dict[str, str] = field(default_factory=dict)
    aws_keypair: AWSKeypair | None = None

    @classmethod
    def empty(cls, spec: ProjectSpec) -> "ProjectState":
        """State of a freshly followed project, before any settings are applied."""
        return cls(id=spec.id, vcs_type=spec.vcs_type, account=spec.account, project=spec.project)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        return {
            "id": self.id,
            "vcs_type": self.vcs_type,
            "account": self.account,
            "project": self.project,
            "variable": [{"name": name, "value": value} for name, value in sorted(self.variables.items())],
            "aws_access_key_id": self.aws_keypair.access_key_id if self.aws_keypair else None,
            "aws_secret_access_key": self.aws_keypair.secret_access_key if self.aws_keypair else None,
        }


# =============================================================================
# Diffing
# =============================================================================


@dataclass
class VariableChanges:
    """Environment variables to (re-)add and to delete, keyed by name."""

    to_add: dict[str, str] = field(default_factory=dict)
    to_delete: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_add or self.to_delete)


def diff_variables(current: dict[str, str], desired: dict[str, str]) -> VariableChanges:
    """
    Symmetric difference of two variable sets keyed by name.

    Names only present in ``current`` are deleted. Names only present in
    ``desired``, or whose masked value differs, are added (adding an existing
    name overwrites it).
    """
    to_delete = sorted(current.keys() - desired.keys())
    to_add = {
        name: value
        for name, value in sorted(desired.items())
        if name not in current or _comparable(current[name]) != _comparable(value)
    }
    return VariableChanges(to_add=to_add, to_delete=to_delete)


def diff_aws_keys(current: AWSKeypair | None, desired: AWSKeypair | None) -> str | None:
    """Return "set", "remove", or None when the AWS keypair is unchanged."""
    if desired is None:
        return "remove" if current is not None else None
    if current is None:
        return "set"
    if current.access_key_id != desired.access_key_id:
        return "set"
    if _comparable(current.secret_access_key) != _comparable(desired.secret_access_key):
        return "set"
    return None


@dataclass
class Plan:
    """What apply would do to reach a spec."""

    action: str  # create | update | replace | noop
    resource_id: str
    variables: VariableChanges = field(default_factory=VariableChanges)
    aws: str | None = None

    @property
    def has_changes(self) -> bool:
        return self.action != "noop"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        return {
            "action": self.action,
            "id": self.resource_id,
            "add_variables": sorted(self.variables.to_add),
            "delete_variables": self.variables.to_delete,
            "aws_keys": self.aws,
        }


# =============================================================================
# Resource
# =============================================================================


class ProjectResource:
    """
    Lifecycle of a circleci_project on top of ApiClient.

    Example:
        resource = ProjectResource(client)
        state = resource.apply(ProjectSpec(account="acme", project="api"))
        resource.delete(state.id)

    """

    name = RESOURCE_NAME

    def __init__(self, client: ApiClient):
        self._client = client

    def create(self, spec: ProjectSpec) -> ProjectState:
        """Follow the project, then apply its variables and AWS keys."""
        logger.debug("Following %s/%s %s project on CircleCI", spec.account, spec.project, spec.vcs_type)
        self._client.follow_project(spec.vcs_type, spec.account, spec.project)
        return self.update(ProjectState.empty(spec), spec)

    def read(self, resource_id: str) -> ProjectState:
        """
        Read the project's current state.

        Raises:
            ProjectNotFoundError: If the project is not followed

        """
        vcs_type, account, reponame = expand_id(resource_id)

        project = self._client.get_project(vcs_type, account, reponame)
        env_vars = self._client.list_env_vars(vcs_type, account, reponame)

        return ProjectState(
            id=resource_id,
            vcs_type=project.vcs_type,
            account=project.username,
            project=project.reponame,
            variables={ev.name: ev.value for ev in env_vars},
            aws_keypair=project.aws.keypair,
        )

    def update(self, state: ProjectState, spec: ProjectSpec) -> ProjectState:
        """Bring variables and AWS keys in line with the spec, then re-read."""
        if state.id != spec.id:
            raise ValidationError(
                "Changing vcs_type, account or project forces a new resource",
                details={"current": state.id, "desired": spec.id},
            )
        vcs_type, account, reponame = expand_id(state.id)

        changes = diff_variables(state.variables, spec.variables)
        for name in changes.to_delete:
            logger.debug("Deleting env var %s from %s", name, state.id)
            self._client.delete_env_var(vcs_type, account, reponame, name)
        for name, value in changes.to_add.items():
            logger.debug("Adding env var %s to %s", name, state.id)
            self._client.add_env_var(vcs_type, account, reponame, name, value)

        aws_change = diff_aws_keys(state.aws_keypair, spec.aws_keypair)
        if aws_change == "set":
            keypair = spec.aws_keypair
            logger.debug("Setting AWS keys on %s", state.id)
            self._client.set_aws_keys(
                vcs_type, account, reponame, keypair.access_key_id, keypair.secret_access_key
            )
        elif aws_change == "remove":
            logger.debug("Removing AWS keys from %s", state.id)
            self._client.remove_aws_keys(vcs_type, account, reponame)

        return self.read(state.id)

    def delete(self, resource_id: str) -> None:
        """Disable the project."""
        vcs_type, account, reponame = expand_id(resource_id)
        logger.debug("Disabling %s", resource_id)
        self._client.disable_project(vcs_type, account, reponame)

    def import_state(self, resource_id: str) -> ProjectState:
        """Import an existing project by id."""
        return self.read(resource_id)

    @staticmethod
    def plan(state: ProjectState | None, spec: ProjectSpec) -> Plan:
        """Compute the changes needed to reach ``spec`` from ``state`` (None: not followed)."""
        current = state or ProjectState.empty(spec)
        variables = diff_variables(current.variables, spec.variables)
        aws = diff_aws_keys(current.aws_keypair, spec.aws_keypair)

        if state is None:
            action = "create"
        elif state.id != spec.id:
            action = "replace"
        elif variables.has_changes or aws:
            action = "update"
        else:
            action = "noop"
        return Plan(action=action, resource_id=spec.id, variables=variables, aws=aws)

    def refresh(self, spec: ProjectSpec) -> ProjectState | None:
        """Read the spec's project, or None if it is not followed."""
        try:
            return self.read(spec.id)
        except ProjectNotFoundError:
            return None

    def apply(self, spec: ProjectSpec) -> ProjectState:
        """Reconcile: create the project if missing, otherwise update what differs."""
        state = self.refresh(spec)
        if state is None:
            return self.create(spec)

        if not self.plan(state, spec).has_changes:
            logger.debug("%s is up to date", spec.id)
            return state
        return self.update(state, spec)
