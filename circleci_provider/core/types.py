"""
Core types for the CircleCI v1.1 API.

These dataclasses mirror the JSON payloads exchanged with the API.
"""

from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# Environment Variables
# =============================================================================


@dataclass
class EnvVar:
    """A project environment variable (the API returns the value masked)."""

    name: str
    value: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnvVar":
        """Create from API response dict."""
        return cls(
            name=data.get("name") or "",
            value=data.get("value") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for API request."""
        return {"name": self.name, "value": self.value}


# =============================================================================
# AWS Types
# =============================================================================


@dataclass
class AWSKeypair:
    """AWS access/secret key pair. The secret is masked when read back."""

    access_key_id: str
    secret_access_key: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AWSKeypair":
        """Create from API response dict."""
        return cls(
            access_key_id=data.get("access_key_id") or "",
            secret_access_key=data.get("secret_access_key") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for API request."""
        return {
            "access_key_id": self.access_key_id,
            "secret_access_key": self.secret_access_key,
        }


@dataclass
class AWSConfig:
    """AWS configuration for a project."""

    keypair: AWSKeypair | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AWSConfig":
        """Create from API response dict."""
        keypair = (data or {}).get("keypair")
        return cls(keypair=AWSKeypair.from_dict(keypair) if keypair else None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for API request (a null keypair removes the keys)."""
        return {"keypair": self.keypair.to_dict() if self.keypair else None}


# =============================================================================
# Project Types
# =============================================================================


@dataclass
class Project:
    """A CircleCI project, addressed by (vcs_type, username, reponame)."""

    vcs_type: str
    username: str
    reponame: str
    aws: AWSConfig = field(default_factory=AWSConfig)

    @property
    def key(self) -> tuple[str, str, str]:
        """The (vcs_type, account, reponame) triple identifying the project."""
        return (self.vcs_type, self.username, self.reponame)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        """Create from API response dict."""
        return cls(
            vcs_type=data.get("vcs_type") or "",
            username=data.get("username") or "",
            reponame=data.get("reponame") or "",
            aws=AWSConfig.from_dict(data.get("aws")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        return {
            "vcs_type": self.vcs_type,
            "username": self.username,
            "reponame": self.reponame,
            "aws": self.aws.to_dict(),
        }
