"""
Provider configuration and resource registry.
"""

import os
from dataclasses import dataclass

from circleci_provider.core.client import ApiClient, ValidationError
from circleci_provider.resource import RESOURCE_NAME, ProjectResource

TOKEN_ENV = "CIRCLECI_API_TOKEN"
BASE_URL_ENV = "CIRCLECI_BASE_URL"
DEBUG_ENV = "CIRCLECI_DEBUG"

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ProviderConfig:
    """Provider settings: the API token plus optional endpoint and debug flag."""

    api_token: str
    base_url: str | None = None
    debug: bool = False

    @classmethod
    def from_env(cls, debug: bool | None = None) -> "ProviderConfig":
        """
        Load settings from the environment.

        Args:
            debug: Overrides CIRCLECI_DEBUG when given

        Raises:
            ValidationError: If CIRCLECI_API_TOKEN is not set

        """
        token = os.environ.get(TOKEN_ENV)
        if not token:
            raise ValidationError(f"{TOKEN_ENV} environment variable not set")

        if debug is None:
            debug = os.environ.get(DEBUG_ENV, "").strip().lower() in _TRUTHY

        return cls(
            api_token=token,
            base_url=os.environ.get(BASE_URL_ENV) or None,
            debug=debug,
        )


class Provider:
    """Builds the API client and hands out resources bound to it."""

    resources = {RESOURCE_NAME: ProjectResource}

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.client = self.configure(config)

    @staticmethod
    def configure(config: ProviderConfig) -> ApiClient:
        """Create the API client for a configuration."""
        if not config.api_token:
            raise ValidationError("api_token is required")
        return ApiClient(
            token=config.api_token,
            base_url=config.base_url,
            debug=config.debug,
        )

    @classmethod
    def from_env(cls, debug: bool | None = None) -> "Provider":
        return cls(ProviderConfig.from_env(debug=debug))

    def resource(self, name: str) -> ProjectResource:
        """Get the resource registered under ``name``, bound to this provider's client."""
        try:
            resource_cls = self.resources[name]
        except KeyError:
            raise ValidationError(
                f"Unknown resource type {name!r}",
                details={"available": sorted(self.resources)},
            ) from None
        return resource_cls(self.client)
