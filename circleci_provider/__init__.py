"""
CircleCI provider - Three-layer architecture for the CircleCI v1.1 API.

Layers:
- core: Raw types, masking and HTTP client
- resource/provider: Desired-state management of circleci_project
- cli: Command-line interface
"""

from circleci_provider.core.client import ApiClient
from circleci_provider.provider import Provider, ProviderConfig
from circleci_provider.resource import ProjectResource

__version__ = "0.1.0"
__all__ = ["ApiClient", "ProjectResource", "Provider", "ProviderConfig"]
