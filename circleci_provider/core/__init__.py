"""
Core layer - Raw types, masking and HTTP client.

This layer provides:
- Typed dataclasses matching the CircleCI v1.1 payloads
- Low-level HTTP client with auth and error handling
- The xxxx-prefix masking CircleCI applies to secrets
"""

from circleci_provider.core.client import (
    APIError,
    ApiClient,
    CircleCIError,
    ProjectNotFoundError,
    ValidationError,
)
from circleci_provider.core.masking import is_masked, mask_secret
from circleci_provider.core.types import AWSConfig, AWSKeypair, EnvVar, Project

__all__ = [
    "APIError",
    "AWSConfig",
    "AWSKeypair",
    "ApiClient",
    "CircleCIError",
    "EnvVar",
    "Project",
    "ProjectNotFoundError",
    "ValidationError",
    "is_masked",
    "mask_secret",
]
