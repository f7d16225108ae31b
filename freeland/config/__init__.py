"""Centralized configuration for Freeland.

This package consolidates the authority endpoint, network timeouts and local
file locations so the pipeline modules share one source of truth.
"""

from .authority import DEFAULT_AUTHORITY, AuthorityEndpoint, resolve_authority
from .defaults import (
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_IDENTITY_FILE,
    DEFAULT_PROFILE_FILE,
    DEFAULT_SSH_TIMEOUT,
    DEFAULT_V2RAY_EXECUTABLE,
)

__all__ = [
    "DEFAULT_AUTHORITY",
    "DEFAULT_HTTP_TIMEOUT",
    "DEFAULT_IDENTITY_FILE",
    "DEFAULT_PROFILE_FILE",
    "DEFAULT_SSH_TIMEOUT",
    "DEFAULT_V2RAY_EXECUTABLE",
    "AuthorityEndpoint",
    "resolve_authority",
]
