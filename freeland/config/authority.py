"""Authority endpoint profile and its environment overrides.

The default profile mirrors the production authority. Every field can be
overridden through ``FREELAND_*`` environment variables without changing
call sites.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .defaults import (
    DEFAULT_AUTHORITY_HOST,
    DEFAULT_HTTP_SCHEME,
    DEFAULT_SSH_PORT,
)

ENV_HOST = "FREELAND_AUTHORITY_HOST"
ENV_SSH_PORT = "FREELAND_SSH_PORT"
ENV_HTTP_BASE = "FREELAND_HTTP_BASE"


@dataclass(frozen=True)
class AuthorityEndpoint:
    """Where entitlement and node assignment are asked for."""

    host: str
    ssh_port: int
    http_base_url: str


def _parse_port(value: str, *, source: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise ValueError(f"环境变量 {source} 的值必须是有效的整数端口号，当前为: {value!r}") from exc

    if not 1 <= port <= 65535:
        raise ValueError(f"环境变量 {source} 的值 {port} 超出有效范围 (1-65535)。")
    return port


def _http_base_for(host: str) -> str:
    return f"{DEFAULT_HTTP_SCHEME}://{host}"


DEFAULT_AUTHORITY = AuthorityEndpoint(
    host=DEFAULT_AUTHORITY_HOST,
    ssh_port=DEFAULT_SSH_PORT,
    http_base_url=_http_base_for(DEFAULT_AUTHORITY_HOST),
)


def resolve_authority(environ: Optional[Mapping[str, str]] = None) -> AuthorityEndpoint:
    """Return the authority endpoint, applying environment overrides.

    ``FREELAND_HTTP_BASE`` defaults to ``http://<host>`` of the (possibly
    overridden) host, so overriding only the host moves both endpoints.
    """

    env = os.environ if environ is None else environ

    host = (env.get(ENV_HOST) or "").strip() or DEFAULT_AUTHORITY.host

    raw_port = (env.get(ENV_SSH_PORT) or "").strip()
    ssh_port = _parse_port(raw_port, source=ENV_SSH_PORT) if raw_port else DEFAULT_AUTHORITY.ssh_port

    http_base = (env.get(ENV_HTTP_BASE) or "").strip() or _http_base_for(host)

    return AuthorityEndpoint(host=host, ssh_port=ssh_port, http_base_url=http_base.rstrip("/"))
