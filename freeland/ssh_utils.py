"""Entitlement check over SSH and private key helpers.

A successful public-key handshake against the authority is the proof that
the local identity may currently use the service. No command is executed and
no channel is opened; the connection is dropped as soon as it authenticates.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable, Mapping, Optional

import paramiko

from .config.authority import DEFAULT_AUTHORITY, AuthorityEndpoint
from .config.defaults import DEFAULT_SSH_TIMEOUT
from .exceptions import (
    ConnectivityError,
    CredentialError,
    EntitlementRejected,
    FreelandError,
    UnknownAuthError,
)
from .logging_utils import get_logger

LOGGER = get_logger(__name__)

ENV_KEY_PATH = "FREELAND_SSH_KEY"

# Message older transport libraries produce when every auth method was refused.
# Only consulted when the exception carries no structured type.
REJECTION_SIGNATURE = re.compile(
    r"unable to authenticate.*no supported methods remain", re.IGNORECASE | re.DOTALL
)

REJECTION_HINT = "out of bandwidth or date"


class SSHKeyLoadError(CredentialError):
    """Raised when a private key cannot be parsed."""


def _default_home() -> Path:
    expanded = os.path.expandvars(r"%USERPROFILE%")
    return Path(expanded) if expanded and "%" not in expanded else Path.home()


def pick_default_key(environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the private key path used for the entitlement handshake."""

    env = os.environ if environ is None else environ
    configured = (env.get(ENV_KEY_PATH) or "").strip()
    if configured:
        return str(Path(configured).expanduser())

    home = _default_home()
    ed25519 = home / ".ssh" / "id_ed25519"
    rsa = home / ".ssh" / "id_rsa"
    if ed25519.is_file() and ed25519.stat().st_size > 0:
        return str(ed25519)
    # The authority historically enrolled RSA keys, so fall back to id_rsa.
    return str(rsa)


def _candidate_keys() -> Iterable[type[paramiko.PKey]]:
    """Yield supported Paramiko key classes in preferred order."""

    return (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


def load_private_key(path: str | os.PathLike[str]) -> paramiko.PKey:
    """Load a private key from ``path``.

    Keys are attempted in the order Ed25519 → ECDSA → RSA.  DSA keys are
    deliberately unsupported because Paramiko 3.x removed ``DSSKey``.
    """

    key_path = Path(path).expanduser()
    if key_path.is_dir():
        raise SSHKeyLoadError(f"给定的私钥路径是目录：{key_path}")

    if not key_path.exists():
        raise SSHKeyLoadError(f"私钥文件不存在：{key_path}")

    errors: list[str] = []
    for key_cls in _candidate_keys():
        try:
            return key_cls.from_private_key_file(str(key_path))
        except paramiko.PasswordRequiredException as exc:
            raise SSHKeyLoadError("私钥受口令保护，请先解锁后再试。") from exc
        except paramiko.SSHException as exc:
            errors.append(str(exc))
        except (OSError, ValueError) as exc:
            errors.append(str(exc))

    joined = "; ".join(filter(None, errors)) or "未知错误"
    raise SSHKeyLoadError(f"无法解析私钥文件 {key_path}: {joined}")


def classify_handshake_error(exc: BaseException) -> FreelandError:
    """Map a failed handshake to the provisioning error taxonomy."""

    message = str(exc) or exc.__class__.__name__

    # BadAuthenticationType and PartialAuthentication are subclasses.
    if isinstance(exc, paramiko.AuthenticationException):
        return EntitlementRejected(f"Failed to dial: {REJECTION_HINT} ({message})")

    if isinstance(exc, paramiko.SSHException) and REJECTION_SIGNATURE.search(message):
        return EntitlementRejected(f"Failed to dial: {REJECTION_HINT} ({message})")

    # NoValidConnectionsError and socket.timeout are both OSError subclasses.
    if isinstance(exc, (OSError, EOFError)):
        return ConnectivityError(f"Failed to dial: {message}")

    return UnknownAuthError(f"Failed to dial: {message}")


def confirm_access(
    subject: str,
    *,
    authority: AuthorityEndpoint = DEFAULT_AUTHORITY,
    key_path: str | os.PathLike[str] | None = None,
    timeout: float = DEFAULT_SSH_TIMEOUT,
) -> None:
    """Prove that ``subject`` is entitled to the service.

    The key is loaded before any network activity, so a missing or broken key
    fails fast with :class:`SSHKeyLoadError`. Host keys are accepted without
    verification; the authority does not publish a stable host key.
    """

    pkey = load_private_key(key_path if key_path is not None else pick_default_key())

    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    LOGGER.info("Confirming access for %s via %s:%s", subject, authority.host, authority.ssh_port)
    try:
        client.connect(
            authority.host,
            port=authority.ssh_port,
            username=subject,
            pkey=pkey,
            allow_agent=False,
            look_for_keys=False,
            timeout=timeout,
            banner_timeout=timeout,
            auth_timeout=timeout,
        )
    except Exception as exc:  # noqa: BLE001 - every failure is classified
        error = classify_handshake_error(exc)
        LOGGER.error("%s", error)
        raise error from exc
    finally:
        client.close()

    LOGGER.info("Access confirmed for %s", subject)


__all__ = [
    "REJECTION_SIGNATURE",
    "SSHKeyLoadError",
    "classify_handshake_error",
    "confirm_access",
    "load_private_key",
    "pick_default_key",
]
