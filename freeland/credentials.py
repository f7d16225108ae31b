"""本地身份记录的读写。Local identity record storage.

The record is a plain two-line text file: the registered subject name on the
first line and the assigned secret (UUID) on the second.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .config.defaults import IDENTITY_FILE_MODE
from .exceptions import CredentialError
from .logging_utils import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """Registered subject name and the secret assigned to it."""

    subject: str
    secret: str

    def __repr__(self) -> str:
        return f"Identity(subject={self.subject!r}, secret='***')"


def _check_field(value: str, label: str) -> str:
    if not value or not value.strip():
        raise CredentialError(f"{label} 不能为空")
    if "\n" in value or "\r" in value:
        raise CredentialError(f"{label} 不能包含换行符")
    return value.strip()


def load_identity(path: str | os.PathLike[str]) -> Identity:
    """Read the identity record at ``path``.

    Only the first two lines matter; anything after them is ignored.
    """

    record = Path(path).expanduser()
    try:
        text = record.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CredentialError(f"Not configured yet, configure first ({record} not found)") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise CredentialError(f"无法读取身份文件 {record}: {exc}") from exc

    lines = [line.rstrip("\r\n \t") for line in text.splitlines()]
    subject = lines[0] if len(lines) > 0 else ""
    secret = lines[1] if len(lines) > 1 else ""
    if not subject or not secret:
        raise CredentialError(f"Configuration error: {record} must contain a user name and a uuid")

    LOGGER.debug("Loaded identity for %s from %s", subject, record)
    return Identity(subject=subject, secret=secret)


def save_identity(path: str | os.PathLike[str], subject: str, secret: str) -> Path:
    """Write a new identity record, replacing any existing one."""

    subject = _check_field(subject, "uname")
    secret = _check_field(secret, "uuid")

    record = Path(path).expanduser()
    try:
        record.parent.mkdir(parents=True, exist_ok=True)
        record.write_text(f"{subject}\n{secret}\n", encoding="utf-8")
        os.chmod(record, IDENTITY_FILE_MODE)
    except OSError as exc:
        raise CredentialError(f"无法写入身份文件 {record}: {exc}") from exc

    LOGGER.info("Identity for %s saved to %s", subject, record)
    return record


__all__ = ["Identity", "load_identity", "save_identity"]
