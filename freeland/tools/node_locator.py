"""节点分配查询。Resolve the egress node assigned to a subject.

The authority answers ``GET /node?uname=<subject>`` with either a JSON
object or the legacy line format::

    <subject><sep><address>
    <diagnostic line>
    ...

Only the first line carries meaning; the rest is operator-facing text.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

import requests

from ..config.authority import DEFAULT_AUTHORITY, AuthorityEndpoint
from ..config.defaults import DEFAULT_HTTP_TIMEOUT, NODE_QUERY_PARAM, NODE_QUERY_PATH
from ..exceptions import ConnectivityError, ProtocolError
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class NodeAssignment:
    """Egress address handed out by the authority."""

    address: str
    diagnostics: tuple[str, ...] = ()


def _parse_json_response(body: str) -> NodeAssignment:
    try:
        data: Any = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"节点响应不是有效的 JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ProtocolError("节点响应 JSON 必须是对象")

    address = data.get("address")
    if not isinstance(address, str) or not address.strip():
        raise ProtocolError("节点响应缺少 address 字段")

    messages = data.get("messages") or []
    if not isinstance(messages, list):
        messages = [messages]
    return NodeAssignment(address=address.strip(), diagnostics=tuple(str(m) for m in messages))


def _parse_line_response(subject: str, body: str) -> NodeAssignment:
    lines = body.splitlines()
    if not lines:
        raise ProtocolError("节点响应为空")

    first = lines[0].rstrip("\r")
    prefix_len = len(subject) + 1
    if not first.startswith(subject) or len(first) <= prefix_len:
        raise ProtocolError(f"节点响应首行格式不正确: {first!r}")

    address = first[prefix_len:]
    if not address.strip():
        raise ProtocolError(f"节点响应首行缺少地址: {first!r}")

    return NodeAssignment(address=address, diagnostics=tuple(line.rstrip("\r") for line in lines[1:]))


def parse_node_response(subject: str, body: str) -> NodeAssignment:
    """Extract the assigned address for ``subject`` from ``body``.

    Malformed bodies raise :class:`ProtocolError` instead of producing an
    empty or truncated address.
    """

    if not subject:
        raise ProtocolError("subject 不能为空")

    stripped = body.lstrip()
    if stripped.startswith("{"):
        return _parse_json_response(stripped)
    return _parse_line_response(subject, body)


def _response_text(response: requests.Response) -> str:
    """Decode the body as UTF-8 unless the authority declared a charset."""

    if "charset" in response.headers.get("Content-Type", "").lower():
        return response.text
    try:
        return response.content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"节点响应不是有效的 UTF-8: {exc}") from exc


class NodeLocator:
    """Query the authority once per run and remember the answer."""

    def __init__(
        self,
        authority: AuthorityEndpoint = DEFAULT_AUTHORITY,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self.authority = authority
        self.timeout = timeout
        self._session = session or requests.Session()
        self._assignment: Optional[NodeAssignment] = None
        self._attempted = False

    @property
    def url(self) -> str:
        return f"{self.authority.http_base_url}{NODE_QUERY_PATH}"

    @property
    def assignment(self) -> Optional[NodeAssignment]:
        return self._assignment

    def resolve(self, subject: str) -> NodeAssignment:
        """Return the node assigned to ``subject``.

        The first successful answer is reused for the rest of the run. A
        failed attempt is not repeated.
        """

        if self._assignment is not None:
            return self._assignment
        if self._attempted:
            raise ConnectivityError("节点解析已失败，本次运行不会重试")
        self._attempted = True

        LOGGER.info("Retrieving node for %s from %s", subject, self.url)
        try:
            response = self._session.get(
                self.url,
                params={NODE_QUERY_PARAM: subject},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise ProtocolError(f"error when retrieving ip: {exc}") from exc
        except requests.RequestException as exc:
            raise ConnectivityError(f"error when retrieving ip: {exc}") from exc

        assignment = parse_node_response(subject, _response_text(response))
        for line in assignment.diagnostics:
            if line.strip():
                LOGGER.info("authority: %s", line)

        LOGGER.info("Node assigned to %s: %s", subject, assignment.address)
        self._assignment = assignment
        return assignment

    def close(self) -> None:
        self._session.close()


__all__ = ["NodeAssignment", "NodeLocator", "parse_node_response"]
