"""pytest 配置和共享 fixtures。pytest configuration and shared fixtures."""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Generator
from unittest.mock import MagicMock

import pytest
import requests

from freeland.config.authority import AuthorityEndpoint
from freeland.tools.v2ray_client_config import BASELINE_TEMPLATE


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """临时目录 fixture。Temporary directory fixture."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def authority() -> AuthorityEndpoint:
    """测试用授权服务器。Authority endpoint that never resolves to a real host."""
    return AuthorityEndpoint(
        host="authority.invalid",
        ssh_port=2226,
        http_base_url="http://authority.invalid",
    )


@pytest.fixture
def baseline_document() -> dict[str, Any]:
    """解析后的基线模板。Parsed baseline template."""
    return json.loads(BASELINE_TEMPLATE)


@pytest.fixture
def identity_file(temp_dir: Path) -> Path:
    """已登记的身份文件。Identity record for bob."""
    path = temp_dir / ".freeland.conf"
    path.write_text("bob\nuuid-123\n", encoding="utf-8")
    return path


def make_response(
    text: str,
    status_code: int = 200,
    content_type: str = "text/plain; charset=utf-8",
) -> requests.Response:
    """构造 requests 响应。Build a requests response carrying ``text``.

    Like a real response, ``encoding`` comes from the ``Content-Type`` charset
    and falls back to ISO-8859-1 for bare ``text/*`` types.
    """
    response = requests.Response()
    response.status_code = status_code
    response._content = text.encode("utf-8")
    response.headers["Content-Type"] = content_type
    response.encoding = requests.utils.get_encoding_from_headers(response.headers)
    response.url = "http://authority.invalid/node"
    return response


@pytest.fixture
def fake_session() -> MagicMock:
    """模拟的 requests 会话。Mocked requests session."""
    return MagicMock(spec=requests.Session)


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """每个测试后移除日志处理器。Drop handlers attached by ``setup_logging``."""
    yield
    logger = logging.getLogger("freeland")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
