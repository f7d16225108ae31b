"""预检流程集成测试。Provisioning pipeline integration tests."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from freeland.config.authority import AuthorityEndpoint
from freeland.exceptions import (
    ConnectivityError,
    CredentialError,
    EngineError,
    EntitlementRejected,
    TemplateShapeError,
)
from freeland.pipeline import ProvisioningPipeline, Stage
from freeland.tools.node_locator import NodeLocator
from tests.conftest import make_response


class RecordingChecker:
    """记录调用的授权校验替身。Access checker that records calls."""

    def __init__(self, error: Exception | None = None):
        self.calls: list[str] = []
        self.error = error

    def __call__(self, subject: str) -> None:
        self.calls.append(subject)
        if self.error is not None:
            raise self.error


class FakeEngine:
    def __init__(self, profile_path: Path, fail_start: bool = False):
        self.profile_path = profile_path
        self.fail_start = fail_start
        self.started = False
        self.closed = 0
        self.profile_at_start: dict | None = None

    def start(self) -> None:
        if self.fail_start:
            raise EngineError("Failed to start")
        self.profile_at_start = json.loads(self.profile_path.read_text(encoding="utf-8"))
        self.started = True

    def close(self) -> None:
        self.closed += 1


def _pipeline(
    temp_dir: Path,
    authority: AuthorityEndpoint,
    session: MagicMock,
    *,
    identity_path: Path | None = None,
    checker: RecordingChecker | None = None,
    template=None,
) -> ProvisioningPipeline:
    kwargs = {}
    if template is not None:
        kwargs["template"] = template
    return ProvisioningPipeline(
        identity_path=identity_path or temp_dir / ".freeland.conf",
        profile_path=temp_dir / ".config.json",
        authority=authority,
        access_checker=checker or RecordingChecker(),
        locator=NodeLocator(authority, session=session),
        **kwargs,
    )


class TestProvisioningPipeline:
    """测试完整流程。"""

    def test_scenario_a_success(self, temp_dir: Path, identity_file: Path, authority, fake_session):
        """场景 A：授权成功并生成配置。"""
        fake_session.get.return_value = make_response("bob=198.51.100.7\nwelcome back\n")
        checker = RecordingChecker()
        pipeline = _pipeline(temp_dir, authority, fake_session, identity_path=identity_file, checker=checker)

        result = pipeline.provision()

        assert pipeline.stage is Stage.PROFILE_SYNTHESIZED
        assert checker.calls == ["bob"]
        assert result.assignment.address == "198.51.100.7"
        document = json.loads(result.profile_path.read_text(encoding="utf-8"))
        server = document["outbound"]["settings"]["vnext"][0]
        assert server["address"] == "198.51.100.7"
        assert [user["id"] for user in server["users"]] == ["uuid-123"]

    def test_hand_off_and_terminate(self, temp_dir: Path, identity_file: Path, authority, fake_session):
        """测试交给引擎后终止并清理配置。"""
        fake_session.get.return_value = make_response("bob=198.51.100.7\n")
        pipeline = _pipeline(temp_dir, authority, fake_session, identity_path=identity_file)
        result = pipeline.provision()

        engine = pipeline.hand_off(FakeEngine)

        assert pipeline.stage is Stage.HANDED_OFF
        assert engine.started
        assert engine.profile_at_start["outbound"]["settings"]["vnext"][0]["address"] == "198.51.100.7"

        pipeline.terminate()
        assert pipeline.stage is Stage.TERMINATED
        assert engine.closed == 1
        assert not result.profile_path.exists()

        pipeline.terminate()
        assert engine.closed == 1

    def test_scenario_b_missing_identity(self, temp_dir: Path, authority, fake_session):
        """场景 B：身份文件缺失，不访问网络。"""
        checker = RecordingChecker()
        pipeline = _pipeline(temp_dir, authority, fake_session, checker=checker)

        with pytest.raises(CredentialError):
            pipeline.provision()

        assert pipeline.stage is Stage.TERMINATED
        assert pipeline.failed_stage is Stage.IDLE
        assert isinstance(pipeline.error, CredentialError)
        assert checker.calls == []
        fake_session.get.assert_not_called()
        assert not (temp_dir / ".config.json").exists()

    def test_scenario_c_resolution_unreachable(self, temp_dir: Path, identity_file: Path, authority, fake_session):
        """场景 C：节点查询不可达。"""
        fake_session.get.side_effect = requests.ConnectionError("unreachable")
        pipeline = _pipeline(temp_dir, authority, fake_session, identity_path=identity_file)

        with pytest.raises(ConnectivityError):
            pipeline.provision()

        assert pipeline.failed_stage is Stage.ENTITLED
        assert pipeline.stage is Stage.TERMINATED
        assert pipeline.assignment is None
        assert not (temp_dir / ".config.json").exists()

    def test_entitlement_rejected_skips_resolution(self, temp_dir: Path, identity_file: Path, authority, fake_session):
        """测试授权被拒绝时不查询节点。"""
        checker = RecordingChecker(EntitlementRejected("out of bandwidth or date"))
        pipeline = _pipeline(temp_dir, authority, fake_session, identity_path=identity_file, checker=checker)

        with pytest.raises(EntitlementRejected):
            pipeline.provision()

        assert pipeline.failed_stage is Stage.CREDENTIAL_LOADED
        fake_session.get.assert_not_called()

    def test_template_error(self, temp_dir: Path, identity_file: Path, authority, fake_session):
        """测试模板结构错误。"""
        fake_session.get.return_value = make_response("bob=198.51.100.7\n")
        pipeline = _pipeline(
            temp_dir, authority, fake_session, identity_path=identity_file, template='{"inbound": {}}'
        )

        with pytest.raises(TemplateShapeError):
            pipeline.provision()

        assert pipeline.failed_stage is Stage.NODE_RESOLVED
        assert not (temp_dir / ".config.json").exists()

    def test_undecodable_template_recorded(self, temp_dir: Path, identity_file: Path, authority, fake_session):
        """测试无法解码的模板按模板错误处理。"""
        fake_session.get.return_value = make_response("bob=198.51.100.7\n")
        pipeline = _pipeline(
            temp_dir, authority, fake_session, identity_path=identity_file, template=b'{"outbound": "\xff"}'
        )

        with pytest.raises(TemplateShapeError):
            pipeline.provision()

        assert pipeline.failed_stage is Stage.NODE_RESOLVED
        assert isinstance(pipeline.error, TemplateShapeError)

    def test_engine_start_failure_cleans_up(self, temp_dir: Path, identity_file: Path, authority, fake_session):
        """测试引擎启动失败时清理配置。"""
        fake_session.get.return_value = make_response("bob=198.51.100.7\n")
        pipeline = _pipeline(temp_dir, authority, fake_session, identity_path=identity_file)
        pipeline.provision()

        with pytest.raises(EngineError):
            pipeline.hand_off(lambda path: FakeEngine(path, fail_start=True))

        assert pipeline.failed_stage is Stage.PROFILE_SYNTHESIZED
        assert pipeline.stage is Stage.TERMINATED
        assert not (temp_dir / ".config.json").exists()

    def test_stale_profile_removed_before_run(self, temp_dir: Path, authority, fake_session):
        """测试启动时清理上次遗留的配置。"""
        stale = temp_dir / ".config.json"
        stale.write_text('{"stale": true}', encoding="utf-8")
        pipeline = _pipeline(temp_dir, authority, fake_session)

        with pytest.raises(CredentialError):
            pipeline.provision()
        assert not stale.exists()

    def test_pipeline_runs_once(self, temp_dir: Path, identity_file: Path, authority, fake_session):
        """测试同一个流程对象不能重复执行。"""
        fake_session.get.return_value = make_response("bob=198.51.100.7\n")
        pipeline = _pipeline(temp_dir, authority, fake_session, identity_path=identity_file)
        pipeline.provision()

        with pytest.raises(RuntimeError):
            pipeline.provision()

    def test_hand_off_requires_profile(self, temp_dir: Path, authority, fake_session):
        """测试未生成配置时不能交给引擎。"""
        pipeline = _pipeline(temp_dir, authority, fake_session)
        with pytest.raises(RuntimeError):
            pipeline.hand_off(FakeEngine)
