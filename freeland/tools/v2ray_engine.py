from __future__ import annotations

import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import Mapping, Optional

from ..config.defaults import (
    DEFAULT_V2RAY_EXECUTABLE,
    ENGINE_START_GRACE_SECONDS,
    ENGINE_STOP_TIMEOUT_SECONDS,
)
from ..exceptions import EngineError
from ..logging_utils import get_logger

logger = get_logger(__name__)

ENV_V2RAY_BIN = "FREELAND_V2RAY_BIN"


def find_v2ray_executable(
    executable: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Locate the v2ray binary from the argument, the environment or ``PATH``."""

    env = os.environ if environ is None else environ
    candidate = executable or (env.get(ENV_V2RAY_BIN) or "").strip() or DEFAULT_V2RAY_EXECUTABLE
    resolved = shutil.which(candidate)
    if resolved is None:
        raise EngineError(f"找不到 V2Ray 可执行文件：{candidate}")
    return resolved


class V2RayEngine:
    """Run V2Ray as a child process against a synthesized profile."""

    def __init__(self, executable: str, profile_path: Path):
        self.executable = executable
        self.profile_path = profile_path
        self._process: Optional[subprocess.Popen] = None

    @classmethod
    def construct(cls, profile_path: str | os.PathLike[str], executable: Optional[str] = None) -> "V2RayEngine":
        path = Path(profile_path)
        if not path.is_file():
            raise EngineError(f"config file not readable: {path}")
        return cls(find_v2ray_executable(executable), path)

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def _command(self, action: str) -> list[str]:
        return [self.executable, action, "-c", str(self.profile_path)]

    def test(self, timeout: float = 30) -> bool:
        """Ask V2Ray to validate the profile without starting the proxy."""

        logger.info("检查 V2Ray 配置：%s", self.profile_path)
        try:
            proc = subprocess.run(
                self._command("test"),
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise EngineError(f"V2Ray 配置检查失败: {exc}") from exc

        if proc.returncode != 0:
            logger.error("V2Ray 配置无效：%s", (proc.stderr or proc.stdout).strip())
            return False
        return True

    def start(self) -> None:
        if self.is_running:
            return

        logger.info("启动 V2Ray：%s", " ".join(self._command("run")))
        try:
            self._process = subprocess.Popen(self._command("run"))
        except OSError as exc:
            raise EngineError(f"Failed to start: {exc}") from exc

        # A broken profile makes v2ray exit right away.
        time.sleep(ENGINE_START_GRACE_SECONDS)
        code = self._process.poll()
        if code is not None:
            self._process = None
            raise EngineError(f"Failed to start: v2ray exited with code {code}")
        logger.info("V2Ray 已启动 (pid=%s)", self._process.pid)

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the engine exits or ``timeout`` elapses."""

        if self._process is None:
            return None
        try:
            return self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def close(self) -> None:
        process, self._process = self._process, None
        if process is None or process.poll() is not None:
            return

        logger.info("停止 V2Ray (pid=%s)", process.pid)
        process.terminate()
        try:
            process.wait(timeout=ENGINE_STOP_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("V2Ray 未在 %s 秒内退出，强制结束", ENGINE_STOP_TIMEOUT_SECONDS)
            process.kill()
            process.wait()
