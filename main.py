"""主程序入口：启动 V2Ray 前完成授权校验、节点解析与配置生成。

本模块承担以下职责：
1. 登记本地身份（``--uname``/``--uuid``），写入身份文件后退出。
2. 依次执行授权校验、节点查询与客户端配置合成，失败时给出明确提示并以非零码退出。
3. 启动 V2Ray 进程，等待中断/终止信号后关闭进程并删除临时配置。
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Optional, Sequence

from freeland import CODENAME, TAGLINE, __version__
from freeland.config.authority import resolve_authority
from freeland.config.defaults import DEFAULT_IDENTITY_FILE, DEFAULT_PROFILE_FILE
from freeland.credentials import save_identity
from freeland.exceptions import EntitlementRejected, FreelandError
from freeland.logging_utils import get_logger, setup_logging
from freeland.pipeline import ProvisioningPipeline
from freeland.tools.v2ray_client_config import BASELINE_TEMPLATE, load_template
from freeland.tools.v2ray_engine import V2RayEngine

if os.name == "nt":
    os.system("")

BLUE = "\033[34m"
GREEN = "\033[32m"
RED = "\033[31m"
YELLOW = "\033[33m"
RESET = "\033[0m"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

LOGGER = get_logger("main")


def _colorize(message: str, color: str) -> str:
    """用 ANSI 颜色编码包装文本。Return ``message`` wrapped in ANSI color codes."""

    return f"{color}{message}{RESET}"


def log_info(message: str) -> None:
    print(_colorize(message, BLUE))


def log_success(message: str) -> None:
    print(_colorize(message, GREEN))


def log_warning(message: str) -> None:
    print(_colorize(message, YELLOW))


def log_error(message: str) -> None:
    print(_colorize(message, RED), file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="freeland",
        description="校验授权、解析节点并生成 V2Ray 客户端配置后启动 V2Ray。",
    )
    parser.add_argument("--uname", default="", help="Your user name registered")
    parser.add_argument("--uuid", default="", help="Your assigned uuid")
    parser.add_argument(
        "--identity",
        default=os.environ.get("FREELAND_IDENTITY_FILE", DEFAULT_IDENTITY_FILE),
        help="身份文件路径",
    )
    parser.add_argument("--profile", default=DEFAULT_PROFILE_FILE, help="生成的 V2Ray 配置路径")
    parser.add_argument("--template", default=None, help="自定义 V2Ray 配置模板（JSON）")
    parser.add_argument("--key", default=None, help="用于授权校验的 SSH 私钥")
    parser.add_argument("--v2ray", default=None, help="V2Ray 可执行文件路径")
    parser.add_argument("--log-dir", default=None, help="日志目录（默认仅输出到控制台）")
    parser.add_argument("--test", action="store_true", help="Test config file only, without launching V2Ray.")
    parser.add_argument("--version", action="store_true", help="Show current version of Freeland.")
    parser.add_argument("--verbose", "-v", action="store_true", help="详细输出")
    return parser


def print_version() -> None:
    print(f"Freeland {__version__} ({CODENAME})")
    print(TAGLINE)


def enroll(args: argparse.Namespace) -> int:
    if not args.uname or not args.uuid:
        log_error("Need to specify both uname and uuid")
        log_error("./freeland --uname name --uuid id")
        return EXIT_USAGE
    try:
        path = save_identity(args.identity, args.uname, args.uuid)
    except FreelandError as exc:
        log_error(str(exc))
        return EXIT_FAILURE
    log_success(f"已保存身份信息到 {path}")
    return EXIT_OK


def _install_stop_handlers() -> tuple[threading.Event, dict]:
    """Route SIGINT/SIGTERM to an event; return it with the previous handlers."""

    stop = threading.Event()

    def _handler(signum, _frame) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handler)
    return stop, previous


def _restore_handlers(previous: dict) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def _wait_for_signal(engine: V2RayEngine, stop: threading.Event) -> int:
    """Block until a stop signal arrives or the engine exits on its own."""

    while not stop.is_set():
        code = engine.wait(timeout=1.0)
        if code is not None:
            log_error(f"V2Ray 进程意外退出，退出码 {code}")
            return EXIT_FAILURE
    return EXIT_OK


def run(args: argparse.Namespace) -> int:
    template = load_template(args.template) if args.template else BASELINE_TEMPLATE
    pipeline = ProvisioningPipeline(
        identity_path=args.identity,
        profile_path=args.profile,
        template=template,
        authority=resolve_authority(),
        key_path=args.key,
    )

    stop, previous_handlers = _install_stop_handlers()
    try:
        result = pipeline.provision()
        log_info(f"节点：{result.assignment.address}")

        if args.test:
            engine = V2RayEngine.construct(result.profile_path, args.v2ray)
            if not engine.test():
                log_error("Configuration error!")
                return EXIT_FAILURE
            log_success("Configuration OK.")
            return EXIT_OK

        if stop.is_set():
            log_warning("收到退出信号，未启动 V2Ray")
            return EXIT_OK

        engine = pipeline.hand_off(lambda path: V2RayEngine.construct(path, args.v2ray))
        log_success("V2Ray 已启动，按 Ctrl+C 退出")
        return _wait_for_signal(engine, stop)
    except EntitlementRejected as exc:
        log_error(f"授权被拒绝（流量或有效期已用尽）：{exc}")
        return EXIT_FAILURE
    except FreelandError as exc:
        log_error(str(exc))
        return EXIT_FAILURE
    finally:
        pipeline.terminate()
        _restore_handlers(previous_handlers)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_dir, level=logging.DEBUG if args.verbose else logging.INFO)

    if args.version:
        print_version()
        return EXIT_OK

    if args.uname or args.uuid:
        return enroll(args)

    try:
        return run(args)
    except FreelandError as exc:
        log_error(str(exc))
        return EXIT_FAILURE
    except ValueError as exc:
        log_error(f"无效的配置：{exc}")
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
