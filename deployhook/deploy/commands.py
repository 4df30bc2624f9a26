"""
外部命令执行（git / 部署脚本）。

约定：
- runner 只负责“跑命令 + 收集输出”，不做业务判断（退出码是否算失败由 pipeline 决定）
- 启动失败直接抛 `OSError`，超时抛 `subprocess.TimeoutExpired`，不要吞
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """一次命令执行的结果（stdout/stderr 保留原始 bytes）。"""

    argv: tuple[str, ...]
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)


class CommandRunner(Protocol):
    """命令执行接口协议（用于依赖倒置，测试里可替换为假的 runner）。"""

    def run(self, argv: Sequence[str], cwd: str, timeout: float | None) -> CommandResult: ...


class SubprocessRunner:
    """基于 `subprocess.run` 的 runner：同步执行到结束。"""

    def run(self, argv: Sequence[str], cwd: str, timeout: float | None) -> CommandResult:
        logger.info(f"Running (in {cwd}) {' '.join(argv)}")
        completed = subprocess.run(list(argv), cwd=cwd, capture_output=True, timeout=timeout)
        return CommandResult(
            argv=tuple(argv),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
