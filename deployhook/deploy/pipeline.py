"""
部署流水线（git 同步 + 部署脚本）。

固定 4 阶段，前一阶段成功才会进入下一阶段：
- Step 1: git fetch origin
- Step 2: git checkout <branch>
- Step 3: git rebase origin/<branch>
- Step 4: 在 checkout 目录下执行部署脚本

任一阶段启动失败 / 退出码非 0 / 超时，都会立即终止后续阶段。
每个阶段的结果（成功或失败）都会先写入 ExecutionLog。
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

from deployhook.config import HookConfig
from deployhook.deploy.commands import CommandResult
from deployhook.deploy.commands import CommandRunner
from deployhook.deploy.execution_log import ExecutionLog

logger = logging.getLogger(__name__)


class PipelineError(RuntimeError):
    """流水线在某个阶段失败。"""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class CommandLaunchError(PipelineError):
    def __init__(self, stage: str, argv: tuple[str, ...], cause: Exception) -> None:
        super().__init__(stage, f"failed to launch {' '.join(argv)}: {cause}")
        self.argv = argv


class CommandFailedError(PipelineError):
    def __init__(self, stage: str, result: CommandResult) -> None:
        super().__init__(stage, f"{result.command_line} exited with status {result.returncode}")
        self.result = result


class CommandTimeoutError(PipelineError):
    def __init__(self, stage: str, argv: tuple[str, ...], timeout: float) -> None:
        super().__init__(stage, f"{' '.join(argv)} timed out after {timeout:g}s")
        self.argv = argv
        self.timeout = timeout


@dataclass(frozen=True)
class Stage:
    label: str
    argv: tuple[str, ...]


def build_stages(hook: HookConfig, git_bin: str) -> list[Stage]:
    """fetch -> checkout -> rebase -> script，顺序固定、不可配置。"""
    return [
        Stage(label="fetching latest changes", argv=(git_bin, "fetch", "origin")),
        Stage(label="checking out branch", argv=(git_bin, "checkout", hook.branch)),
        Stage(label="rebasing onto latest changes", argv=(git_bin, "rebase", f"origin/{hook.branch}")),
        Stage(label="running deploy script", argv=(hook.script,)),
    ]


def run_stage(stage: Stage, hook: HookConfig, runner: CommandRunner, log: ExecutionLog) -> CommandResult:
    """执行单个阶段并记录结果；失败时记录后抛 `PipelineError`。"""
    try:
        result = runner.run(stage.argv, cwd=hook.checkout_dir, timeout=hook.timeout_seconds)
    except subprocess.TimeoutExpired as exc:
        error = CommandTimeoutError(stage.label, stage.argv, exc.timeout)
        log.record_error(stage.label, str(error))
        raise error from exc
    except Exception as exc:
        # OSError 以外（例如参数里带 NUL 的 ValueError）同样算启动失败
        launch_error = CommandLaunchError(stage.label, stage.argv, exc)
        log.record_error(stage.label, f"{type(exc).__name__}: {exc}")
        raise launch_error from exc

    if not result.ok:
        log.record(stage.label, result, severity="ERROR")
        raise CommandFailedError(stage.label, result)

    log.record(stage.label, result)
    return result


def run_deploy_pipeline(hook: HookConfig, runner: CommandRunner, log: ExecutionLog, git_bin: str = "git") -> None:
    """
    对一个 hook 跑完整流水线（在 worker 线程内同步执行）。

    - 成功：正常返回，log 里有 4 个 INFO 阶段
    - 失败：抛 `PipelineError`，log 里最后一个阶段是 ERROR，之后的阶段不会执行
    """
    for stage in build_stages(hook=hook, git_bin=git_bin):
        run_stage(stage=stage, hook=hook, runner=runner, log=log)
