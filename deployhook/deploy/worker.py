"""
部署 worker：进程内唯一的队列消费者。

关键约束：
- 同一时刻最多只有一条流水线在跑（单线程顺序消费），不同 hook 之间也不并行
- 某个 job 失败只影响它自己：日志 dump 之后继续处理下一个 job
- 收到 SHUTDOWN 即退出；调用方需要 join，保证最后的日志已经写出
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import TextIO

from deployhook.deploy.commands import CommandRunner
from deployhook.deploy.event_queue import EventQueue
from deployhook.deploy.event_queue import QueuedJob
from deployhook.deploy.event_queue import SHUTDOWN
from deployhook.deploy.execution_log import ExecutionLog
from deployhook.deploy.pipeline import PipelineError
from deployhook.deploy.pipeline import run_deploy_pipeline

logger = logging.getLogger(__name__)


class DeployWorker:
    def __init__(
        self,
        event_queue: EventQueue,
        runner: CommandRunner,
        git_bin: str = "git",
        sink: TextIO | None = None,
        flush_log_on_success: bool = False,
    ) -> None:
        """
        - event_queue: 与 HTTP 层共享的队列（构造时显式传入，不走全局状态）
        - runner: 命令执行器（生产环境为 SubprocessRunner）
        - sink: 执行日志输出目标，默认 stderr
        - flush_log_on_success: 成功的 job 也输出执行日志
        """
        self._queue = event_queue
        self._runner = runner
        self._git_bin = git_bin
        self._sink = sink
        self._flush_log_on_success = flush_log_on_success
        self._thread: threading.Thread | None = None
        self.succeeded = 0
        self.failed = 0

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("DeployWorker already started")
        self._thread = threading.Thread(target=self.run, name="deploy-worker", daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def run(self) -> None:
        """消费循环：直到收到 SHUTDOWN。"""
        logger.info("Deploy worker started")
        while True:
            message = self._queue.receive()
            if message is SHUTDOWN:
                break
            if not isinstance(message, QueuedJob):
                logger.error(f"Ignoring unexpected queue message {message!r}")
                continue
            try:
                self.process(message)
            except Exception:
                # 意外错误也只影响当前 job，循环继续
                self.failed += 1
                logger.exception(f"Unexpected error while processing hook {message.hook.name!r}")
        logger.info(f"Deploy worker stopped ({self.succeeded} succeeded, {self.failed} failed)")

    def process(self, job: QueuedJob) -> bool:
        """跑一个 job 的流水线；返回是否成功。失败时（包括意外错误）先 dump 日志再返回 False。"""
        hook = job.hook
        logger.info(f"Processing hook {hook.name!r}: {job.event.summary()}")
        log = ExecutionLog()
        try:
            run_deploy_pipeline(hook=hook, runner=self._runner, log=log, git_bin=self._git_bin)
        except PipelineError as exc:
            self.failed += 1
            logger.error(f"Deploy failed for hook {hook.name!r} at stage {exc.stage!r} - log follows")
            log.flush_to(self._output())
            return False
        except Exception:
            # 流水线以外的意外错误：同样 dump 已记录的阶段，不丢日志
            self.failed += 1
            logger.exception(f"Deploy crashed for hook {hook.name!r} - log follows")
            log.flush_to(self._output())
            return False

        self.succeeded += 1
        logger.info(f"Deploy succeeded for hook {hook.name!r}")
        if self._flush_log_on_success:
            log.flush_to(self._output())
        return True

    def _output(self) -> TextIO:
        # 延迟取 sys.stderr：便于测试时被替换
        return self._sink if self._sink is not None else sys.stderr
