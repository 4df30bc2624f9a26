"""
请求处理 -> 部署 worker 的交接队列。

- 多生产者（HTTP handler，任意并发）/ 单消费者（唯一的 DeployWorker）
- 无界、严格 FIFO；不去重、不合并：每次 push 都会产生一个独立的 job
- 生命周期：RUNNING -> SHUTTING_DOWN；close() 之后 send() 一律失败
"""

from __future__ import annotations

import enum
import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass

from deployhook.config import HookConfig
from deployhook.github.schemas import GitHubPushEvent

logger = logging.getLogger(__name__)


class QueueState(enum.Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


@dataclass(frozen=True)
class QueuedJob:
    """交给 worker 的一次部署：hook + 触发它的 push 事件（连同收到的原始 body）。"""

    hook: HookConfig
    event: GitHubPushEvent
    body: bytes = b""


class _Shutdown:
    def __repr__(self) -> str:
        return "SHUTDOWN"


SHUTDOWN = _Shutdown()

QueueMessage = QueuedJob | _Shutdown


class QueueClosedError(RuntimeError):
    """队列已关闭（进程正在退出或 worker 已停止），无法再投递 job。"""


class EventQueue:
    """线程安全的 job 队列；生产者句柄可以在并发请求间共享。"""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[QueueMessage] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._state = QueueState.RUNNING

    @property
    def state(self) -> QueueState:
        return self._state

    def qsize(self) -> int:
        """近似的待处理消息数（包含 SHUTDOWN 哨兵）。"""
        return self._queue.qsize()

    def send(self, job: QueuedJob) -> None:
        """O(1) 投递，不等待部署执行。"""
        # 加锁只是为了让“检查状态 + 入队”和 close() 互斥：SHUTDOWN 之后不会再有 job
        with self._lock:
            if self._state is not QueueState.RUNNING:
                raise QueueClosedError("Event queue is shutting down; job not accepted")
            self._queue.put(job)

    def close(self) -> bool:
        """切到 SHUTTING_DOWN 并投递一次 SHUTDOWN 哨兵；重复调用返回 False。"""
        with self._lock:
            if self._state is QueueState.SHUTTING_DOWN:
                return False
            self._state = QueueState.SHUTTING_DOWN
            self._queue.put(SHUTDOWN)
            return True

    def receive(self, timeout: float | None = None) -> QueueMessage:
        """阻塞直到拿到下一条消息；带 timeout 时超时抛 `queue.Empty`。"""
        return self._queue.get(timeout=timeout)


PushHandler = Callable[[HookConfig, GitHubPushEvent, bytes], None]


def build_enqueue_handler(event_queue: EventQueue) -> PushHandler:
    """
    装配 webhook handler：把“已解码 + 已鉴权”的 push 事件包装成 job 入队。

    失败（队列已关闭）直接抛 `QueueClosedError`，由 HTTP 层转成 500。
    """

    def handle(hook: HookConfig, event: GitHubPushEvent, body: bytes) -> None:
        event_queue.send(QueuedJob(hook=hook, event=event, body=body))
        logger.info(f"Queued deploy for hook {hook.name!r} ({event.summary()})")

    return handle
