"""
FastAPI 服务入口。

这里做三件事：
- 加载配置（严格校验，失败直接退出）
- 组装依赖（hook registry / 事件队列 / 部署 worker）
- 装配路由（health + 每个 route 一个 push webhook）

注意：
- 部署流程不写在这里（由 `deploy/pipeline.py` 负责）
- worker 的启动与退出挂在 lifespan 上：关闭时先 close 队列，再 join worker
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

import anyio
import uvicorn
from fastapi import FastAPI

from deployhook.config import CONFIG_PATH_ENV
from deployhook.config import AppConfig
from deployhook.config import ConfigError
from deployhook.config import load_config_from_env
from deployhook.config import load_config_from_file
from deployhook.config import warn_unauthenticated_hooks
from deployhook.deploy.commands import CommandRunner
from deployhook.deploy.commands import SubprocessRunner
from deployhook.deploy.event_queue import EventQueue
from deployhook.deploy.event_queue import build_enqueue_handler
from deployhook.deploy.worker import DeployWorker
from deployhook.github.webhook import build_push_webhook_router
from deployhook.hooks.registry import build_hook_registry

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    """进程启动时调用一次。"""
    logging.basicConfig(level=level, format=LOG_FORMAT)


def build_app(config: AppConfig, runner: CommandRunner | None = None) -> FastAPI:
    """创建并返回 FastAPI app（便于测试/复用）。"""

    # 1) registry：启动时构建一次，之后只读
    registry = build_hook_registry(config.hooks)

    # 2) 队列 + 唯一的 worker：队列句柄显式传给 HTTP 层和 worker
    event_queue = EventQueue()
    worker = DeployWorker(
        event_queue=event_queue,
        runner=runner if runner is not None else SubprocessRunner(),
        git_bin=config.git_bin,
        flush_log_on_success=config.flush_log_on_success,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        worker.start()
        try:
            yield
        finally:
            # SHUTDOWN 之前已入队的 job 会先跑完；join 放到线程里，避免卡住事件循环
            event_queue.close()
            await anyio.to_thread.run_sync(worker.join)

    app = FastAPI(title="deployhook", version="0.1.0", lifespan=lifespan)
    app.state.registry = registry
    app.state.event_queue = event_queue
    app.state.worker = worker

    @app.get("/health")
    async def health() -> dict[str, str | int]:
        """健康检查：用于 systemd / LB 探活。"""
        return {
            "status": "ok",
            "worker": "running" if worker.is_alive else "stopped",
            "queued": event_queue.qsize(),
        }

    app.include_router(build_push_webhook_router(registry=registry, handler=build_enqueue_handler(event_queue)))
    return app


def create_app() -> FastAPI:
    """`uvicorn --factory deployhook.main:create_app` 入口：配置路径来自环境变量。"""
    config = load_config_from_env(os.environ)
    configure_logging(config.log_level)
    warn_unauthenticated_hooks(config)
    return build_app(config)


def main(argv: Sequence[str] | None = None) -> int:
    """
    命令行入口：`deployhook <config.toml>`。

    - 0：正常退出（worker 已 drain 并 join）
    - 1：配置加载/校验失败
    - 监听端口绑定失败时 uvicorn 自身以非 0 退出
    """
    parser = argparse.ArgumentParser(prog="deployhook", description="GitHub push webhook deployment dispatcher")
    parser.add_argument("config", nargs="?", help=f"path to the config file (default: ${CONFIG_PATH_ENV})")
    args = parser.parse_args(argv)

    try:
        config = load_config_from_file(args.config) if args.config else load_config_from_env(os.environ)
    except ConfigError as exc:
        configure_logging("INFO")
        logger.error(str(exc))
        return 1

    configure_logging(config.log_level)
    warn_unauthenticated_hooks(config)
    app = build_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
