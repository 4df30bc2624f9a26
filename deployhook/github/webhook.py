"""
GitHub push Webhook 接入层。

职责：
- 每个配置的 route 挂一个 POST 端点
- 读取原始 body（签名必须基于原始字节校验）
- 解析 payload -> Pydantic schema
- 按 仓库 + 分支 选出 hook，再用该 hook 的 secret 校验 `X-Hub-Signature-256`
- 调用业务 handler（入队），立即返回；git 流水线绝不在请求内执行

任何失败（解码 / 路由 / 鉴权 / 入队）都返回 500 + 诊断信息，成功返回空 body 的 200。
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from fastapi import APIRouter
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from fastapi import Response
from pydantic import ValidationError

from deployhook.config import HookConfig
from deployhook.deploy.event_queue import PushHandler
from deployhook.deploy.event_queue import QueueClosedError
from deployhook.github.schemas import GitHubPushEvent
from deployhook.github.signature import AuthError
from deployhook.github.signature import validate_signature
from deployhook.hooks.registry import HookRegistry
from deployhook.hooks.registry import RouteEntry

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """请求 body 无法读取或无法解码为 push 事件。"""


class RoutingError(Exception):
    """没有 hook 匹配该事件的 仓库 + 分支。"""


def decode_push_event(body: bytes) -> GitHubPushEvent:
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TransportError(f"Invalid JSON payload: {exc}") from exc
    try:
        return GitHubPushEvent.model_validate(payload)
    except ValidationError as exc:
        raise TransportError(f"Payload is not a GitHub push event: {exc}") from exc


def accept_push(entry: RouteEntry, body: bytes, signature_header: str | None) -> tuple[HookConfig, GitHubPushEvent]:
    """
    解码 -> 路由 -> 鉴权。

    顺序说明：必须先解码才知道是哪个 hook，而 secret 是按 hook 配置的。
    """
    event = decode_push_event(body)
    logger.info(f"Got push event on {entry.route}: {event.summary()}")

    hook = entry.match(repo_full_name=event.repository.full_name, ref=event.ref)
    if hook is None:
        raise RoutingError(f"No hook on {entry.route} for {event.repository.full_name} {event.ref}")
    logger.info(f"Using hook: {hook.name}")

    secret = hook.secret.get_secret_value() if hook.secret is not None else None
    validate_signature(secret=secret, body=body, signature_header=signature_header)
    return hook, event


def _build_endpoint(
    entry: RouteEntry, handler: PushHandler
) -> Callable[..., Coroutine[Any, Any, Response]]:
    async def push_webhook(
        request: Request,
        x_hub_signature_256: str | None = Header(default=None, alias="X-Hub-Signature-256"),
        x_github_delivery: str | None = Header(default=None, alias="X-GitHub-Delivery"),
    ) -> Response:
        body = await request.body()
        try:
            hook, event = accept_push(entry=entry, body=body, signature_header=x_hub_signature_256)
            handler(hook, event, body)
        except QueueClosedError as exc:
            logger.error(f"Unable to queue delivery {x_github_delivery} on {entry.route}: {exc}")
            raise HTTPException(status_code=500, detail=f"{type(exc).__name__}: {exc}") from exc
        except (TransportError, RoutingError, AuthError) as exc:
            logger.warning(f"Rejected delivery {x_github_delivery} on {entry.route}: {type(exc).__name__}: {exc}")
            raise HTTPException(status_code=500, detail=f"{type(exc).__name__}: {exc}") from exc
        return Response(status_code=200)

    return push_webhook


def build_push_webhook_router(registry: HookRegistry, handler: PushHandler) -> APIRouter:
    """创建 push webhook 路由：每个 route 一个 POST 端点，共享同一个 handler。"""
    router = APIRouter()
    for entry in registry.routes():
        names = ", ".join(hook.name for hook in entry.hooks)
        logger.info(f"Adding route {entry.route} (hooks: {names})")
        router.add_api_route(
            entry.route,
            _build_endpoint(entry=entry, handler=handler),
            methods=["POST"],
            response_class=Response,
            name=f"push_webhook:{entry.route}",
        )
    return router
