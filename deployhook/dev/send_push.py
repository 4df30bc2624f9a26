"""
本地调试工具：向运行中的 deployhook 发送一个（可签名的）push 事件。

用途：
- 在没有真实 GitHub 的情况下，本地跑通：
  Webhook -> 路由 -> 鉴权 -> 入队 -> git 流水线

启动：
  python -m deployhook.dev.send_push --url http://127.0.0.1:8081/hooks/site \
      --repo org/site --branch main --secret s3cr3t
"""

from __future__ import annotations

import argparse
import json
import uuid
from collections.abc import Sequence

import httpx

from deployhook.github.signature import SIGNATURE_HEADER
from deployhook.github.signature import compute_signature


def build_push_payload(repo_full_name: str, branch: str, after: str = "1" * 40) -> dict[str, object]:
    """GitHub push 事件的最小 payload（只包含路由需要的字段 + 少量摘要字段）。"""
    name = repo_full_name.split("/")[-1]
    return {
        "ref": f"refs/heads/{branch}",
        "before": "0" * 40,
        "after": after,
        "created": False,
        "deleted": False,
        "forced": False,
        "repository": {"full_name": repo_full_name, "name": name, "default_branch": branch},
        "pusher": {"name": "deployhook-dev", "email": None},
        "commits": [],
    }


def build_push_headers(body: bytes, secret: str | None) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "X-GitHub-Event": "push",
        "X-GitHub-Delivery": str(uuid.uuid4()),
    }
    if secret is not None:
        headers[SIGNATURE_HEADER] = compute_signature(secret=secret, body=body)
    return headers


def send_push(url: str, repo_full_name: str, branch: str, secret: str | None, timeout: float = 10.0) -> httpx.Response:
    body = json.dumps(build_push_payload(repo_full_name=repo_full_name, branch=branch)).encode("utf-8")
    return httpx.post(url, content=body, headers=build_push_headers(body=body, secret=secret), timeout=timeout)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="deployhook-send-push", description=__doc__)
    parser.add_argument("--url", required=True)
    parser.add_argument("--repo", required=True, help="repository full name, e.g. org/site")
    parser.add_argument("--branch", default="main")
    parser.add_argument("--secret", default=None)
    args = parser.parse_args(argv)

    response = send_push(url=args.url, repo_full_name=args.repo, branch=args.branch, secret=args.secret)
    print(f"{response.status_code} {response.text}")
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    raise SystemExit(main())
