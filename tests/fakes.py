from __future__ import annotations

import threading
import time
from collections.abc import Sequence

from deployhook.config import HookConfig
from deployhook.deploy.commands import CommandResult
from deployhook.github.schemas import GitHubPushEvent

Outcome = int | BaseException


def make_hook(name: str = "site", repo: str = "org/repo", branch: str = "main", **overrides: object) -> HookConfig:
    fields: dict[str, object] = {
        "name": name,
        "repo_full_name": repo,
        "route": "/hooks/site",
        "checkout_dir": f"/srv/{name}",
        "script": "./deploy.sh",
        "branch": branch,
    }
    fields.update(overrides)
    return HookConfig.model_validate(fields)


def make_event(repo: str = "org/repo", branch: str = "main") -> GitHubPushEvent:
    return GitHubPushEvent.model_validate({"ref": f"refs/heads/{branch}", "repository": {"full_name": repo}})


class FakeRunner:
    """
    记录每次调用的假 runner。

    outcomes 按 (cwd, argv) 或 argv 查找：int 为退出码，异常则直接抛出；默认退出码 0。
    """

    def __init__(self, outcomes: dict[tuple[str, ...], Outcome] | None = None, delay: float = 0.0) -> None:
        self._outcomes = outcomes or {}
        self._delay = delay
        self._lock = threading.Lock()
        self._active = 0
        self.max_active = 0
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    def run(self, argv: Sequence[str], cwd: str, timeout: float | None) -> CommandResult:
        key = tuple(argv)
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
            self.calls.append((cwd, key))
        try:
            if self._delay:
                time.sleep(self._delay)
            outcome = self._outcomes.get((cwd, *key), self._outcomes.get(key, 0))
            if isinstance(outcome, BaseException):
                raise outcome
            return CommandResult(argv=key, returncode=outcome, stdout=f"ran {' '.join(key)}\n".encode(), stderr=b"")
        finally:
            with self._lock:
                self._active -= 1

    def argvs(self) -> list[tuple[str, ...]]:
        return [argv for _, argv in self.calls]
