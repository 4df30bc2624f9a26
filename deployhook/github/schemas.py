"""
GitHub push webhook schemas（Pydantic）。

说明：
- 字段只覆盖路由/日志需要的子集（ref + repository.full_name，以及 commit 摘要）
- payload 的其余字段由 GitHub 定义，这里忽略（Pydantic 默认 extra="ignore"）
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class GitHubPushUser(BaseModel):
    name: str | None = None
    email: str | None = None
    username: str | None = None


class GitHubPushCommit(BaseModel):
    id: str
    message: str = ""
    timestamp: str | None = None
    url: str | None = None
    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class GitHubPushRepository(BaseModel):
    full_name: str
    name: str | None = None
    clone_url: str | None = None
    default_branch: str | None = None


class GitHubPushEvent(BaseModel):
    """
    GitHub `push` webhook event（最小结构）。

    ref: 例如 `refs/heads/main`；删除分支时 after 为全 0。
    """

    ref: str
    repository: GitHubPushRepository
    before: str | None = None
    after: str | None = None
    created: bool = False
    deleted: bool = False
    forced: bool = False
    pusher: GitHubPushUser | None = None
    head_commit: GitHubPushCommit | None = None
    commits: list[GitHubPushCommit] = Field(default_factory=list)

    def summary(self) -> str:
        """一行摘要，用于日志。"""
        sha = (self.after or "unknown")[:7]
        pusher = self.pusher.name if self.pusher is not None and self.pusher.name else "unknown"
        return f"{self.repository.full_name} {self.ref} @ {sha} (pushed by {pusher}, {len(self.commits)} commit(s))"
