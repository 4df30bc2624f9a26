from __future__ import annotations

import pytest
from pydantic import ValidationError

from deployhook.github.schemas import GitHubPushEvent


def _github_push() -> dict[str, object]:
    return {
        "ref": "refs/heads/main",
        "before": "6113728f27ae82c7b1a177c8d03f9e96e0adf246",
        "after": "0d1a26e67d8f5eaf1f6ba5c57fc3c7d91ac0fd1c",
        "base_ref": None,
        "compare": "https://github.com/org/repo/compare/6113728f27ae...0d1a26e67d8f",
        "created": False,
        "deleted": False,
        "forced": False,
        "repository": {
            "id": 186853002,
            "node_id": "MDEwOlJlcG9zaXRvcnkxODY4NTMwMDI=",
            "name": "repo",
            "full_name": "org/repo",
            "private": False,
            "owner": {"login": "org", "id": 21031067},
            "clone_url": "https://github.com/org/repo.git",
            "default_branch": "main",
            "pushed_at": 1557933657,
        },
        "pusher": {"name": "octocat", "email": "octocat@example.com"},
        "sender": {"login": "octocat", "id": 21031067},
        "head_commit": {
            "id": "0d1a26e67d8f5eaf1f6ba5c57fc3c7d91ac0fd1c",
            "tree_id": "f9d2a07e9488b91af2641b26b9407fe22a451433",
            "distinct": True,
            "message": "Update README.md",
            "timestamp": "2019-05-15T15:20:30Z",
            "url": "https://github.com/org/repo/commit/0d1a26e67d8f",
            "author": {"name": "Octo Cat", "email": "octocat@example.com", "username": "octocat"},
            "committer": {"name": "GitHub", "email": "noreply@github.com", "username": "web-flow"},
            "added": [],
            "removed": [],
            "modified": ["README.md"],
        },
        "commits": [
            {
                "id": "0d1a26e67d8f5eaf1f6ba5c57fc3c7d91ac0fd1c",
                "message": "Update README.md",
                "modified": ["README.md"],
            }
        ],
    }


def test_push_event_ignores_unknown_fields() -> None:
    event = GitHubPushEvent.model_validate(_github_push())
    assert event.ref == "refs/heads/main"
    assert event.repository.full_name == "org/repo"
    assert event.head_commit is not None
    assert event.head_commit.modified == ["README.md"]
    assert event.summary() == "org/repo refs/heads/main @ 0d1a26e (pushed by octocat, 1 commit(s))"


def test_push_event_minimal_payload() -> None:
    event = GitHubPushEvent.model_validate({"ref": "refs/heads/dev", "repository": {"full_name": "org/repo"}})
    assert event.commits == []
    assert event.summary() == "org/repo refs/heads/dev @ unknown (pushed by unknown, 0 commit(s))"


def test_push_event_requires_repository_full_name() -> None:
    with pytest.raises(ValidationError):
        GitHubPushEvent.model_validate({"ref": "refs/heads/main", "repository": {"name": "repo"}})
