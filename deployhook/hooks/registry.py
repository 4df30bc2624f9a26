"""
Hook 注册表 + 路由匹配。

为什么需要 registry：
- 同一个 route 下可以挂多个 hook（按 仓库 + 分支 区分），route 本身不要求唯一对应一个 hook
- 启动时构建一次，之后只读（不需要加锁，也没有全局可变路由表）
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from deployhook.config import HookConfig


@dataclass(frozen=True)
class RouteEntry:
    """一个 HTTP route 以及挂在它下面的 hook（保持配置顺序）。"""

    route: str
    hooks: tuple[HookConfig, ...]

    def match(self, repo_full_name: str, ref: str) -> HookConfig | None:
        """按配置顺序找第一个 仓库名 + ref 都匹配的 hook。"""
        for hook in self.hooks:
            if hook.repo_full_name == repo_full_name and hook.ref == ref:
                return hook
        return None


class HookRegistry:
    """不可变的 route -> RouteEntry 集合。"""

    def __init__(self, entries: Mapping[str, RouteEntry]) -> None:
        self._entries: Mapping[str, RouteEntry] = MappingProxyType(dict(entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RouteEntry]:
        return iter(self._entries.values())

    def routes(self) -> list[RouteEntry]:
        return list(self._entries.values())

    def get(self, route: str) -> RouteEntry | None:
        return self._entries.get(route)

    def match(self, route: str, repo_full_name: str, ref: str) -> HookConfig | None:
        """在 route 下选出匹配的 hook；route 不存在或没有匹配都返回 None。"""
        entry = self._entries.get(route)
        if entry is None:
            return None
        return entry.match(repo_full_name=repo_full_name, ref=ref)


class HookRegistryBuilder:
    """启动阶段使用：逐个 register，最后 build 出只读 registry。"""

    def __init__(self) -> None:
        self._hooks: dict[str, list[HookConfig]] = {}
        self._built = False

    def register(self, hook: HookConfig) -> None:
        if self._built:
            raise RuntimeError("HookRegistryBuilder already built; registry is immutable")
        hooks = self._hooks.setdefault(hook.route, [])
        for existing in hooks:
            if existing.repo_full_name == hook.repo_full_name and existing.branch == hook.branch:
                raise ValueError(
                    f"hook {hook.name!r} duplicates {existing.name!r}: "
                    f"{hook.repo_full_name}@{hook.branch} is already registered on {hook.route}"
                )
        hooks.append(hook)

    def build(self) -> HookRegistry:
        self._built = True
        entries = {
            route: RouteEntry(route=route, hooks=tuple(hooks)) for route, hooks in sorted(self._hooks.items())
        }
        return HookRegistry(entries)


def build_hook_registry(hooks: Iterable[HookConfig]) -> HookRegistry:
    """按配置顺序注册全部 hook。"""
    builder = HookRegistryBuilder()
    for hook in hooks:
        builder.register(hook)
    return builder.build()
