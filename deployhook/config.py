"""
应用配置加载。

设计目标：
- **严格**：配置文件缺失/格式错误/多余字段直接报错，启动失败（避免“看起来跑了其实没配置好”）
- **类型安全**：使用 Pydantic 校验每个 hook 的字段
- **可测试**：核心加载函数接收 `path` / `environ` 显式输入，便于单元测试

配置文件支持 TOML（`.toml`）与 YAML（`.yaml` / `.yml`），结构一致：

    port = 8081

    [[hooks]]
    name = "site"
    repo_full_name = "org/site"
    route = "/hooks/site"
    checkout_dir = "/srv/site"
    script = "./deploy.sh"
    branch = "main"
    secret = "..."
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "DEPLOYHOOK_CONFIG"


class ConfigError(ValueError):
    """配置无法加载或校验失败。"""


class HookConfig(BaseModel):
    """单个部署目标：(仓库, 分支) -> 本地 checkout + 部署脚本。启动后不可变。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    repo_full_name: str = Field(min_length=1)
    route: str
    checkout_dir: str = Field(min_length=1)
    script: str = Field(min_length=1)
    branch: str = Field(min_length=1)
    secret: SecretStr | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("route")
    @classmethod
    def _route_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"route must start with '/': {value!r}")
        return value

    @field_validator("secret")
    @classmethod
    def _secret_not_blank(cls, value: SecretStr | None) -> SecretStr | None:
        # 空字符串 secret 等价于“看起来配置了其实没有”，直接拒绝
        if value is not None and not value.get_secret_value():
            raise ValueError("secret must be non-empty when given (omit it to disable authentication)")
        return value

    @property
    def ref(self) -> str:
        """push 事件里对应本分支的 ref。"""
        return f"refs/heads/{self.branch}"


class AppConfig(BaseModel):
    """进程级配置：监听地址 + 全部 hook。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = "0.0.0.0"
    port: int = Field(default=8081, ge=1, le=65535)
    git_bin: str = "git"
    log_level: str = "INFO"
    flush_log_on_success: bool = False
    hooks: list[HookConfig]

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log_level: {value!r}")
        return normalized

    @model_validator(mode="after")
    def _check_hooks(self) -> AppConfig:
        if not self.hooks:
            raise ValueError("at least one hook must be configured")
        seen: set[tuple[str, str, str]] = set()
        for hook in self.hooks:
            key = (hook.route, hook.repo_full_name, hook.branch)
            if key in seen:
                raise ValueError(
                    f"duplicate hook for {hook.repo_full_name}@{hook.branch} on route {hook.route} (hook {hook.name!r})"
                )
            seen.add(key)
        return self


def parse_config(raw: Mapping[str, object]) -> AppConfig:
    """把已解析的 dict 交给 Pydantic 校验；失败统一抛 `ConfigError`。"""
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {exc}") from exc


def load_config_from_file(path: str | Path) -> AppConfig:
    """
    读取并校验配置文件。

    - **输入**：配置文件路径（后缀决定格式）
    - **输出**：`AppConfig`
    - **失败**：文件不可读/格式错误/校验失败抛 `ConfigError`
    """
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to load {config_path}: {exc}") from exc

    suffix = config_path.suffix.lower()
    try:
        if suffix == ".toml":
            raw = tomllib.loads(text)
        elif suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(text) or {}
        else:
            raise ConfigError(f"Unsupported config format {suffix!r} (expected .toml, .yaml or .yml)")
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to parse config file {config_path}: {exc}") from exc

    if not isinstance(raw, Mapping):
        raise ConfigError(f"Config file {config_path} must contain a mapping at the top level")
    return parse_config(raw)


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """从 `DEPLOYHOOK_CONFIG` 指向的文件加载配置（缺失则直接报错）。"""
    path = environ.get(CONFIG_PATH_ENV)
    if not path:
        raise ConfigError(f"Missing required env var: {CONFIG_PATH_ENV}")
    return load_config_from_file(path)


def warn_unauthenticated_hooks(config: AppConfig) -> list[str]:
    """没有 secret 的 hook 会接受任何请求：启动时逐个打 WARNING，并返回这些 hook 名。"""
    names: list[str] = []
    for hook in config.hooks:
        if hook.secret is None:
            logger.warning(f"hook {hook.name!r} has no secret specified; requests to {hook.route} are not authenticated")
            names.append(hook.name)
    return names
