"""
单次部署的执行日志。

为什么不直接用 logging：
- 一次部署的所有阶段输出要作为一个整体保留，失败时一次性 dump，便于排查
- 输出是扁平文本：每行都带时间戳，首行标记 `:+:`，续行标记 `:|:`

渲染示例（一个阶段）：

    2024-05-01T10:00:00+02:00: INFO:+:--------
    2024-05-01T10:00:00+02:00: INFO:|:fetching latest changes
    2024-05-01T10:00:00+02:00: INFO:|:--------
    2024-05-01T10:00:00+02:00: INFO:|:++ command = git fetch origin
    2024-05-01T10:00:00+02:00: INFO:|:++ status = 0
    2024-05-01T10:00:00+02:00: INFO:|:++ stdout [empty]
    2024-05-01T10:00:00+02:00: INFO:|:++ stderr
    2024-05-01T10:00:00+02:00: INFO:|:From github.com:org/repo
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, TextIO

from deployhook.deploy.commands import CommandResult

Severity = Literal["INFO", "ERROR"]

STAGE_SEPARATOR = "--------"
FIRST_LINE_MARKER = "+"
CONTINUATION_MARKER = "|"


def _now() -> datetime:
    return datetime.now().astimezone()


def _output_lines(data: bytes) -> list[str]:
    # 去掉末尾一个换行再按 \n 切分：N 行输出 -> N 行日志
    return data.decode("utf-8", errors="replace").removesuffix("\n").split("\n")


def format_stream(label: str, data: bytes) -> list[str]:
    """单个输出流的区块；空输出显式标记 `[empty]`。"""
    if not data:
        return [f"++ {label} [empty]"]
    return [f"++ {label}", *_output_lines(data)]


def format_command_block(stage: str, result: CommandResult) -> str:
    """把一个阶段的 CommandResult 格式化成多行文本。"""
    lines = [
        STAGE_SEPARATOR,
        stage,
        STAGE_SEPARATOR,
        f"++ command = {result.command_line}",
        f"++ status = {result.returncode}",
        *format_stream("stdout", result.stdout),
        *format_stream("stderr", result.stderr),
    ]
    return "\n".join(lines)


def format_error_block(stage: str, message: str) -> str:
    """命令根本没跑起来（或超时被杀）时的区块。"""
    return "\n".join([STAGE_SEPARATOR, stage, STAGE_SEPARATOR, f"error = {message}"])


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    stage: str
    severity: Severity
    text: str

    def render(self) -> list[str]:
        stamp = self.timestamp.isoformat()
        rendered: list[str] = []
        for index, line in enumerate(self.text.split("\n")):
            marker = FIRST_LINE_MARKER if index == 0 else CONTINUATION_MARKER
            rendered.append(f"{stamp}: {self.severity}:{marker}:{line}")
        return rendered


class ExecutionLog:
    """按插入顺序累积阶段记录；只追加，不修改。"""

    def __init__(self, clock: Callable[[], datetime] = _now) -> None:
        self._clock = clock
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def stages(self) -> list[tuple[str, Severity]]:
        """(阶段名, 级别) 列表，便于断言/汇总。"""
        return [(entry.stage, entry.severity) for entry in self._entries]

    def append(self, stage: str, severity: Severity, text: str) -> None:
        self._entries.append(LogEntry(timestamp=self._clock(), stage=stage, severity=severity, text=text))

    def record(self, stage: str, result: CommandResult, severity: Severity = "INFO") -> None:
        self.append(stage=stage, severity=severity, text=format_command_block(stage=stage, result=result))

    def record_error(self, stage: str, message: str) -> None:
        self.append(stage=stage, severity="ERROR", text=format_error_block(stage=stage, message=message))

    def has_errors(self) -> bool:
        return any(entry.severity == "ERROR" for entry in self._entries)

    def render(self) -> str:
        lines: list[str] = []
        for entry in self._entries:
            lines.extend(entry.render())
        return "\n".join(lines) + "\n" if lines else ""

    def flush_to(self, sink: TextIO) -> None:
        """同步写入 sink（通常是 stderr），写完立即 flush。"""
        sink.write(self.render())
        sink.flush()
