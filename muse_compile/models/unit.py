"""
编译单元模型 - 状态、输出格式与锁/状态记录

对应磁盘布局：
- <name><suffix>   源文件
- <name>.lock      打开标记（进程号+时间）
- <name>.status    完成标记
- <name>.<ext>     产物
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from enum import Enum
from pathlib import Path

import psutil
from pydantic import BaseModel, Field, ValidationError

from ..interfaces import CompileIOError


class UnitState(str, Enum):
    """编译单元状态"""
    UNKNOWN = "unknown"
    ACTIVE = "active"
    DELETED = "deleted"
    CLOSED = "closed"
    FAILED = "failed"


class OutputFormat(str, Enum):
    """输出格式"""
    TEX = "tex"
    PDF = "pdf"
    A4_PDF = "a4_pdf"
    LT_PDF = "lt_pdf"
    HTML = "html"
    BARE_HTML = "bare_html"
    EPUB = "epub"
    ZIP = "zip"

    @property
    def extension(self) -> str:
        return _FORMAT_EXTENSIONS[self]


_FORMAT_EXTENSIONS = {
    OutputFormat.TEX: ".tex",
    OutputFormat.PDF: ".pdf",
    OutputFormat.A4_PDF: ".a4.pdf",
    OutputFormat.LT_PDF: ".lt.pdf",
    OutputFormat.HTML: ".html",
    OutputFormat.BARE_HTML: ".bare.html",
    OutputFormat.EPUB: ".epub",
    OutputFormat.ZIP: ".zip",
}

# 编译顺序：拼版格式先于 tex/pdf，保证独立 PDF 使用最终的 tex
COMPILE_ORDER: list[OutputFormat] = [
    OutputFormat.EPUB,
    OutputFormat.HTML,
    OutputFormat.BARE_HTML,
    OutputFormat.A4_PDF,
    OutputFormat.LT_PDF,
    OutputFormat.TEX,
    OutputFormat.PDF,
    OutputFormat.ZIP,
]

PURGED_EXTENSIONS: tuple[str, ...] = (
    ".pdf", ".a4.pdf", ".lt.pdf",
    ".tex", ".log", ".aux", ".toc", ".ok",
    ".html", ".bare.html", ".epub",
    ".zip",
)

LATEX_EXTENSIONS: tuple[str, ...] = (".log", ".aux", ".toc", ".pdf")


class StatusState(str, Enum):
    """完成标记状态"""
    OK = "ok"
    FAILED = "failed"
    DELETED = "deleted"


class LockRecord(BaseModel):
    """锁记录（建议性锁，以持有进程是否存活为准）"""
    pid: int = Field(default_factory=os.getpid)
    locked_at: str = Field(default_factory=lambda: datetime.now().strftime("%a %b %d %H:%M:%S %Y"))

    def is_alive(self) -> bool:
        """持有进程是否仍存在"""
        return psutil.pid_exists(self.pid)

    def write(self, path: Path) -> None:
        try:
            path.write_text(self.model_dump_json(), encoding="utf-8")
        except OSError as e:
            raise CompileIOError(path, e) from e

    @classmethod
    def read(cls, path: Path) -> LockRecord | None:
        """读取锁文件，不存在返回None；格式错误视为环境错误"""
        if not path.exists():
            return None
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise CompileIOError(path, e) from e
        except ValidationError as e:
            raise CompileIOError(path, f"锁文件格式错误: {e}") from e


class StatusRecord(BaseModel):
    """完成标记"""
    state: StatusState
    pid: int = Field(default_factory=os.getpid)
    finished_at: datetime = Field(default_factory=datetime.now)
    formats: list[str] = Field(default_factory=list)
    error: str | None = None

    def write(self, path: Path) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise CompileIOError(path, e) from e

    @classmethod
    def read(cls, path: Path) -> StatusRecord | None:
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return cls(**json.load(f))
        except (OSError, ValueError) as e:
            raise CompileIOError(path, e) from e
