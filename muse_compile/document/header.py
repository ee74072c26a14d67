"""
头部快速扫描 - 只读取文件开头的 #key value 指令，不解析正文
"""

from __future__ import annotations

import re
from pathlib import Path

from ..interfaces import CompileIOError

_DIRECTIVE = re.compile(r"^#([A-Za-z][A-Za-z0-9_-]*)(?:\s+(.*?))?\s*$")


def fast_scan_header(path: Path) -> dict[str, str]:
    """
    扫描源文件头部指令

    头部在第一个非空且不是指令的行处结束；键名统一小写。

    Args:
        path: 源文件路径

    Returns:
        头部字段；没有头部时返回空字典

    Raises:
        CompileIOError: 文件无法读取
    """
    header: dict[str, str] = {}
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                if not line.strip():
                    continue
                match = _DIRECTIVE.match(line)
                if not match:
                    break
                header[match.group(1).lower()] = match.group(2) or ""
    except OSError as e:
        raise CompileIOError(path, e) from e
    return header


def is_deleted_header(header: dict[str, str]) -> bool:
    """#DELETED 指令非空即视为已删除"""
    return bool(header.get("deleted", "").strip())
