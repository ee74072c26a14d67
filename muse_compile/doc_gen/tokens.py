"""
模板变量准备 - 校验调用方选项，生成内置模板使用的 safe_options

职责：
1. 优先级：单次调用参数 > 编译单元选项 > 内置默认值
2. 按校验表逐项校验（枚举/数值范围/长度单位）
3. 非法值记录警告并回退到默认值，不中断构建

测试要点：
- test_defaults: 默认值
- test_precedence: 参数优先级
- test_invalid_values_fall_back: 非法值回退
- test_nocoverpage_only_without_toc: 无目录时才允许去掉封面页
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from ..interfaces import IDocument
from ..models import SafeOptions

logger = logging.getLogger(__name__)

TEX_MEASURE = r"[0-9]+(?:\.[0-9]+)?(?:cm|mm|in|pt)"
_MEASURE = re.compile(rf"^{TEX_MEASURE}$")
_PAPER_MEASURE = re.compile(rf"^{TEX_MEASURE}:{TEX_MEASURE}$")

PAPER_SIZES: dict[str, str] = {
    "half-a4": "a5",
    "half-lt": "5.5in:8.5in",
    "generic": "210mm:11in",
    "a4": "a4",
    "a5": "a5",
    "a6": "a6",
    "letter": "letter",
}

_FALSE_STRINGS = {"", "0", "no", "false"}


class _Rejected(Exception):
    """选项值不合法"""


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _papersize(value: Any) -> str:
    size = str(value).strip()
    if size in PAPER_SIZES:
        return PAPER_SIZES[size]
    if _PAPER_MEASURE.match(size):
        return size
    raise _Rejected


def _int_range(low: int, high: int) -> Callable[[Any], int]:
    def check(value: Any) -> int:
        try:
            number = int(str(value).strip())
        except ValueError:
            raise _Rejected from None
        if not low <= number <= high:
            raise _Rejected
        return number

    return check


def _measure(value: Any) -> str:
    text = str(value).strip()
    if not _MEASURE.match(text):
        raise _Rejected
    return text


def _coverwidth(value: Any) -> float:
    try:
        width = float(str(value).strip())
    except ValueError:
        raise _Rejected from None
    if not 0 < width <= 1:
        raise _Rejected
    return width


def _nonempty(value: Any) -> str:
    text = str(value).strip()
    if not text:
        raise _Rejected
    return text


def _enum(*allowed: str) -> Callable[[Any], str]:
    def check(value: Any) -> str:
        text = str(value).strip()
        if text not in allowed:
            raise _Rejected
        return text

    return check


# 选项名 -> (SafeOptions 字段, 校验函数)
VALIDATORS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "papersize": ("papersize", _papersize),
    "division": ("division", _int_range(9, 15)),
    "fontsize": ("fontsize", _int_range(9, 12)),
    "mainfont": ("mainfont", _nonempty),
    "bcor": ("bcor", _measure),
    "cover": ("cover", _nonempty),
    "coverwidth": ("coverwidth", _coverwidth),
    "opening": ("opening", _enum("any", "right")),
    "notoc": ("notoc", _truthy),
}


def prepare_tex_tokens(
    doc: IDocument,
    options: Mapping[str, Any] | None = None,
    arguments: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    生成 LaTeX 模板变量

    Args:
        doc: 文档模型
        options: 编译单元的持久选项
        arguments: 单次调用参数（覆盖 options）

    Returns:
        {"doc": 文档, "options": 合并后的原始选项, "safe_options": 校验后的选项dict}
    """
    tokens: dict[str, Any] = dict(options or {})
    tokens.update(arguments or {})

    safe = SafeOptions()
    for key, (field, check) in VALIDATORS.items():
        value = tokens.get(key)
        if value is None or value == "":
            continue
        try:
            setattr(safe, field, check(value))
        except _Rejected:
            logger.warning(f"选项 {key} 的值不合法: {value!r}，使用默认值 {getattr(safe, field)!r}")

    # 单面/双面
    oneside = _truthy(tokens.get("oneside", False))
    twoside = _truthy(tokens.get("twoside", False))
    if oneside and twoside:
        logger.warning("同时指定了 oneside 和 twoside，使用默认值 oneside")
    elif oneside:
        safe.paging = "oneside"
    elif twoside:
        safe.paging = "twoside"

    # 无目录时才允许去掉封面页
    if not doc.wants_toc:
        if _truthy(doc.header_as_latex.get("nocoverpage", "")) or _truthy(tokens.get("nocoverpage", False)):
            safe.nocoverpage = True
            safe.documentclass = "scrartcl"

    return {
        "doc": doc,
        "options": tokens,
        "safe_options": safe.model_dump(),
    }
