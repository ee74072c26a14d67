"""
目录条目模型与片段/目录对账

文档渲染器切分出的 HTML 片段数应等于目录条目数，或恰好多一个
（正文开头在第一个标题之前）。多一个时补一个 "start body" 条目；
其他差值属于渲染器与目录提取器不一致，直接报错。
"""

from __future__ import annotations

from pydantic import BaseModel

from ..interfaces import InternalConsistencyError

START_BODY_LABEL = "start body"


class TocEntry(BaseModel):
    """目录条目"""
    index: int
    level: int
    label: str


def reconcile_toc(piece_count: int, entries: list[TocEntry], level: int = 0) -> list[TocEntry]:
    """
    对账片段数与目录条目数

    Args:
        piece_count: HTML 片段数量
        entries: 文档自身的目录条目
        level: 补充条目使用的层级

    Returns:
        条目列表（必要时在开头补充 "start body"）

    Raises:
        InternalConsistencyError: 差值不是0或1
    """
    missing = piece_count - len(entries)
    if missing > 1 or missing < 0:
        raise InternalConsistencyError(
            f"片段与目录条目数量不一致: {piece_count} 个片段, {len(entries)} 个条目 (差值 {missing})"
        )
    if missing == 1:
        return [TocEntry(index=0, level=level, label=START_BODY_LABEL), *entries]
    return list(entries)
