"""
模板选项模型 - 内置模板只使用经过校验的 SafeOptions
"""

from __future__ import annotations

from pydantic import BaseModel


class SafeOptions(BaseModel):
    """校验后的 LaTeX 模板选项（默认值即回退值）"""

    papersize: str = "210mm:11in"
    documentclass: str = "scrbook"
    division: int = 12
    fontsize: int = 10
    mainfont: str = "Linux Libertine O"
    paging: str = "oneside"
    bcor: str = "0mm"
    cover: str = ""
    coverwidth: float = 1.0
    opening: str = "any"
    nocoverpage: bool = False
    notoc: bool = False
