"""
产物生成模块 - 模板变量/排版/拼版/EPUB

子模块：
- tokens: LaTeX 模板变量准备与选项校验
- typesetter: XeLaTeX 多遍编译
- imposition: 小册子拼版
- epub: EPUB 生成
"""

from .epub import EpubBuilder
from .imposition import Imposer
from .tokens import prepare_tex_tokens
from .typesetter import Typesetter

__all__ = [
    "EpubBuilder",
    "Imposer",
    "Typesetter",
    "prepare_tex_tokens",
]
