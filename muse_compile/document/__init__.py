"""
文档层 - 头部扫描与多文档虚拟合并

文档标记语言的解析由外部后端（IDocumentBackend）提供。
"""

from .header import fast_scan_header, is_deleted_header
from .languages import LANGUAGE_ALIASES, typeset_language
from .merged import VirtualDocument

__all__ = [
    "fast_scan_header",
    "is_deleted_header",
    "LANGUAGE_ALIASES",
    "typeset_language",
    "VirtualDocument",
]
