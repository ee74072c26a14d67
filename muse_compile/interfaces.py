"""
模块接口契约 - 定义各协作方的抽象接口

设计原则：
1. 编译核心只通过接口与文档模型/排版器/拼版器交互
2. 每个接口定义清晰的输入输出类型
3. 便于单元测试和mock替换

使用方式：
    from muse_compile.interfaces import IDocumentBackend

    class MyBackend(IDocumentBackend):
        def load(self, path: Path) -> IDocument:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import TocEntry


# ============================================================================
# 文档模型接口
# ============================================================================

class IDocument(ABC):
    """文档模型接口 - 单个源文档（或合并后的虚拟文档）的只读契约"""

    @property
    @abstractmethod
    def language(self) -> str:
        """主语言（英文名称，如 russian）"""
        ...

    @property
    @abstractmethod
    def language_code(self) -> str:
        """主语言代码（如 ru）"""
        ...

    @property
    @abstractmethod
    def hyphenation(self) -> str:
        """断字表"""
        ...

    @property
    def other_languages(self) -> list[str]:
        """其他语言名称（空列表表示单语文档）"""
        return []

    @property
    def other_language_codes(self) -> list[str]:
        """其他语言代码"""
        return []

    @property
    @abstractmethod
    def header_as_latex(self) -> dict[str, str]:
        """LaTeX 转义后的头部字段"""
        ...

    @property
    @abstractmethod
    def header_as_html(self) -> dict[str, str]:
        """HTML 转义后的头部字段"""
        ...

    @property
    @abstractmethod
    def header_defined(self) -> dict[str, bool]:
        """非空头部字段"""
        ...

    @property
    @abstractmethod
    def wants_toc(self) -> bool:
        ...

    @property
    def wants_postamble(self) -> bool:
        """是否需要尾页（作者/标题/来源）"""
        return True

    @property
    def is_deleted(self) -> bool:
        return False

    @abstractmethod
    def as_latex(self) -> str:
        """正文（LaTeX）"""
        ...

    @abstractmethod
    def as_html(self) -> str:
        """正文（HTML）"""
        ...

    @abstractmethod
    def as_splat_html(self) -> list[str]:
        """
        正文切分为 HTML 片段（EPUB 使用）

        Returns:
            片段列表，数量应等于 raw_html_toc() 条目数或多一个
        """
        ...

    @abstractmethod
    def toc_as_html(self) -> str:
        """HTML 目录（无目录时返回空串）"""
        ...

    @abstractmethod
    def raw_html_toc(self) -> list[TocEntry]:
        """目录条目"""
        ...

    @abstractmethod
    def attachments(self) -> list[str]:
        """附件文件路径列表"""
        ...


class IDocumentBackend(ABC):
    """文档模型后端接口 - 负责解析标记语言（不在本项目范围内）"""

    @abstractmethod
    def load(self, path: Path) -> IDocument:
        """
        解析源文件

        Args:
            path: 源文件路径

        Returns:
            文档模型实例
        """
        ...

    def scan_header(self, path: Path) -> dict[str, str]:
        """快速扫描头部（不解析正文）"""
        from .document.header import fast_scan_header

        return fast_scan_header(path)

    @abstractmethod
    def format_line(self, fmt: str, text: str) -> str:
        """
        将一行标记文本渲染为目标格式

        Args:
            fmt: "html" 或 "ltx"
            text: 原始文本
        """
        ...


# ============================================================================
# 外部工具接口
# ============================================================================

class ITypesetter(ABC):
    """排版器接口 - 驱动外部 TeX 进程"""

    @abstractmethod
    def run(self, source: Path) -> Path | None:
        """
        多遍编译 LaTeX 源文件

        Returns:
            PDF 路径；排版器无法启动时返回 None

        Raises:
            BuildError: 编译失败且已生成日志
        """
        ...


class IImposer(ABC):
    """拼版器接口"""

    @abstractmethod
    def impose(
        self,
        source: Path,
        outfile: Path,
        schema: str = "2up",
        signature: str = "40-80",
        cover: bool = True,
    ) -> Path:
        """
        生成小册子拼版 PDF

        Args:
            source: 独立 PDF
            outfile: 输出路径
            schema: 拼版方案
            signature: 帖大小范围（如 "40-80"）
            cover: 保持最后一页为封底
        """
        ...


class IPackager(ABC):
    """打包器接口"""

    @abstractmethod
    def package(self, unit: Any) -> Path:
        """打包编译单元的产物，返回归档路径"""
        ...


# ============================================================================
# 异常定义
# ============================================================================

class MuseCompileError(Exception):
    """基础异常"""
    pass


class StructuralError(MuseCompileError):
    """结构/编程错误（缺少参数、清理源文件等），不重试"""
    pass


class InternalConsistencyError(StructuralError):
    """内部一致性错误（目录条目与片段数量不符）"""
    pass


class CompileIOError(MuseCompileError):
    """环境错误（锁文件/产物读写失败）"""

    def __init__(self, path: Path | str, cause: object):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"{path}: {cause}")


class BuildError(MuseCompileError):
    """构建错误（排版失败、模板展开失败）"""
    pass


class TemplateError(BuildError):
    """模板展开错误"""

    def __init__(self, template: str, message: str):
        self.template = template
        self.message = message
        super().__init__(f"模板 {template} 展开失败: {message}")
