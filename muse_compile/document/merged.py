"""
虚拟合并文档 - 把多个源文档呈现为一个可编译单元

职责：
1. 头部字段只取调用方传入的值（语言/断字取第一个文档）
2. 统计其他语言（去重）
3. 拼接 LaTeX 正文，语言变化处插入 \\selectlanguage
4. EPUB 片段前插入每个文档的标题页，目录条目统一重新编号
5. 附件取并集

测试要点：
- test_other_languages: 其他语言集合
- test_language_switches: 语言切换指令的数量与顺序
- test_language_alias: 别名语言不触发切换
- test_toc_reindex: 目录重新编号与 "start body" 补全
- test_toc_mismatch: 数量不符时报内部一致性错误
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from ..interfaces import IDocument, IDocumentBackend, StructuralError
from ..models import TocEntry, reconcile_toc
from .languages import typeset_language

if TYPE_CHECKING:
    from ..templates import TemplateEngine

logger = logging.getLogger(__name__)


class VirtualDocument(IDocument):
    """多文档合并（构造后不可变）"""

    def __init__(
        self,
        files: Iterable[str | Path],
        backend: IDocumentBackend,
        engine: TemplateEngine | None = None,
        **headers: str,
    ):
        files = tuple(Path(f) for f in files or ())
        if not files:
            raise StructuralError("缺少合并文件列表")
        if backend is None:
            raise StructuralError("缺少文档后端")

        if engine is None:
            from ..templates import TemplateEngine

            engine = TemplateEngine()

        self._files = files
        self._engine = engine
        self._docs: tuple[IDocument, ...] = tuple(backend.load(f) for f in files)

        main = self._docs[0]
        self._language = main.language
        self._language_code = main.language_code
        self._hyphenation = main.hyphenation

        languages: dict[str, None] = {}
        language_codes: dict[str, None] = {}
        for doc in self._docs[1:]:
            if doc.language != self._language:
                languages[doc.language] = None
                language_codes[doc.language_code] = None
        self._other_languages = tuple(sorted(languages))
        self._other_language_codes = tuple(sorted(language_codes))

        self._headers = MappingProxyType(dict(headers))
        self._html_headers = MappingProxyType(
            {k: backend.format_line("html", v) for k, v in headers.items()}
        )
        self._latex_headers = MappingProxyType(
            {k: backend.format_line("ltx", v) for k, v in headers.items()}
        )
        logger.debug(f"合并文档: {', '.join(str(f) for f in files)}")

    # === 语言 ===

    @property
    def language(self) -> str:
        return self._language

    @property
    def language_code(self) -> str:
        return self._language_code

    @property
    def hyphenation(self) -> str:
        return self._hyphenation

    @property
    def other_languages(self) -> list[str]:
        return list(self._other_languages)

    @property
    def other_language_codes(self) -> list[str]:
        return list(self._other_language_codes)

    # === 头部 ===

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    @property
    def header_as_latex(self) -> dict[str, str]:
        return dict(self._latex_headers)

    @property
    def header_as_html(self) -> dict[str, str]:
        return dict(self._html_headers)

    @property
    def header_defined(self) -> dict[str, bool]:
        return {k: True for k, v in self._headers.items() if v is not None and len(str(v))}

    @property
    def wants_toc(self) -> bool:
        return True

    @property
    def is_deleted(self) -> bool:
        return False

    @property
    def files(self) -> list[Path]:
        return list(self._files)

    @property
    def docs(self) -> list[IDocument]:
        return list(self._docs)

    # === 正文 ===

    def as_latex(self) -> str:
        """拼接 LaTeX 正文，在语言变化处插入切换指令"""
        out = []
        current_language = typeset_language(self._language)
        for doc in self._docs:
            chunk = "\n\n"
            doc_language = typeset_language(doc.language)
            if doc_language != current_language:
                chunk += f"\\selectlanguage{{{doc_language}}}\n\n"
                current_language = doc_language
            chunk += self._engine.render("bare_latex", {"doc": doc})
            out.append(chunk)
        return "\n\n".join([*out, "\n"])

    def as_html(self) -> str:
        out = []
        for doc in self._docs:
            out.append(self._engine.render("title_page_html", {"doc": doc}))
            out.append(doc.as_html())
        return "\n".join(out)

    def as_splat_html(self) -> list[str]:
        """每个文档的片段前插入一个标题页片段"""
        out: list[str] = []
        for doc in self._docs:
            out.append(self._engine.render("title_page_html", {"doc": doc}))
            out.extend(doc.as_splat_html())
        return out

    def toc_as_html(self) -> str:
        items = []
        for entry in self.raw_html_toc():
            items.append(
                f'<p class="tableofcontentline toclevel{entry.level}">'
                f'<a href="#toc{entry.index}">{entry.label}</a></p>'
            )
        return "\n".join(items)

    def raw_html_toc(self) -> list[TocEntry]:
        """
        合并目录

        每个文档先加一个1级标题条目；文档自身片段比条目多一个时补
        2级 "start body"；所有条目按顺序重新编号。
        """
        out: list[TocEntry] = []
        index = 0
        for doc in self._docs:
            out.append(TocEntry(index=index, level=1, label=doc.header_as_html.get("title", "")))
            index += 1
            entries = reconcile_toc(len(doc.as_splat_html()), doc.raw_html_toc(), level=2)
            for entry in entries:
                out.append(TocEntry(index=index, level=entry.level, label=entry.label))
                index += 1
        return out

    def attachments(self) -> list[str]:
        found: set[str] = set()
        for doc in self._docs:
            found.update(doc.attachments())
        return sorted(found)
