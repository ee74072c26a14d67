"""
EPUB 生成器

职责：
1. 片段/目录对账（多一个片段时补 "start body"）
2. 元数据（作者/标题/日期/语言/来源/说明）与标题页
3. 每个片段一个 XHTML，按顺序生成导航
4. 嵌入样式表与图片附件（仅 jpeg/png）

依赖：
- ebooklib: EPUB 容器格式

测试要点：
- test_epub_pieces: 片段、导航与元数据
- test_epub_bad_attachment: 非法附件
- test_attachment_uid: 附件清单id唯一
- test_epub_write_failure: 写入失败不留下半成品
"""

from __future__ import annotations

import html
import logging
import os
import re
import tempfile
import uuid
from pathlib import Path
from typing import Any

from ebooklib import epub

from ..interfaces import BuildError, CompileIOError, IDocument
from ..models import reconcile_toc
from ..templates import TemplateEngine, strip_tags

logger = logging.getLogger(__name__)

ATTACHMENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


def clean_html(value: Any) -> str:
    """去标签并还原实体（用于元数据与导航标签）"""
    return html.unescape(strip_tags(value))


def attachment_uid(name: str) -> str:
    """由附件相对路径生成清单id（不同扩展名或目录下的同名文件不冲突）"""
    return "attachment_" + re.sub(r"[^A-Za-z0-9_-]", "_", name)


class EpubBuilder:
    """EPUB 生成器"""

    def __init__(self, engine: TemplateEngine):
        self.engine = engine

    def build(
        self,
        doc: IDocument,
        outfile: Path,
        options: dict[str, Any] | None = None,
        base_dir: Path | None = None,
    ) -> Path:
        """
        生成 EPUB

        Args:
            doc: 文档模型
            outfile: 输出路径
            options: 原始模板选项
            base_dir: 附件相对路径的基准目录

        Returns:
            输出路径
        """
        options = options or {}
        base_dir = base_dir or outfile.parent
        pieces = doc.as_splat_html()
        toc = reconcile_toc(len(pieces), doc.raw_html_toc())

        header = doc.header_as_html
        defined = doc.header_defined

        book = epub.EpubBook()
        book.set_identifier(str(uuid.uuid5(uuid.NAMESPACE_URL, f"{outfile.name}:{header.get('title', '')}")))
        book.set_language(doc.language_code)

        css = epub.EpubItem(
            uid="stylesheet",
            file_name="stylesheet.css",
            media_type="text/css",
            content=self.engine.render("css", {}).encode("utf-8"),
        )
        book.add_item(css)

        # 标题页与元数据
        titlepage = ""
        if defined.get("author"):
            book.add_author(clean_html(header["author"]))
            titlepage += f"<h2>{header['author']}</h2>\n"
        if defined.get("title"):
            book.set_title(clean_html(header["title"]))
            titlepage += f"<h1>{header['title']}</h1>\n"
        else:
            book.set_title("Untitled")
        if defined.get("subtitle"):
            titlepage += f"<h2>{header['subtitle']}</h2>\n"
        if defined.get("date"):
            year = re.search(r"([0-9]{4})", header["date"])
            if year:
                book.add_metadata("DC", "date", year.group(1))
            titlepage += f"<h3>{header['date']}</h3>"
        if defined.get("source"):
            book.add_metadata("DC", "source", clean_html(header["source"]))
            titlepage += f"<p>{header['source']}</p>"
        if defined.get("notes"):
            book.add_metadata("DC", "description", clean_html(header["notes"]))
            titlepage += f"<p>{header['notes']}</p>"

        first = self._page(
            "titlepage.xhtml",
            strip_tags(header.get("title", "")),
            titlepage,
            options,
            doc.language_code,
            css,
        )
        book.add_item(first)
        nav = [epub.Link("titlepage.xhtml", "titlepage", "titlepage")]
        spine: list[Any] = [first]

        for position, (piece, entry) in enumerate(zip(pieces, toc)):
            filename = f"piece{position:03d}.xhtml"
            title = f"{entry.level} {entry.label}"
            item = self._page(filename, strip_tags(title), piece, options, doc.language_code, css)
            book.add_item(item)
            spine.append(item)
            nav.append(epub.Link(filename, clean_html(entry.label) or filename, f"piece{position:03d}"))

        for attachment in doc.attachments():
            book.add_item(self._attachment(attachment, base_dir))

        book.toc = nav
        book.spine = spine
        book.add_item(epub.EpubNcx())
        book.add_item(epub.EpubNav())

        self._write(book, outfile)
        logger.debug(f"EPUB已生成: {outfile}")
        return outfile

    @staticmethod
    def _write(book: epub.EpubBook, outfile: Path) -> None:
        """先写同目录临时文件再替换，失败不留下半成品"""
        directory = outfile.parent if str(outfile.parent) else Path(".")
        fd, tmp_name = tempfile.mkstemp(prefix=f".{outfile.name}.", suffix=".tmp", dir=directory)
        os.close(fd)
        try:
            epub.write_epub(tmp_name, book, {})
            os.replace(tmp_name, outfile)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise CompileIOError(outfile, e) from e
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _page(
        self,
        filename: str,
        title: str,
        text: str,
        options: dict[str, Any],
        language: str,
        css: epub.EpubItem,
    ) -> epub.EpubHtml:
        xhtml = self.engine.render("minimal_html", {"title": title, "text": text, "options": options})
        page = epub.EpubHtml(title=title, file_name=filename, lang=language)
        page.content = xhtml.encode("utf-8")
        page.add_item(css)
        return page

    @staticmethod
    def _attachment(name: str, base_dir: Path) -> epub.EpubItem:
        path = base_dir / name
        if not path.is_file():
            raise BuildError(f"附件不存在: {name}")
        media_type = ATTACHMENT_TYPES.get(path.suffix.lower())
        if media_type is None:
            raise BuildError(f"不支持的附件类型: {name}")
        try:
            content = path.read_bytes()
        except OSError as e:
            raise CompileIOError(path, e) from e
        return epub.EpubItem(uid=attachment_uid(name), file_name=name, media_type=media_type, content=content)
