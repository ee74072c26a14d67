"""
编译单元 - 单个（或虚拟合并）源文档的编译生命周期

状态流转：unknown --open--> active/deleted --close--> closed/failed

职责：
1. open: 建议性锁（持有进程存活才有效）、头部检查、已删除时清理全部产物
2. 每种输出格式：清理旧产物 → 惰性构建文档模型 → 展开模板 → 原子写入
3. pdf: 驱动排版器；a4_pdf/lt_pdf: 半幅 tex → pdf → 拼版
4. close: 删除锁、写完成标记

测试要点：
- test_open_busy: 有效锁时拒绝打开
- test_open_stale_lock: 失效锁视为不存在
- test_open_deleted: 已删除文档清理全部产物
- test_purge_idempotent / test_purge_source_suffix
- test_template_failure_leaves_no_file
- test_close_writes_status
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..config import RuntimeConfig, get_config
from ..doc_gen import EpubBuilder, Imposer, Typesetter, prepare_tex_tokens
from ..document import fast_scan_header, is_deleted_header
from ..interfaces import (
    BuildError,
    CompileIOError,
    IDocument,
    IDocumentBackend,
    IImposer,
    IPackager,
    ITypesetter,
    StructuralError,
)
from ..models import (
    LATEX_EXTENSIONS,
    PURGED_EXTENSIONS,
    LockRecord,
    OutputFormat,
    StatusRecord,
    StatusState,
    UnitState,
)
from ..templates import TemplateEngine, TemplateSet

logger = logging.getLogger(__name__)


class CompileUnit:
    """编译单元"""

    def __init__(
        self,
        name: str | Path,
        suffix: str,
        templates: TemplateSet | TemplateEngine,
        *,
        backend: IDocumentBackend | None = None,
        document_factory: Callable[[], IDocument] | None = None,
        virtual: bool = False,
        standalone: bool = False,
        options: dict[str, Any] | None = None,
        typesetter: ITypesetter | None = None,
        imposer: IImposer | None = None,
        packager: IPackager | None = None,
        config: RuntimeConfig | None = None,
    ):
        for key, value in (("name", name), ("suffix", suffix), ("templates", templates)):
            if not value:
                raise StructuralError(f"缺少参数: {key}")
        if backend is None and document_factory is None:
            raise StructuralError("缺少参数: backend 或 document_factory")

        self.name = str(name)
        self.suffix = suffix
        self.virtual = virtual
        self.standalone = standalone
        self.config = config or get_config()
        self.engine = templates if isinstance(templates, TemplateEngine) else TemplateEngine(templates)
        self.backend = backend
        self._document_factory = document_factory or (lambda: backend.load(self.source_path))
        self._options = dict(options or {})
        self._typesetter = typesetter
        self._imposer = imposer
        self._packager = packager

        self.state = UnitState.UNKNOWN
        self._document: IDocument | None = None
        self._document_lock = threading.Lock()
        self._rendered: list[str] = []

    # === 路径 ===

    def path_for(self, ext: str) -> Path:
        return Path(f"{self.name}{ext}")

    @property
    def base_dir(self) -> Path:
        return Path(self.name).parent

    @property
    def source_path(self) -> Path:
        return self.path_for(self.suffix)

    @property
    def lock_path(self) -> Path:
        return self.path_for(".lock")

    @property
    def status_path(self) -> Path:
        return self.path_for(".status")

    @property
    def options(self) -> dict[str, Any]:
        """模板选项（返回副本）"""
        return dict(self._options)

    @property
    def is_deleted(self) -> bool:
        return self.state == UnitState.DELETED

    @property
    def rendered_formats(self) -> list[str]:
        return list(self._rendered)

    # === 协作方（惰性） ===

    @property
    def typesetter(self) -> ITypesetter:
        if self._typesetter is None:
            self._typesetter = Typesetter(config=self.config.typesetter)
        return self._typesetter

    @property
    def imposer(self) -> IImposer:
        if self._imposer is None:
            self._imposer = Imposer()
        return self._imposer

    @property
    def packager(self) -> IPackager:
        if self._packager is None:
            from .packager import ZipPackager

            self._packager = ZipPackager()
        return self._packager

    @property
    def document(self) -> IDocument | None:
        """文档模型（每个单元最多构建一次；已删除时为None）"""
        if self.is_deleted:
            return None
        with self._document_lock:
            if self._document is None:
                self._document = self._document_factory()
            return self._document

    # === 生命周期 ===

    def open(self) -> bool:
        """
        打开编译单元

        Returns:
            False 表示被其他存活进程锁定（不改变状态）

        Raises:
            StructuralError: 源文件不是有效文档
            CompileIOError: 锁文件读写失败或格式错误
        """
        lock = LockRecord.read(self.lock_path)
        if lock is not None:
            if lock.is_alive():
                logger.warning(f"{self.name} 已被进程 {lock.pid} 锁定（{lock.locked_at}）")
                return False
            logger.info(f"忽略失效锁: {self.lock_path}（进程 {lock.pid} 已不存在）")

        LockRecord().write(self.lock_path)
        try:
            self._check_status()
        except Exception:
            self._remove_lock()
            raise
        return True

    def _check_status(self) -> None:
        deleted = False
        if not self.virtual:
            if not self.source_path.exists():
                logger.info(f"源文件已不存在: {self.source_path}")
                deleted = True
            else:
                scan = self.backend.scan_header if self.backend else fast_scan_header
                header = scan(self.source_path)
                if not header:
                    logger.error(f"不是有效的源文件: {self.source_path}")
                    raise StructuralError(f"不是有效的源文件: {self.source_path}")
                deleted = is_deleted_header(header)

        if deleted:
            self.purge_all()
            self._unlink(self.status_path)
            self.state = UnitState.DELETED
        else:
            self.state = UnitState.ACTIVE

    def close(self, error: str | None = None) -> None:
        """删除锁并写入完成标记"""
        if self.state == UnitState.UNKNOWN:
            raise StructuralError(f"{self.name} 未打开")
        self._remove_lock()

        if self.state == UnitState.DELETED:
            status = StatusState.DELETED
        elif error:
            status = StatusState.FAILED
            self.state = UnitState.FAILED
        else:
            status = StatusState.OK
            self.state = UnitState.CLOSED
        StatusRecord(state=status, formats=self._rendered, error=error).write(self.status_path)

    def cleanup(self) -> None:
        """只删除完成标记（强制下次重新编译）"""
        if self.status_path.exists():
            self._unlink(self.status_path)
        else:
            logger.info(f"找不到状态文件: {self.status_path.resolve()}")

    def _remove_lock(self) -> None:
        self._unlink(self.lock_path)

    # === 清理 ===

    def purge(self, *exts: str) -> None:
        """按扩展名删除产物（幂等；清理源文件扩展名属于编程错误）"""
        for ext in exts:
            if ext == self.suffix:
                raise StructuralError(f"禁止清理源文件: {self.path_for(ext)}")
            self._unlink(self.path_for(ext))

    def purge_all(self) -> None:
        self.purge(*PURGED_EXTENSIONS)

    def purge_latex(self) -> None:
        self.purge(*LATEX_EXTENSIONS)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise CompileIOError(path, e) from e

    # === 输出格式 ===

    def render(self, fmt: OutputFormat | str) -> Path | None:
        """
        生成一种输出格式

        Returns:
            产物路径；已删除或排版器无法启动时返回None
        """
        fmt = OutputFormat(fmt)
        handlers: dict[OutputFormat, Callable[[], Path | None]] = {
            OutputFormat.TEX: self.tex,
            OutputFormat.PDF: self.pdf,
            OutputFormat.A4_PDF: self.a4_pdf,
            OutputFormat.LT_PDF: self.lt_pdf,
            OutputFormat.HTML: self.html,
            OutputFormat.BARE_HTML: self.bare_html,
            OutputFormat.EPUB: self.epub,
            OutputFormat.ZIP: self.zip,
        }
        result = handlers[fmt]()
        if result is not None:
            self._rendered.append(fmt.value)
        return result

    def _skip(self) -> bool:
        if self.state == UnitState.UNKNOWN:
            raise StructuralError(f"{self.name} 未打开")
        if self.state in (UnitState.CLOSED, UnitState.FAILED):
            raise StructuralError(f"{self.name} 已关闭")
        if self.is_deleted:
            logger.info(f"{self.name} 已删除，跳过")
            return True
        return False

    def html(self) -> Path | None:
        if self._skip():
            return None
        self.purge(".html")
        return self._process_template(
            "html",
            {"doc": self.document, "css": self.engine.render("css", {}), "options": self.options},
            self.path_for(".html"),
        )

    def bare_html(self) -> Path | None:
        if self._skip():
            return None
        self.purge(".bare.html")
        return self._process_template(
            "bare_html",
            {"doc": self.document, "options": self.options},
            self.path_for(".bare.html"),
        )

    def tex(self, **arguments: Any) -> Path | None:
        """
        生成 LaTeX 源

        无参数且非 standalone 时强制单面、无装订补偿：独立 PDF 忽略影响
        拼版的全局选项，拼版格式调用时带参数则保留这些选项。
        """
        if self._skip():
            return None
        if not arguments and not self.standalone:
            arguments = {"twoside": False, "oneside": True, "bcor": "0mm"}
        self.purge(".tex")
        tokens = prepare_tex_tokens(self.document, self.options, arguments)
        return self._process_template("latex", tokens, self.path_for(".tex"))

    def pdf(self) -> Path | None:
        """驱动排版器生成 PDF（缺少 .tex 时先用默认选项生成）"""
        if self._skip():
            return None
        source = self.path_for(".tex")
        if not source.exists():
            self.tex()
        if not source.exists():
            raise BuildError(f"缺少LaTeX源文件: {source}")
        self.purge_latex()
        return self.typesetter.run(source)

    def a4_pdf(self) -> Path | None:
        return self._compile_imposed("a4")

    def lt_pdf(self) -> Path | None:
        return self._compile_imposed("lt")

    def _compile_imposed(self, size: str) -> Path | None:
        """半幅 tex → pdf → 拼版"""
        if not size:
            raise StructuralError("缺少纸张尺寸")
        if self._skip():
            return None
        outfile = self.path_for(f".{size}.pdf")
        self.purge(f".{size}.pdf")
        self.tex(papersize=f"half-{size}")
        pdf = self.pdf()
        if not pdf or not pdf.exists():
            logger.error(f"PDF未生成，无法拼版: {self.name}")
            raise BuildError(f"PDF未生成，无法拼版: {self.name}")
        imposition = self.config.imposition
        return self.imposer.impose(
            pdf,
            outfile,
            schema=imposition.schema_name,
            signature=imposition.signature,
            cover=imposition.cover,
        )

    def epub(self) -> Path | None:
        if self._skip():
            return None
        self.purge(".epub")
        builder = EpubBuilder(self.engine)
        return builder.build(self.document, self.path_for(".epub"), self.options, base_dir=self.base_dir)

    def zip(self) -> Path | None:
        if self._skip():
            return None
        return self.packager.package(self)

    # === 内部 ===

    def _process_template(self, name: str, tokens: dict[str, Any], outfile: Path) -> Path:
        """展开模板并原子写入（失败不留下半成品）"""
        try:
            content = self.engine.render(name, tokens)
        except BuildError as e:
            logger.error(f"模板处理失败 {outfile}: {e}")
            raise
        self.write_atomic(outfile, content + "\n")
        return outfile

    @staticmethod
    def write_atomic(outfile: Path, content: str) -> None:
        directory = outfile.parent if str(outfile.parent) else Path(".")
        fd, tmp_name = tempfile.mkstemp(prefix=f".{outfile.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, outfile)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise CompileIOError(outfile, e) from e
