"""
编译器 - 驱动多个编译单元

职责：
1. 按固定顺序生成请求的格式（拼版格式先于 tex/pdf）
2. 每个单元 open → render... → close，失败隔离（单文件失败不影响其他文件）
3. 递归查找需要重新编译的源文件（没有完成标记或标记比源文件旧）
4. 合并多个源文件为虚拟单元编译

测试要点：
- test_compile_formats_in_order: 格式顺序
- test_compile_failure_isolated: 失败隔离与错误收集
- test_backend_exception_isolated: 后端抛出非领域异常时继续编译后续文件
- test_compile_busy_skipped: 被锁定的单元跳过
- test_find_new_muse_files: 递归查找
- test_compile_virtual: 虚拟合并单元
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from ..config import RuntimeConfig, get_config
from ..document import VirtualDocument
from ..interfaces import IDocumentBackend, IImposer, ITypesetter, MuseCompileError, StructuralError
from ..models import COMPILE_ORDER, OutputFormat
from ..templates import TemplateEngine, TemplateSet
from .unit import CompileUnit

logger = logging.getLogger(__name__)


class Compiler:
    """编译器"""

    def __init__(
        self,
        backend: IDocumentBackend,
        formats: Iterable[OutputFormat | str] | None = None,
        extra: dict[str, Any] | None = None,
        ttdir: str | Path | None = None,
        standalone: bool | None = None,
        cleanup: bool | None = None,
        report_failure: Callable[[str], None] | None = None,
        typesetter: ITypesetter | None = None,
        imposer: IImposer | None = None,
        config: RuntimeConfig | None = None,
    ):
        if backend is None:
            raise StructuralError("缺少文档后端")
        self.config = config or get_config()
        self.backend = backend

        requested = {OutputFormat(f) for f in formats} if formats else set(COMPILE_ORDER)
        self.formats = [f for f in COMPILE_ORDER if f in requested]

        self.extra = dict(extra or {})
        self.templates = TemplateSet(ttdir if ttdir is not None else self.config.compile.ttdir)
        self.engine = TemplateEngine(self.templates)
        self.suffix = self.config.compile.source_suffix
        self.standalone = self.config.compile.standalone if standalone is None else standalone
        self.cleanup = self.config.compile.cleanup if cleanup is None else cleanup
        self.report_failure = report_failure
        self.typesetter = typesetter
        self.imposer = imposer
        self.errors: list[str] = []

    # === 编译单元 ===

    def unit_for(self, path: str | Path) -> CompileUnit:
        """为源文件创建编译单元"""
        text = str(path)
        if not text.endswith(self.suffix):
            raise StructuralError(f"源文件扩展名应为 {self.suffix}: {path}")
        return CompileUnit(
            text[: -len(self.suffix)],
            self.suffix,
            self.engine,
            backend=self.backend,
            standalone=self.standalone,
            options=self.extra,
            typesetter=self.typesetter,
            imposer=self.imposer,
            config=self.config,
        )

    def virtual_unit_for(self, name: str | Path, files: Iterable[str | Path], **headers: str) -> CompileUnit:
        """为多个源文件创建虚拟编译单元"""
        files = list(files)
        return CompileUnit(
            name,
            self.suffix,
            self.engine,
            document_factory=lambda: VirtualDocument(files, self.backend, self.engine, **headers),
            virtual=True,
            standalone=self.standalone,
            options=self.extra,
            typesetter=self.typesetter,
            imposer=self.imposer,
            config=self.config,
        )

    # === 编译 ===

    def compile(self, *paths: str | Path) -> list[str]:
        """编译多个源文件，返回成功编译的单元名"""
        done = []
        for path in paths:
            try:
                unit = self.unit_for(path)
            except MuseCompileError as e:
                self._record_failure(str(path), str(e))
                continue
            if self.run(unit):
                done.append(unit.name)
        return done

    def compile_virtual(self, name: str | Path, files: Iterable[str | Path], **headers: str) -> bool:
        """合并多个源文件编译为一个单元"""
        return self.run(self.virtual_unit_for(name, files, **headers))

    def run(self, unit: CompileUnit, cleanup: bool | None = None) -> bool:
        """
        执行单个编译单元

        Returns:
            True 表示成功（包括已删除的单元）
        """
        try:
            if not unit.open():
                logger.warning(f"跳过被锁定的单元: {unit.name}")
                return False
        except MuseCompileError as e:
            self._record_failure(unit.name, str(e))
            return False
        except Exception as e:
            logger.exception(f"无法打开编译单元: {unit.name}")
            self._record_failure(unit.name, repr(e))
            return False

        logger.info(f"开始编译: {unit.name}")
        error = None
        try:
            for fmt in self.formats:
                logger.debug(f"[{unit.name}] 生成 {fmt.value}")
                unit.render(fmt)
        except MuseCompileError as e:
            error = str(e)
        except Exception as e:
            # 后端或第三方库的异常同样只影响当前单元
            logger.exception(f"编译失败: {unit.name}")
            error = repr(e)

        unit.close(error=error)
        if error:
            self._record_failure(unit.name, error)

        if self.cleanup if cleanup is None else cleanup:
            unit.cleanup()
        return error is None

    def _record_failure(self, name: str, error: str) -> None:
        logger.error(f"编译失败 {name}: {error}")
        self.errors.append(f"{name}: {error}")
        if self.report_failure:
            self.report_failure(name)

    # === 递归 ===

    def find_new_muse_files(self, directory: str | Path) -> list[Path]:
        """查找没有完成标记或标记比源文件旧的源文件"""
        directory = Path(directory)
        if not directory.is_dir():
            raise StructuralError(f"{directory} 不是目录")

        found = []
        for root, dirs, files in os.walk(directory):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for filename in sorted(files):
                if filename.startswith(".") or not filename.endswith(self.suffix):
                    continue
                source = Path(root) / filename
                status = Path(str(source)[: -len(self.suffix)] + ".status")
                if not status.exists() or status.stat().st_mtime < source.stat().st_mtime:
                    found.append(source)
        return found

    def recursive_compile(self, directory: str | Path) -> list[Path]:
        """递归编译（保留完成标记，避免下次重复编译）"""
        found = self.find_new_muse_files(directory)
        for source in found:
            try:
                unit = self.unit_for(source)
            except MuseCompileError as e:
                self._record_failure(str(source), str(e))
                continue
            self.run(unit, cleanup=False)
        return found

    def purge(self, *paths: str | Path) -> None:
        """删除源文件的全部产物"""
        for path in paths:
            self.unit_for(path).purge_all()
