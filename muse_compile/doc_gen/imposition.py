"""
拼版器 - 把独立的半幅 PDF 拼成骑马钉小册子（2up）

职责：
1. 在帖大小范围内选取补白最少的帖大小（4的倍数）
2. 封面模式下补白插在最后一页之前，保证最后一页仍是封底
3. 每张纸正反两面各放两页

依赖：
- pypdf: 读取源PDF并合成拼版页

测试要点：
- test_signature_size: 帖大小选择
- test_page_order: 页序
- test_cover_keeps_last_page: 封面模式
- test_missing_source: 源文件不存在
- test_corrupt_source: 源文件损坏时抛出BuildError且不留下输出
"""

from __future__ import annotations

import logging
import math
import os
import tempfile
from pathlib import Path
from typing import TypeVar

from pypdf import PageObject, PdfReader, PdfWriter, Transformation
from pypdf.errors import PyPdfError

from ..interfaces import BuildError, CompileIOError, IImposer, StructuralError

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMAS = ("2up",)

T = TypeVar("T")


def parse_signature(signature: str | int) -> tuple[int, int]:
    """解析帖大小范围，如 "40-80" 或 "16" """
    text = str(signature).strip()
    try:
        if "-" in text:
            low, high = (int(p) for p in text.split("-", 1))
        else:
            low = high = int(text)
    except ValueError:
        raise StructuralError(f"帖大小格式错误: {signature}") from None
    if low <= 0 or high < low:
        raise StructuralError(f"帖大小范围错误: {signature}")
    return low, high


def choose_signature(page_count: int, low: int, high: int) -> int:
    """
    选择帖大小

    页数不足范围下限时整本为一帖；否则在范围内取补白最少者（相同时取大）。
    """
    if page_count <= 0:
        raise StructuralError("页数必须大于0")
    low4 = math.ceil(low / 4) * 4
    high4 = high // 4 * 4
    if page_count < low4 or high4 < low4:
        return math.ceil(page_count / 4) * 4

    best, best_padding = high4, None
    for size in range(low4, high4 + 1, 4):
        padding = math.ceil(page_count / size) * size - page_count
        if best_padding is None or padding <= best_padding:
            best, best_padding = size, padding
    return best


def pad_pages(pages: list[T], total: int, cover: bool) -> list[T | None]:
    """补白到 total 页；封面模式下补白插在最后一页之前，最后一页仍是封底"""
    padding: list[T | None] = [None] * (total - len(pages))
    if cover and padding:
        return [*pages[:-1], *padding, pages[-1]]
    return [*pages, *padding]


def booklet_order(page_count: int, signature: int) -> list[tuple[int | None, int | None]]:
    """
    计算拼版页序

    Returns:
        每个输出面 (左页, 右页) 的源页索引，None 表示空白
    """
    total = math.ceil(page_count / signature) * signature
    slots: list[int | None] = [i if i < page_count else None for i in range(total)]
    sides: list[tuple[int | None, int | None]] = []
    for start in range(0, total, signature):
        block = slots[start:start + signature]
        for k in range(signature // 4):
            sides.append((block[signature - 1 - 2 * k], block[2 * k]))
            sides.append((block[2 * k + 1], block[signature - 2 - 2 * k]))
    return sides


class Imposer(IImposer):
    """pypdf 实现的 2up 拼版"""

    def impose(
        self,
        source: Path,
        outfile: Path,
        schema: str = "2up",
        signature: str = "40-80",
        cover: bool = True,
    ) -> Path:
        """生成拼版 PDF"""
        if schema not in SUPPORTED_SCHEMAS:
            raise StructuralError(f"不支持的拼版方案: {schema}")
        source, outfile = Path(source), Path(outfile)
        if not source.is_file():
            raise BuildError(f"拼版源文件不存在: {source}")

        try:
            reader = PdfReader(str(source))
            pages = list(reader.pages)
        except OSError as e:
            raise CompileIOError(source, e) from e
        except PyPdfError as e:
            raise BuildError(f"无法读取拼版源文件 {source}: {e}") from e
        if not pages:
            raise BuildError(f"拼版源文件没有页面: {source}")

        low, high = parse_signature(signature)
        size = choose_signature(len(pages), low, high)
        total = math.ceil(len(pages) / size) * size

        sequence = pad_pages(pages, total, cover)

        width = float(pages[0].mediabox.width)
        height = float(pages[0].mediabox.height)

        writer = PdfWriter()
        try:
            for left, right in booklet_order(len(sequence), size):
                sheet = PageObject.create_blank_page(width=2 * width, height=height)
                for index, offset in ((left, 0.0), (right, width)):
                    page = sequence[index] if index is not None else None
                    if page is not None:
                        sheet.merge_transformed_page(page, Transformation().translate(tx=offset, ty=0))
                writer.add_page(sheet)
        except PyPdfError as e:
            raise BuildError(f"拼版失败 {source}: {e}") from e

        self._write(writer, outfile)
        logger.info(f"拼版完成: {outfile}（{len(pages)}页，帖大小{size}）")
        return outfile

    @staticmethod
    def _write(writer: PdfWriter, outfile: Path) -> None:
        """先写同目录临时文件再替换，失败不留下半成品"""
        directory = outfile.parent if str(outfile.parent) else Path(".")
        fd, tmp_name = tempfile.mkstemp(prefix=f".{outfile.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                writer.write(f)
            os.replace(tmp_name, outfile)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise CompileIOError(outfile, e) from e
        except PyPdfError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise BuildError(f"拼版输出失败 {outfile}: {e}") from e
