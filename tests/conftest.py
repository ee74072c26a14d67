"""
pytest 配置与公共 fixtures

使用方式：
    def test_something(write_muse, make_unit):
        unit = make_unit(write_muse("doc", "#title T\\n\\nbody"))
        assert unit.open()
"""

from __future__ import annotations

import sys
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import pytest

from fakes import FakeBackend
from muse_compile.config import RuntimeConfig
from muse_compile.doc_gen import Typesetter
from muse_compile.pipeline import CompileUnit
from muse_compile.templates import TemplateEngine

# 模拟排版器：记录遍数，按参数写入 PDF/日志并以指定退出码结束
TYPESETTER_STUB = '''
import pathlib
import sys

from pypdf import PdfWriter

source = pathlib.Path(sys.argv[-1])
passes = source.with_suffix(".passes")
count = int(passes.read_text()) + 1 if passes.exists() else 1
passes.write_text(str(count))

print("This is a fake typesetter")
print("quiet line before any error")
print({marker!r})
print("line after the marker")

writer = PdfWriter()
for _ in range({pages}):
    writer.add_blank_page(width=298, height=420)
with open(source.with_suffix(".pdf"), "wb") as f:
    writer.write(f)
if {write_log}:
    source.with_suffix(".log").write_bytes({log!r})
sys.exit({exit_code})
'''


# ============================================================================
# 配置 Fixtures
# ============================================================================

@pytest.fixture
def runtime_config() -> RuntimeConfig:
    """运行期配置"""
    return RuntimeConfig()


# ============================================================================
# 文件 Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def write_muse(temp_dir: Path) -> Callable[..., Path]:
    """在临时目录写入源文件"""

    def write(name: str, text: str) -> Path:
        path = temp_dir / f"{name}.muse"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return write


@pytest.fixture
def sample_muse(write_muse: Callable[..., Path]) -> Path:
    """示例源文件（有标题与正文）"""
    return write_muse(
        "sample",
        "#title Sample & Title\n#author Anonymous\n#lang en\n\n"
        "Opening paragraph.\n\n* First\n\nFirst text.\n\n* Second\n\nSecond text.\n",
    )


# ============================================================================
# 协作方 Fixtures
# ============================================================================

@pytest.fixture
def backend() -> FakeBackend:
    """测试文档后端"""
    return FakeBackend()


@pytest.fixture
def engine() -> TemplateEngine:
    """内置模板引擎"""
    return TemplateEngine()


@pytest.fixture
def make_typesetter(temp_dir: Path) -> Callable[..., Typesetter]:
    """生成使用模拟脚本的排版器"""

    def make(
        exit_code: int = 0,
        write_log: bool = True,
        pages: int = 3,
        log: bytes = b"This is a log\n",
        marker: str = "! Undefined control sequence.",
    ) -> Typesetter:
        script = temp_dir / f"fake_typesetter_{exit_code}_{int(write_log)}_{pages}.py"
        script.write_text(
            TYPESETTER_STUB.format(
                marker=marker,
                pages=pages,
                write_log=write_log,
                log=log,
                exit_code=exit_code,
            ),
            encoding="utf-8",
        )
        return Typesetter(command=[sys.executable, str(script)])

    return make


@pytest.fixture
def make_unit(
    backend: FakeBackend,
    engine: TemplateEngine,
    runtime_config: RuntimeConfig,
) -> Callable[..., CompileUnit]:
    """为源文件创建编译单元"""

    def make(source: Path, **kwargs) -> CompileUnit:
        kwargs.setdefault("backend", backend)
        kwargs.setdefault("config", runtime_config)
        return CompileUnit(str(source)[: -len(".muse")], ".muse", engine, **kwargs)

    return make
