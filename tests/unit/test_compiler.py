"""
编译器与命令行单元测试
"""

import logging
import os
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from fakes import FakeBackend
from muse_compile import __version__
from muse_compile.cli import load_backend, main, parse_extra
from muse_compile.interfaces import StructuralError
from muse_compile.models import LockRecord, OutputFormat, StatusRecord, StatusState
from muse_compile.pipeline import Compiler


@pytest.fixture
def make_compiler(backend: FakeBackend, runtime_config) -> Callable[..., Compiler]:
    def make(**kwargs) -> Compiler:
        kwargs.setdefault("config", runtime_config)
        return Compiler(backend, **kwargs)

    return make


@pytest.fixture
def reset_logging():
    """命令行会给包根 logger 挂 handler，测试结束后移除"""
    logger = logging.getLogger("muse_compile")
    saved = list(logger.handlers)
    yield
    for handler in logger.handlers:
        if handler not in saved:
            handler.close()
    logger.handlers[:] = saved
    logger.setLevel(logging.NOTSET)


class TestCompiler:
    """编译器测试"""

    def test_compile_formats_in_order(self, make_compiler):
        """测试格式按固定顺序排列"""
        compiler = make_compiler(formats=["zip", "tex", "a4_pdf", "html"])
        assert compiler.formats == [OutputFormat.HTML, OutputFormat.A4_PDF, OutputFormat.TEX, OutputFormat.ZIP]
        assert make_compiler().formats[0] == OutputFormat.EPUB

    def test_compile(self, sample_muse: Path, make_compiler):
        """测试编译并在结束后删除完成标记"""
        compiler = make_compiler(formats=["html", "bare_html", "tex"])
        assert compiler.compile(sample_muse) == [str(sample_muse)[: -len(".muse")]]
        for ext in (".html", ".bare.html", ".tex"):
            assert sample_muse.with_suffix(ext).exists()
        assert not sample_muse.with_suffix(".status").exists()
        assert not sample_muse.with_suffix(".lock").exists()
        assert compiler.errors == []

    def test_compile_keeps_status(self, sample_muse: Path, make_compiler):
        compiler = make_compiler(formats=["html"], cleanup=False)
        compiler.compile(sample_muse)
        status = StatusRecord.read(sample_muse.with_suffix(".status"))
        assert status.state == StatusState.OK
        assert status.formats == ["html"]

    def test_compile_failure_isolated(self, write_muse, sample_muse: Path, make_compiler):
        """测试单个文件失败不影响其他文件"""
        bad = write_muse("bad", "#title Bad\n#attach nothing.png\n\ntext\n")
        reported = []
        compiler = make_compiler(formats=["html", "zip"], cleanup=False, report_failure=reported.append)
        done = compiler.compile(bad, sample_muse, "not-a-source.txt")

        assert done == [str(sample_muse)[: -len(".muse")]]
        assert reported == [str(bad)[: -len(".muse")], "not-a-source.txt"]
        assert len(compiler.errors) == 2
        assert bad.with_suffix(".html").exists()
        status = StatusRecord.read(bad.with_suffix(".status"))
        assert status.state == StatusState.FAILED
        assert status.formats == ["html"]

    def test_backend_exception_isolated(self, write_muse, sample_muse: Path, runtime_config):
        """测试后端抛出非领域异常时记录失败并继续编译后续文件"""

        class BrokenBackend(FakeBackend):
            def load(self, path: Path):
                if Path(path).stem == "broken":
                    raise ValueError("cannot parse")
                return super().load(path)

        broken = write_muse("broken", "#title Broken\n\ntext\n")
        reported = []
        compiler = Compiler(
            BrokenBackend(),
            formats=["html"],
            cleanup=False,
            report_failure=reported.append,
            config=runtime_config,
        )
        done = compiler.compile(broken, sample_muse)

        assert done == [str(sample_muse)[: -len(".muse")]]
        assert sample_muse.with_suffix(".html").exists()
        assert reported == [str(broken)[: -len(".muse")]]
        assert len(compiler.errors) == 1
        assert "cannot parse" in compiler.errors[0]
        status = StatusRecord.read(broken.with_suffix(".status"))
        assert status.state == StatusState.FAILED
        assert not broken.with_suffix(".lock").exists()

    def test_compile_busy_skipped(self, sample_muse: Path, make_compiler):
        """测试被锁定的单元跳过"""
        LockRecord().write(sample_muse.with_suffix(".lock"))
        compiler = make_compiler(formats=["html"])
        assert compiler.compile(sample_muse) == []
        assert not sample_muse.with_suffix(".html").exists()
        assert compiler.errors == []

    def test_compile_invalid_source(self, write_muse, make_compiler):
        compiler = make_compiler(formats=["html"])
        assert compiler.compile(write_muse("bad", "no header\n")) == []
        assert len(compiler.errors) == 1

    def test_compile_virtual(self, write_muse, make_compiler):
        """测试虚拟合并单元"""
        files = [
            write_muse("one", "#title One\n#lang ru\n\nPervyj.\n"),
            write_muse("two", "#title Two\n#lang hr\n\nDrugi.\n"),
        ]
        merged = files[0].parent / "merged"
        compiler = make_compiler(formats=["tex"])
        assert compiler.compile_virtual(merged, files, title="Collected")
        tex = merged.with_suffix(".tex").read_text(encoding="utf-8")
        assert r"\setmainlanguage{russian}" in tex
        assert r"\setotherlanguages{croatian}" in tex
        assert tex.index("Pervyj.") < tex.index(r"\selectlanguage{croatian}") < tex.index("Drugi.")
        assert r"\selectlanguage{russian}" not in tex
        assert r"\title{Collected}" in tex

    def test_find_new_muse_files(self, temp_dir: Path, write_muse, make_compiler):
        """测试递归查找没有完成标记或标记过期的源文件"""
        fresh = write_muse("a/fresh", "#title Fresh\n\ntext\n")
        done = write_muse("a/b/done", "#title Done\n\ntext\n")
        stale = write_muse("stale", "#title Stale\n\ntext\n")
        write_muse(".hidden/skip", "#title Skip\n\ntext\n")

        done.with_suffix(".status").write_text("{}", encoding="utf-8")
        stale_status = stale.with_suffix(".status")
        stale_status.write_text("{}", encoding="utf-8")
        past = time.time() - 100
        os.utime(stale_status, (past, past))

        found = make_compiler().find_new_muse_files(temp_dir)
        assert sorted(found) == sorted([fresh, stale])

    def test_find_new_not_directory(self, temp_dir: Path, make_compiler):
        with pytest.raises(StructuralError):
            make_compiler().find_new_muse_files(temp_dir / "missing")

    def test_recursive_compile(self, temp_dir: Path, write_muse, make_compiler):
        """测试递归编译保留完成标记，第二次不再处理"""
        source = write_muse("sub/doc", "#title Doc\n\ntext\n")
        compiler = make_compiler(formats=["html"])
        assert compiler.recursive_compile(temp_dir) == [source]
        assert source.with_suffix(".status").exists()
        assert compiler.find_new_muse_files(temp_dir) == []

    def test_purge(self, sample_muse: Path, make_compiler):
        sample_muse.with_suffix(".html").write_text("x", encoding="utf-8")
        make_compiler().purge(sample_muse)
        assert not sample_muse.with_suffix(".html").exists()
        assert sample_muse.exists()


@pytest.mark.usefixtures("reset_logging")
class TestCli:
    """命令行测试"""

    def test_parse_extra(self):
        """测试布尔选项规范化"""
        extra = parse_extra(["papersize=a5", "twoside=true", "notoc=0", "oneside=", "mainfont=Charis SIL"])
        assert extra == {
            "papersize": "a5",
            "twoside": True,
            "notoc": False,
            "oneside": False,
            "mainfont": "Charis SIL",
        }
        assert parse_extra(["nocoverpage=no"])["nocoverpage"] is False

    def test_parse_extra_invalid(self):
        with pytest.raises(StructuralError):
            parse_extra(["papersize"])

    def test_load_backend(self):
        assert isinstance(load_backend("fakes:FakeBackend"), FakeBackend)
        with pytest.raises(StructuralError):
            load_backend("fakes")
        with pytest.raises(StructuralError):
            load_backend("fakes:LANGUAGES")

    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_dry_run_requires_recursive(self):
        with pytest.raises(SystemExit):
            main(["--dry-run", "--backend", "fakes:FakeBackend"])

    def test_compile_files(self, sample_muse: Path, write_muse):
        """测试命令行编译与失败退出码"""
        assert main(["--backend", "fakes:FakeBackend", "--html", "--tex", str(sample_muse)]) == 0
        assert sample_muse.with_suffix(".html").exists()
        assert sample_muse.with_suffix(".tex").exists()
        assert not sample_muse.with_suffix(".epub").exists()

        bad = write_muse("bad", "no header\n")
        assert main(["--backend", "fakes:FakeBackend", "--html", str(bad)]) == 1

    def test_dry_run(self, temp_dir: Path, sample_muse: Path, capsys):
        """测试 dry-run 只列出文件"""
        assert main(["--backend", "fakes:FakeBackend", "--recursive", str(temp_dir), "--dry-run"]) == 0
        assert str(sample_muse) in capsys.readouterr().out
        assert not sample_muse.with_suffix(".html").exists()

    def test_output_templates(self, temp_dir: Path):
        """测试导出内置模板（不覆盖已有文件）"""
        ttdir = temp_dir / "tt"
        ttdir.mkdir()
        (ttdir / "css.tt").write_text("mine", encoding="utf-8")
        assert main(["--ttdir", str(ttdir), "--output-templates"]) == 0
        assert (ttdir / "latex.tt").exists()
        assert (ttdir / "css.tt").read_text(encoding="utf-8") == "mine"
