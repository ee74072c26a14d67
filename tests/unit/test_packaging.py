"""
EPUB 与 ZIP 打包单元测试
"""

import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from fakes import FakeBackend, FakeDocument
from muse_compile.doc_gen import EpubBuilder
from muse_compile.doc_gen import epub as epub_module
from muse_compile.doc_gen.epub import attachment_uid, clean_html
from muse_compile.interfaces import BuildError, CompileIOError, InternalConsistencyError
from muse_compile.pipeline import CompileUnit
from muse_compile.templates import TemplateEngine

# 1x1 PNG
PNG = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
    b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


class TestEpubBuilder:
    """EPUB 生成测试"""

    def test_epub_pieces(self, engine: TemplateEngine, temp_dir: Path):
        """测试片段与导航：多一个片段时补 start body"""
        doc = FakeDocument(
            {"title": "Book & Co", "author": "Someone", "date": "Written in 1921", "lang": "it"},
            "Intro.\n\n* One\n\nText one.\n\n* Two\n\nText two.",
        )
        outfile = EpubBuilder(engine).build(doc, temp_dir / "book.epub")
        with zipfile.ZipFile(outfile) as zf:
            names = zf.namelist()
            pieces = sorted(n for n in names if "piece" in n)
            assert len(pieces) == 3
            assert any(n.endswith("titlepage.xhtml") for n in names)
            assert any(n.endswith("stylesheet.css") for n in names)
            opf = zf.read(next(n for n in names if n.endswith(".opf"))).decode("utf-8")
        assert "Book &amp; Co" in opf
        assert "1921" in opf
        assert ">it<" in opf

    def test_epub_attachment(self, engine: TemplateEngine, temp_dir: Path):
        (temp_dir / "cover.png").write_bytes(PNG)
        doc = FakeDocument({"title": "T", "attach": "cover.png"}, "text")
        outfile = EpubBuilder(engine).build(doc, temp_dir / "t.epub", base_dir=temp_dir)
        with zipfile.ZipFile(outfile) as zf:
            assert any(n.endswith("cover.png") for n in zf.namelist())

    def test_attachment_uid(self, engine: TemplateEngine, temp_dir: Path):
        """测试同名不同扩展名或不同目录的附件清单id不冲突"""
        (temp_dir / "img").mkdir()
        for name in ("a.png", "a.jpg", "img/a.png"):
            (temp_dir / name).write_bytes(PNG)
        assert len({attachment_uid(n) for n in ("a.png", "a.jpg", "img/a.png")}) == 3

        doc = FakeDocument({"title": "T", "attach": "a.png a.jpg img/a.png"}, "text")
        outfile = EpubBuilder(engine).build(doc, temp_dir / "t.epub", base_dir=temp_dir)
        with zipfile.ZipFile(outfile) as zf:
            names = zf.namelist()
            opf = zf.read(next(n for n in names if n.endswith(".opf"))).decode("utf-8")
        assert sum(n.endswith("a.png") for n in names) == 2
        assert any(n.endswith("a.jpg") for n in names)
        assert opf.count('id="attachment_') == 3

    def test_epub_write_failure(self, engine: TemplateEngine, temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
        """测试写入中途失败不留下半成品"""

        def broken_write(name, book, options):
            Path(name).write_bytes(b"PK partial")
            raise OSError("disk full")

        monkeypatch.setattr(epub_module.epub, "write_epub", broken_write)
        doc = FakeDocument({"title": "T"}, "text")
        with pytest.raises(CompileIOError):
            EpubBuilder(engine).build(doc, temp_dir / "t.epub")
        assert list(temp_dir.iterdir()) == []

    def test_epub_bad_attachment(self, engine: TemplateEngine, temp_dir: Path):
        """测试非法附件"""
        doc = FakeDocument({"title": "T", "attach": "missing.png"}, "text")
        with pytest.raises(BuildError):
            EpubBuilder(engine).build(doc, temp_dir / "t.epub")

    def test_epub_toc_mismatch(self, engine: TemplateEngine, temp_dir: Path):
        doc = FakeDocument({"title": "T"}, "* One\n\ntext")
        doc._pieces.extend([["a"], ["b"]])
        with pytest.raises(InternalConsistencyError):
            EpubBuilder(engine).build(doc, temp_dir / "t.epub")

    def test_clean_html(self):
        assert clean_html("<em>A</em> &amp; B") == "A & B"


class TestZipPackager:
    """ZIP 打包测试"""

    def test_package_zip(self, write_muse, make_unit: Callable[..., CompileUnit]):
        """测试归档内容统一放在单元名目录下"""
        source = write_muse("book", "#title Book\n#attach pic.png\n\ntext\n")
        unit = make_unit(source)
        (unit.base_dir / "pic.png").write_bytes(PNG)
        unit.open()
        unit.tex()
        unit.html()
        archive = unit.render("zip")
        with zipfile.ZipFile(archive) as zf:
            assert sorted(zf.namelist()) == ["book/book.html", "book/book.muse", "book/book.tex", "book/pic.png"]

    def test_package_renders_missing(self, sample_muse: Path, make_unit: Callable[..., CompileUnit]):
        """测试自动生成缺少的 tex/html"""
        unit = make_unit(sample_muse)
        unit.open()
        archive = unit.zip()
        assert unit.path_for(".tex").exists()
        assert unit.path_for(".html").exists()
        with zipfile.ZipFile(archive) as zf:
            assert "sample/sample.tex" in zf.namelist()

    def test_package_missing_attachment(self, write_muse, make_unit: Callable[..., CompileUnit]):
        """测试附件缺失"""
        unit = make_unit(write_muse("book", "#title Book\n#attach pic.png\n\ntext\n"))
        unit.open()
        with pytest.raises(BuildError):
            unit.zip()
        assert not unit.path_for(".zip").exists()

    def test_package_virtual(self, write_muse, backend: FakeBackend, engine, runtime_config):
        """测试虚拟单元不打包源文件"""
        from muse_compile.document import VirtualDocument

        files = [write_muse("a", "#title A\n\nText A\n"), write_muse("b", "#title B\n\nText B\n")]
        name = files[0].parent / "merged"
        unit = CompileUnit(
            name,
            ".muse",
            engine,
            document_factory=lambda: VirtualDocument(files, backend, engine, title="Merged"),
            virtual=True,
            config=runtime_config,
        )
        unit.open()
        with zipfile.ZipFile(unit.zip()) as zf:
            assert sorted(zf.namelist()) == ["merged/merged.html", "merged/merged.tex"]
