"""
命令行入口 - muse-compile

用法：
    muse-compile --backend mypkg.muse:Backend --pdf --html file1.muse file2.muse
    muse-compile --backend mypkg.muse:Backend --recursive library/ --dry-run
"""

from __future__ import annotations

import argparse
import importlib
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from . import __version__
from .config import get_config, reload_config, setup_logging
from .interfaces import IDocumentBackend, StructuralError
from .models import OutputFormat
from .pipeline import Compiler
from .templates import TemplateSet

BOOLEAN_EXTRAS = ("oneside", "twoside", "nocoverpage", "notoc")


def load_backend(spec: str) -> IDocumentBackend:
    """按 "module:attr" 加载文档后端（类则实例化）"""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise StructuralError(f"后端格式应为 module:attr: {spec}")
    target = getattr(importlib.import_module(module_name), attr)
    backend = target() if isinstance(target, type) else target
    if not isinstance(backend, IDocumentBackend):
        raise StructuralError(f"{spec} 不是 IDocumentBackend")
    return backend


def parse_extra(pairs: Sequence[str]) -> dict[str, Any]:
    """解析 --extra key=value，并规范化布尔选项"""
    extra: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise StructuralError(f"--extra 格式应为 key=value: {pair}")
        extra[key.strip()] = value
    for key in BOOLEAN_EXTRAS:
        if key in extra:
            value = str(extra[key]).strip().lower()
            extra[key] = value not in ("", "0", "no", "false")
    return extra


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="muse-compile",
        description="编译源文档为 HTML/EPUB/LaTeX/PDF 等格式（不指定格式时生成全部）",
    )
    formats = parser.add_argument_group("输出格式")
    for fmt in OutputFormat:
        formats.add_argument(
            f"--{fmt.value.replace('_', '-')}",
            dest=fmt.value,
            action="store_true",
            help=f"生成 {fmt.extension}",
        )
    parser.add_argument("--ttdir", default=None, help="自定义模板目录")
    parser.add_argument("--output-templates", action="store_true", help="把内置模板写入 --ttdir")
    parser.add_argument("--log", default=None, help="追加日志到该文件")
    parser.add_argument(
        "--extra",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="模板选项，可重复（如 papersize=a5 division=15 twoside=true）",
    )
    parser.add_argument("--no-cleanup", action="store_true", help="保留完成标记")
    parser.add_argument("--recursive", default=None, metavar="DIR", help="递归编译目录中需要更新的文件")
    parser.add_argument("--dry-run", action="store_true", help="仅列出递归编译会处理的文件")
    parser.add_argument("--purge", action="store_true", help="编译前删除旧产物")
    parser.add_argument("--backend", default=None, metavar="MODULE:ATTR", help="文档模型后端")
    parser.add_argument("--config", default=None, help="运行期配置 YAML")
    parser.add_argument("--verbose", action="store_true", help="输出调试日志")
    parser.add_argument("--version", action="store_true", help="显示版本")
    parser.add_argument("files", nargs="*", help="源文件")
    return parser


def _output_templates(ttdir: str | None) -> None:
    if not ttdir:
        print("未指定 --ttdir，忽略 --output-templates", file=sys.stderr)
        return
    target_dir = Path(ttdir)
    target_dir.mkdir(parents=True, exist_ok=True)
    templates = TemplateSet()
    for name in templates.names():
        target = target_dir / f"{name}.tt"
        if target.exists():
            print(f"拒绝覆盖 {target}", file=sys.stderr)
            continue
        print(f"创建 {target}", file=sys.stderr)
        target.write_text(templates.source(name), encoding="utf-8")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"muse-compile {__version__}")
        return 0

    config = reload_config(args.config) if args.config else get_config()
    if args.log:
        config.logging.log_file = args.log
    if args.verbose:
        config.logging.log_level = "DEBUG"
    setup_logging(config.logging)

    if args.dry_run and not args.recursive:
        parser.error("--dry-run 只能与 --recursive 一起使用")
    if args.recursive and args.files:
        parser.error("--recursive 不能同时指定源文件")

    if args.output_templates:
        _output_templates(args.ttdir)
    if not args.files and not args.recursive:
        return 0

    formats = {fmt for fmt in OutputFormat if getattr(args, fmt.value)}
    if OutputFormat.ZIP in formats:
        formats |= {OutputFormat.TEX, OutputFormat.HTML}
    if OutputFormat.PDF in formats:
        formats.add(OutputFormat.TEX)

    backend_spec = args.backend or config.compile.document_backend
    if not backend_spec:
        parser.error("需要 --backend 或配置 compile.document_backend")

    try:
        compiler = Compiler(
            load_backend(backend_spec),
            formats=formats or None,
            extra=parse_extra(args.extra),
            ttdir=args.ttdir,
            cleanup=not (args.no_cleanup or args.recursive),
            report_failure=lambda name: print(f"编译失败: {name}"),
            config=config,
        )
    except StructuralError as e:
        parser.error(str(e))

    if args.recursive:
        print(f"开始递归编译: {args.recursive}")
        if args.dry_run:
            results = compiler.find_new_muse_files(args.recursive)
            print("[dry-run，不做任何处理]")
        else:
            results = compiler.recursive_compile(args.recursive)
        if results:
            print("找到并编译了以下文件:\n" + "\n".join(str(r) for r in results))
        else:
            print("没有需要处理的文件")
    else:
        if args.purge:
            compiler.purge(*args.files)
        compiler.compile(*args.files)

    if compiler.errors:
        print(f"编译完成但有错误，详见 {args.log or '上方输出'}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
