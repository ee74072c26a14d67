"""
打包器 - 源文件、tex、html 与附件打包为 <name>.zip

职责：
1. 缺少 .tex/.html 时先生成
2. 归档内统一放在 <name>/ 目录下
3. 写入临时文件后替换，失败不留下半成品

测试要点：
- test_package_zip: ZIP内容
- test_package_renders_missing: 自动生成缺少的 tex/html
- test_package_missing_attachment: 附件缺失
"""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from ..interfaces import BuildError, CompileIOError, IPackager

if TYPE_CHECKING:
    from .unit import CompileUnit

logger = logging.getLogger(__name__)


class ZipPackager(IPackager):
    """ZIP 打包器实现"""

    def package(self, unit: CompileUnit) -> Path:
        """打包编译单元"""
        zip_path = unit.path_for(".zip")
        unit.purge(".zip")

        members: list[Path] = []
        for ext, produce in ((".tex", unit.tex), (".html", unit.html)):
            target = unit.path_for(ext)
            if not target.exists():
                produce()
            if not target.exists():
                raise BuildError(f"无法生成 {target}")
            members.append(target)

        if not unit.virtual and unit.source_path.exists():
            members.append(unit.source_path)

        folder = Path(unit.name).name
        attachments: list[tuple[Path, str]] = []
        for attachment in unit.document.attachments():
            path = unit.base_dir / attachment
            if not path.is_file():
                raise BuildError(f"附件不存在: {attachment}")
            attachments.append((path, f"{folder}/{attachment}"))

        fd, tmp_name = tempfile.mkstemp(prefix=f".{zip_path.name}.", suffix=".tmp", dir=unit.base_dir)
        os.close(fd)
        try:
            with zipfile.ZipFile(tmp_name, "w", zipfile.ZIP_DEFLATED) as zf:
                for member in members:
                    zf.write(member, f"{folder}/{member.name}")
                for path, arcname in attachments:
                    zf.write(path, arcname)
            os.replace(tmp_name, zip_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise CompileIOError(zip_path, e) from e

        logger.debug(f"已打包: {zip_path}")
        return zip_path
