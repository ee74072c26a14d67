"""
排版器 - 多遍调用 XeLaTeX 生成 PDF

职责：
1. 对同一个 .tex 源顺序执行固定3遍（锚点 → 目录 → 目录引起的页码变化）
2. 出现第一条错误标记行后开始转发输出到日志
3. 按退出码+日志文件是否存在判定结果
4. 以字节方式扫描 .log 中的缺字警告

依赖：
- xelatex（或 lualatex，由运行期配置指定）

测试要点：
- test_three_passes: 固定3遍
- test_failure_with_log: 非零退出且有日志 → 删除PDF并抛出BuildError
- test_failure_without_log: 非零退出且无日志 → 返回None
- test_missing_characters: 缺字警告
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from collections.abc import Sequence
from pathlib import Path

from ..config import get_config
from ..config.runtime_config import TypesetterConfig
from ..interfaces import BuildError, CompileIOError, ITypesetter

logger = logging.getLogger(__name__)


class Typesetter(ITypesetter):
    """XeLaTeX 多遍编译"""

    PASSES = 3

    def __init__(
        self,
        command: str | Sequence[str] | None = None,
        error_marker: str | None = None,
        missing_char_marker: str | None = None,
        config: TypesetterConfig | None = None,
    ):
        config = config or get_config().typesetter
        command = command or config.command
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        self.error_marker = re.compile(error_marker or config.error_marker)
        self.missing_char_marker = re.compile(
            (missing_char_marker or config.missing_char_marker).encode("utf-8"), re.IGNORECASE
        )

    def run(self, source: Path) -> Path | None:
        """多遍编译，返回PDF路径；排版器无法启动时返回None"""
        source = Path(source)
        if not source.is_file():
            raise BuildError(f"缺少LaTeX源文件: {source}")

        log_file = source.with_suffix(".log")
        pdf_file = source.with_suffix(".pdf")

        for i in range(1, self.PASSES + 1):
            logger.debug(f"第{i}遍编译: {source}")
            exit_code = self._run_pass(source)
            if exit_code != 0:
                logger.info(f"{self.command[0]} 编译失败，退出码 {exit_code}")
                if log_file.exists():
                    # 已有部分产物：删除PDF，视为真正失败
                    self._unlink(pdf_file)
                    logger.error(f"编译失败，放弃: {source}")
                    raise BuildError(f"{source} 编译失败（退出码 {exit_code}），详见 {log_file}")
                logger.info("跳过PDF生成")
                return None

        self.scan_log(log_file)
        return pdf_file

    def _run_pass(self, source: Path) -> int:
        cmd = [*self.command, "-interaction=nonstopmode", source.name]
        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(source.parent),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            logger.info(f"无法启动排版器 {self.command[0]}: {e}")
            return 127

        forwarding = False
        with process.stdout:
            for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\n")
                if not forwarding and self.error_marker.search(line):
                    forwarding = True
                if forwarding:
                    logger.info(line)
        return process.wait()

    def scan_log(self, log_file: Path) -> list[str]:
        """
        扫描日志中的缺字警告

        日志按字节折行，多字节字符可能被截断，所以按字节读取，只解码命中的行。
        """
        found: list[str] = []
        if not log_file.exists():
            return found
        try:
            with open(log_file, "rb") as f:
                for raw in f:
                    if self.missing_char_marker.match(raw):
                        line = raw.rstrip(b"\r\n").decode("utf-8", errors="replace")
                        logger.warning(f"{line}...")
                        found.append(line)
        except OSError as e:
            raise CompileIOError(log_file, e) from e
        return found

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise CompileIOError(path, e) from e
