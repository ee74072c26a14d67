"""
模板层 - 内置模板与自定义模板目录

职责：
1. 提供内置模板（html/bare_html/minimal_html/title_page_html/css/latex/bare_latex）
2. 自定义模板目录中的同名模板优先
3. 用 Jinja2 展开模板，失败时抛出 TemplateError（保留引擎原始信息）

测试要点：
- test_builtin_names: 内置模板名
- test_ttdir_override: 自定义模板覆盖
- test_render_error: 展开失败
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import jinja2

from ..document.languages import typeset_language
from ..interfaces import StructuralError, TemplateError
from .builtin import BUILTIN_TEMPLATES, LATEX_TEMPLATES

logger = logging.getLogger(__name__)

_TEMPLATE_FILE = re.compile(
    r"^((?:(?:bare|minimal|title[_.-]page)[_.-])?html|(?:bare[_.-])?latex|css)(?:\.tt2?)?$"
)
_TAG = re.compile(r"<.+?>")


def strip_tags(value: Any) -> str:
    """去除 HTML 标签"""
    if value is None:
        return ""
    return _TAG.sub("", str(value))


class TemplateSet:
    """模板集合（自定义目录优先于内置模板）"""

    def __init__(self, ttdir: str | Path | None = None):
        self.ttdir = Path(ttdir) if ttdir else None
        self._custom: dict[str, str] = {}
        if self.ttdir is not None:
            if not self.ttdir.is_dir():
                raise StructuralError(f"{self.ttdir} 不是目录")
            self._custom = self._scan(self.ttdir)

    @staticmethod
    def _scan(ttdir: Path) -> dict[str, str]:
        found = {}
        for path in sorted(ttdir.iterdir()):
            match = _TEMPLATE_FILE.match(path.name)
            if not path.is_file() or not match:
                continue
            name = re.sub(r"[.-]", "_", match.group(1))
            found[name] = path.read_text(encoding="utf-8")
            logger.debug(f"使用自定义模板: {path}")
        return found

    @staticmethod
    def names() -> list[str]:
        return list(BUILTIN_TEMPLATES)

    def source(self, name: str) -> str:
        """模板原文"""
        if name in self._custom:
            return self._custom[name]
        if name in BUILTIN_TEMPLATES:
            return BUILTIN_TEMPLATES[name]
        raise StructuralError(f"未知模板: {name}")

    def is_custom(self, name: str) -> bool:
        return name in self._custom

    def mapping(self) -> dict[str, str]:
        return {**BUILTIN_TEMPLATES, **self._custom}


class TemplateEngine:
    """Jinja2 模板展开"""

    def __init__(self, templates: TemplateSet | None = None):
        self.templates = templates or TemplateSet()
        loader = jinja2.DictLoader(self.templates.mapping())
        self._html_env = jinja2.Environment(loader=loader, autoescape=False)
        self._latex_env = jinja2.Environment(
            loader=loader,
            block_start_string=r"\BLOCK{",
            block_end_string="}",
            variable_start_string=r"\VAR{",
            variable_end_string="}",
            comment_start_string=r"\#{",
            comment_end_string="}",
            trim_blocks=True,
            autoescape=False,
        )
        for env in (self._html_env, self._latex_env):
            env.filters["typeset_language"] = typeset_language
            env.filters["strip_tags"] = strip_tags

    def render(self, name: str, tokens: dict[str, Any]) -> str:
        """
        展开模板

        Args:
            name: 模板名
            tokens: 模板变量

        Returns:
            展开结果

        Raises:
            TemplateError: 模板不存在或展开失败
        """
        env = self._latex_env if name in LATEX_TEMPLATES else self._html_env
        try:
            return env.get_template(name).render(tokens)
        except jinja2.TemplateError as e:
            raise TemplateError(name, str(e)) from e
