"""
排版语言别名

polyglossia 没有的语言使用相近语言的断字与标题规则排版。
"""

from __future__ import annotations

LANGUAGE_ALIASES: dict[str, str] = {
    "macedonian": "russian",
    "serbian": "croatian",
}


def typeset_language(language: str) -> str:
    """返回排版时实际使用的语言"""
    return LANGUAGE_ALIASES.get(language, language)
