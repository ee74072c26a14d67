"""
运行期配置 - 读取 muse-compile.yaml

职责：
- 加载排版器/拼版/模板目录等运行参数
- 提供环境变量覆盖机制（MUSE_COMPILE_ 前缀）
- 类型安全的配置访问
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

DEFAULT_CONFIG_PATH = Path("muse-compile.yaml")


class CompileConfig(BaseModel):
    """编译配置"""

    source_suffix: str = ".muse"
    ttdir: str | None = None
    standalone: bool = False
    cleanup: bool = True
    document_backend: str = ""  # "module:attr"


class TypesetterConfig(BaseModel):
    """排版器配置（遍数固定为3，不可配置）"""

    command: str = "xelatex"
    error_marker: str = r"^[!#]"
    missing_char_marker: str = r"^missing character"


class ImpositionConfig(BaseModel):
    """拼版配置"""

    schema_name: str = Field(default="2up", alias="schema")
    signature: str = "40-80"
    cover: bool = True

    model_config = {"populate_by_name": True}


class LoggingConfig(BaseModel):
    """日志配置"""

    log_level: str = "INFO"
    log_file: str | None = None


class RuntimeConfig(BaseSettings):
    """运行期配置（支持环境变量覆盖）"""

    compile: CompileConfig = Field(default_factory=CompileConfig)
    typesetter: TypesetterConfig = Field(default_factory=TypesetterConfig)
    imposition: ImpositionConfig = Field(default_factory=ImpositionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "env_prefix": "MUSE_COMPILE_",
        "env_nested_delimiter": "__",
    }

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> RuntimeConfig:
        """从YAML文件加载配置"""
        path = Path(yaml_path)
        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        config = cls(
            compile=CompileConfig(**cls._extract(data, "compile")),
            typesetter=TypesetterConfig(**cls._extract(data, "typesetter")),
            imposition=ImpositionConfig(**cls._extract(data, "imposition")),
            logging=LoggingConfig(**cls._extract(data, "logging")),
        )

        config._resolve_paths(base_dir=path.parent)
        return config

    @staticmethod
    def _extract(data: dict[str, Any], key: str) -> dict[str, Any]:
        """提取并展平配置"""
        section = data.get(key) or {}
        result = {}
        for k, v in section.items():
            if isinstance(v, dict) and "default" in v:
                result[k] = v["default"]
            elif not isinstance(v, dict):
                result[k] = v
        return result

    def _resolve_paths(self, base_dir: Path) -> None:
        """解析相对路径配置为绝对路径（基于配置文件所在目录）"""
        if self.compile.ttdir:
            ttdir = Path(self.compile.ttdir)
            if not ttdir.is_absolute():
                self.compile.ttdir = str((base_dir / ttdir).resolve())
        if self.logging.log_file:
            log_file = Path(self.logging.log_file)
            if not log_file.is_absolute():
                self.logging.log_file = str((base_dir / log_file).resolve())


# 全局配置实例
_config: RuntimeConfig | None = None


def get_config() -> RuntimeConfig:
    """获取全局配置（惰性加载）"""
    global _config
    if _config is None:
        _config = RuntimeConfig.from_yaml(DEFAULT_CONFIG_PATH)
    return _config


def reload_config(yaml_path: str | Path | None = None) -> RuntimeConfig:
    """重新加载配置"""
    global _config
    _config = RuntimeConfig.from_yaml(yaml_path or DEFAULT_CONFIG_PATH)
    return _config
