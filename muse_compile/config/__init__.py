"""
配置层 - 加载运行期配置

职责：
- 加载 muse-compile.yaml（运行期参数）
- 提供环境变量覆盖机制
- 日志初始化
"""

from .logging_config import setup_logging
from .runtime_config import RuntimeConfig, get_config, reload_config

__all__ = [
    "RuntimeConfig",
    "get_config",
    "reload_config",
    "setup_logging",
]
