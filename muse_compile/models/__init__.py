"""
数据模型层 - 定义系统核心数据结构

- OutputFormat / UnitState: 编译单元的格式与生命周期
- LockRecord / StatusRecord: 磁盘上的锁与完成标记
- TocEntry: 目录条目
- SafeOptions: 校验后的模板选项
"""

from .options import SafeOptions
from .toc import START_BODY_LABEL, TocEntry, reconcile_toc
from .unit import (
    COMPILE_ORDER,
    LATEX_EXTENSIONS,
    PURGED_EXTENSIONS,
    LockRecord,
    OutputFormat,
    StatusRecord,
    StatusState,
    UnitState,
)

__all__ = [
    "OutputFormat",
    "UnitState",
    "StatusState",
    "LockRecord",
    "StatusRecord",
    "COMPILE_ORDER",
    "PURGED_EXTENSIONS",
    "LATEX_EXTENSIONS",
    "TocEntry",
    "START_BODY_LABEL",
    "reconcile_toc",
    "SafeOptions",
]
