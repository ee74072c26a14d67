"""
流水线模块 - 编译单元与编译编排

子模块：
- unit: 编译单元（生命周期/锁/状态/清理/各输出格式）
- compiler: 多文件、递归与虚拟合并编译
- packager: ZIP 打包
"""

from .compiler import Compiler
from .packager import ZipPackager
from .unit import CompileUnit

__all__ = [
    "CompileUnit",
    "Compiler",
    "ZipPackager",
]
