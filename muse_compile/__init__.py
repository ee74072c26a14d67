"""
muse-compile - 源文档编译核心

模块结构：
- config/     运行期配置与日志
- models/     数据模型定义
- document/   头部扫描与多文档虚拟合并
- templates/  内置模板与模板展开
- doc_gen/    产物生成（模板变量/排版/拼版/EPUB）
- pipeline/   编译单元与编译编排
- cli         命令行入口
"""

__version__ = "0.1.0"
