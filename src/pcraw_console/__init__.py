"""pcraw-console - pcraw.pl 的实时终端包装器。

环境变量:
    PCRAW_INTERPRETER: 解释器 (默认 perl)
    PCRAW_SCRIPT: 爬虫脚本 (默认 pcraw.pl)
    PCRAW_PROGRESS_WIDTH: 进度条宽度 (默认 79)

用法:
    pcraw-console -v
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
