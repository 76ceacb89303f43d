"""pcraw-console 入口点。

支持: python -m pcraw_console
"""

from .app import main

if __name__ == "__main__":
    main()
