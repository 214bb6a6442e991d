"""cli-watch 入口点。

支持: python -m cli_watch
"""

from .app import main

if __name__ == "__main__":
    main()
