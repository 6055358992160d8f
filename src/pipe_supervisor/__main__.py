"""Pipe Supervisor 入口点。

支持: python -m pipe_supervisor -- COMMAND [ARGS...]
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
