"""
Точка входа для запуска модуля.

Позволяет запускать утилиту как:
    python -m network_deployer [команда] [опции]

Примеры:
    python -m network_deployer backup --target all
    python -m network_deployer rollback --restore-point latest --devices sw1
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
