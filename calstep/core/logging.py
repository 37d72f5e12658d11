# calstep/core/logging.py
"""
Loggers for calstep components.

Each component logs under the ``calstep`` namespace through its own stdout
handler, one aligned line per record:

    [12:00:00] [calendar_filter] [DEBUG]   Calendar excluded 2 candidate fire time(s)

Colors follow the same switches as error rendering (CALSTEP_FORCE_COLOR,
NO_COLOR) and are otherwise used only when stdout is a terminal.
"""

import logging
import os
import sys
from datetime import datetime
from typing import TextIO
from calstep.core.errors import _env_flag

NAMESPACE = 'calstep'

# Every component that logs; the component column fits the longest tag
COMPONENTS = ('calculator', 'calendar_filter', 'misfire', 'trigger')
_COMPONENT_WIDTH = max(len(name) for name in COMPONENTS) + 2
_LEVEL_WIDTH = len('[WARNING]')

_RESET = '\033[0m'
_TIMESTAMP_COLOR = '\033[94m'
_LEVEL_COLORS = {
    logging.DEBUG: '\033[90m',
    logging.INFO: '\033[92m',
    logging.WARNING: '\033[93m',
    logging.ERROR: '\033[91m',
}

# Level for loggers created from now on, see set_default_level()
_default_level: int = logging.INFO


def _colors_enabled(stream: TextIO) -> bool:
    if _env_flag('CALSTEP_FORCE_COLOR'):
        return True
    if os.environ.get('NO_COLOR') is not None:
        return False
    return hasattr(stream, 'isatty') and stream.isatty()


class ColoredFormatter(logging.Formatter):
    """Column-aligned formatter; colors the timestamp and level when enabled."""

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        stamp = f"[{datetime.fromtimestamp(record.created).strftime('%H:%M:%S')}]"
        # 'calstep.calendar_filter' -> 'calendar_filter'
        component = f'[{record.name.rpartition(".")[2]}]'.ljust(_COMPONENT_WIDTH)
        level = f'[{record.levelname}]'.ljust(_LEVEL_WIDTH)

        if self.use_colors:
            stamp = f'{_TIMESTAMP_COLOR}{stamp}{_RESET}'
            level = f'{_LEVEL_COLORS.get(record.levelno, "")}{level}{_RESET}'

        line = f'{stamp} {component} {level} {record.getMessage()}'
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def set_default_level(level: int) -> None:
    """Set the level of loggers created after this call."""
    global _default_level
    _default_level = level


def get_logger(component_name: str) -> logging.Logger:
    """Logger for one calstep component, e.g. get_logger('calculator')."""
    logger = logging.getLogger(f'{NAMESPACE}.{component_name}')

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter(use_colors=_colors_enabled(sys.stdout)))
        handler.setLevel(_default_level)
        logger.addHandler(handler)
        logger.setLevel(_default_level)
        # Records stop here rather than reaching root handlers too
        logger.propagate = False

    return logger
