"""Rust-style error display for calstep trigger configuration errors."""

from __future__ import annotations

import inspect
import linecache
import os
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Absolute path to the calstep package directory.
# Used by _find_user_frame to tell library frames apart from caller code.
_CALSTEP_PKG_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class ErrorCode(str, Enum):
    """Error codes for trigger setup and validation errors.

    Organized by category:
    - E100-E199: Trigger definition errors
    - E200-E299: Scheduling configuration errors
    """

    # Trigger definition (E100-E199)
    TRIGGER_END_BEFORE_START = 'E100'
    TRIGGER_INVALID_REPEAT_INTERVAL = 'E101'
    TRIGGER_INVALID_MISFIRE_INSTRUCTION = 'E102'
    TRIGGER_NAIVE_DATETIME = 'E103'
    TRIGGER_MISSING_IDENTITY = 'E104'
    TRIGGER_INVALID_INTERVAL_UNIT = 'E105'
    TRIGGER_INVALID_TIMES_TRIGGERED = 'E106'

    # Scheduling configuration (E200-E299)
    CONFIG_INVALID_SCHEDULING = 'E200'


class _Colors:
    """ANSI escape codes for terminal colors."""

    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    DIM = '\033[2m'


class _NoColors:
    """No-op color codes for non-TTY output."""

    RESET = ''
    BOLD = ''
    RED = ''
    BLUE = ''
    CYAN = ''
    GREEN = ''
    DIM = ''


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


def _should_use_colors() -> bool:
    """Determine if colors should be used in output."""
    if _env_flag('CALSTEP_FORCE_COLOR'):
        return True

    # NO_COLOR standard (https://no-color.org/)
    if os.environ.get('NO_COLOR') is not None:
        return False

    return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()


@dataclass
class SourceLocation:
    """Source code location information."""

    file: str
    line: int

    @classmethod
    def from_frame(cls, frame: Any) -> SourceLocation:
        return cls(file=frame.f_code.co_filename, line=frame.f_lineno)

    def get_source_line(self) -> str | None:
        line = linecache.getline(self.file, self.line)
        return line.rstrip('\n') if line else None

    def format_short(self) -> str:
        return f'{self.file}:{self.line}'


@dataclass
class CalstepError(Exception):
    """Base exception for calstep configuration errors.

    Renders as:
    - error code and message
    - caller location with the offending source line
    - notes and help text
    """

    message: str
    code: ErrorCode | None = None
    location: SourceLocation | None = None
    notes: list[str] = field(default_factory=lambda: [])
    help_text: str | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

        # Point at the caller that handed us the bad value
        if self.location is None:
            user_frame = _find_user_frame()
            if user_frame is not None:
                self.location = SourceLocation.from_frame(user_frame)

    def with_note(self, note: str) -> CalstepError:
        """Add a note to the error (fluent API)."""
        self.notes.append(note)
        return self

    def with_help(self, help_text: str) -> CalstepError:
        """Set help text (fluent API)."""
        self.help_text = help_text
        return self

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        code_part = f'[{self.code.value}]' if self.code else ''
        lines: list[str] = [
            '',
            f'{c.BOLD}{c.RED}error{code_part}:{c.RESET} {self.message}',
        ]

        if self.location:
            lines.append(
                f'  {c.BLUE}-->{c.RESET} {c.CYAN}{self.location.format_short()}{c.RESET}'
            )
            source_line = self.location.get_source_line()
            if source_line:
                line_num = str(self.location.line)
                padding = ' ' * len(line_num)
                stripped = source_line.lstrip()
                underline = ' ' * (len(source_line) - len(stripped)) + '^' * len(stripped)
                lines.append(f'   {c.BLUE}{padding}|{c.RESET}')
                lines.append(f'   {c.BLUE}{line_num}|{c.RESET} {source_line}')
                lines.append(f'   {c.BLUE}{padding}|{c.RESET} {c.RED}{underline}{c.RESET}')

        for note in self.notes:
            first, *rest = note.split('\n')
            lines.append(f'   {c.BLUE}={c.RESET} {c.BOLD}{c.BLUE}note{c.RESET}: {first}')
            lines.extend(f'          {extra}' for extra in rest)

        if self.help_text:
            lines.append('')
            lines.append(f'   {c.BLUE}={c.RESET} {c.BOLD}{c.GREEN}help{c.RESET}:')
            lines.extend(f'        {help_line}' for help_line in self.help_text.split('\n'))

        return '\n'.join(lines)

    def __str__(self) -> str:
        """Plain text rendering, safe for logs and serialization."""
        return self.format_rust_style(use_colors=False)


@dataclass
class ConfigurationError(CalstepError):
    """Raised when a trigger or scheduling configuration is invalid."""

    pass


# =============================================================================
# Exception hook
# =============================================================================

_original_excepthook = sys.excepthook


def _calstep_excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: Any,
) -> None:
    # CALSTEP_PLAIN_ERRORS=1 bypasses custom formatting entirely
    if _env_flag('CALSTEP_PLAIN_ERRORS') or not isinstance(exc_value, CalstepError):
        _original_excepthook(exc_type, exc_value, exc_tb)
        return

    print(exc_value.format_rust_style(), file=sys.stderr)
    if _env_flag('CALSTEP_VERBOSE'):
        c = _Colors if _should_use_colors() else _NoColors
        print(file=sys.stderr)
        print(f'{c.DIM}Full traceback (CALSTEP_VERBOSE=1):{c.RESET}', file=sys.stderr)
        traceback.print_exception(exc_type, exc_value, exc_tb, file=sys.stderr)


def install_error_handler() -> None:
    """Install the custom exception hook for Rust-style error display."""
    sys.excepthook = _calstep_excepthook


def uninstall_error_handler() -> None:
    """Restore the original exception hook."""
    sys.excepthook = _original_excepthook


# =============================================================================
# Phase-Gated Error Collection
# =============================================================================


class ValidationReport:
    """Collects the independent errors found while validating one object."""

    def __init__(self, phase_name: str) -> None:
        self.phase_name: str = phase_name
        self.errors: list[CalstepError] = []

    def add(self, error: CalstepError) -> None:
        self.errors.append(error)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        parts = [error.format_rust_style(use_colors=use_colors) for error in self.errors]
        parts.append(
            f'\n{c.BOLD}{c.RED}error{c.RESET}: aborting {self.phase_name} due to '
            f'{len(self.errors)} previous errors'
        )
        return '\n'.join(parts)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


@dataclass
class MultipleValidationErrors(CalstepError):
    """Wraps a ValidationReport containing 2+ errors."""

    report: ValidationReport = field(default_factory=lambda: ValidationReport(''))

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f'aborting due to {len(self.report.errors)} previous errors'
        # Location is per-error in the report
        super(CalstepError, self).__init__(self.message)

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        return self.report.format_rust_style(use_colors=use_colors)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


def raise_collected(report: ValidationReport) -> None:
    """Raise collected errors.

    - 0 errors: no-op
    - 1 error: raises the error itself
    - 2+ errors: raises MultipleValidationErrors wrapping the report
    """
    count = len(report.errors)
    if count == 0:
        return
    if count == 1:
        raise report.errors[0]
    raise MultipleValidationErrors(
        message=f'aborting due to {count} previous errors',
        report=report,
    )


def _find_user_frame() -> Any | None:
    """Find the first frame outside of calstep internals."""
    frame = inspect.currentframe()
    while frame is not None:
        filename = frame.f_code.co_filename
        if (
            not filename.startswith('<')
            and not filename.startswith(_CALSTEP_PKG_DIR)
            and '/site-packages/' not in filename
        ):
            return frame
        frame = frame.f_back
    return None


def configuration_error(
    message: str,
    *,
    code: ErrorCode,
    notes: list[str] | None = None,
    help_text: str | None = None,
) -> ConfigurationError:
    """Create a ConfigurationError located at the calling user frame."""
    return ConfigurationError(
        message=message,
        code=code,
        notes=notes or [],
        help_text=help_text,
    )
