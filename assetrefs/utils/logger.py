"""Logging setup and Windows-safe text handling.

Library modules log through `logging.getLogger(__name__)`; the CLI installs a
single rich handler on the package logger. Unicode icons used in reports are
replaced with ASCII equivalents on terminals that can't encode them.
"""
import sys
import locale
import logging

from rich.logging import RichHandler


PACKAGE_LOGGER = 'assetrefs'
_HANDLER_TAG_ATTR = '_assetrefs_handler'


# Unicode to ASCII icon mapping for Windows compatibility
ICON_MAP = {
    # Status icons
    '✓': '[OK]',
    '✗': '[FAIL]',
    '⚠': '[WARN]',

    # Report icons
    '🔎': '[search]',
    '📺': '[scene]',
    '💾': '[node]',
    '💿': '[comp]',
    '🎲': '[prop]',
    '📦': '[asset]',
    '📙': '[nodes]',
    '📘': '[assets]',

    # Progress/action icons
    '→': '->',
    '←': '<-',
    '×': 'x',

    # Symbols
    '…': '...',
    '•': '*',
    '·': '*',
    '　': ' ',
}


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding capability.

    Returns:
        str: Terminal encoding ('utf-8', 'cp1252', 'ascii', etc.)
    """
    # Try stdout encoding first
    if hasattr(sys.stdout, 'encoding') and sys.stdout.encoding:
        return sys.stdout.encoding.lower()

    # Fallback to locale
    try:
        return locale.getpreferredencoding().lower()
    except Exception:
        pass

    return 'ascii'


def is_utf8_capable() -> bool:
    """Check if the terminal can handle UTF-8 Unicode characters."""
    encoding = detect_terminal_encoding()
    return encoding in ('utf-8', 'utf8', 'utf_8')


def sanitize_for_terminal(text: str, force: bool = False) -> str:
    """Replace Unicode icons with ASCII equivalents if terminal doesn't support UTF-8.

    Args:
        text: Text potentially containing Unicode icons
        force: Sanitize even on UTF-8 terminals

    Returns:
        str: Sanitized text safe for current terminal
    """
    if not force and is_utf8_capable():
        return text

    sanitized = text
    for unicode_char, ascii_replacement in ICON_MAP.items():
        sanitized = sanitized.replace(unicode_char, ascii_replacement)
    return sanitized


def configure_logging(level: str = 'WARNING', console=None) -> logging.Logger:
    """Attach a rich handler to the package logger.

    Calling it again only updates the level; handlers are never duplicated.

    Args:
        level: Logging level name
        console: Rich console to log to (a stderr SafeConsole by default)

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    for handler in logger.handlers:
        if getattr(handler, _HANDLER_TAG_ATTR, False):
            if console is not None:
                handler.console = console
            return logger

    if console is None:
        from .safe_console import SafeConsole
        console = SafeConsole(stderr=True)

    handler = RichHandler(console=console, show_time=False, show_path=False, markup=False)
    setattr(handler, _HANDLER_TAG_ATTR, True)
    logger.addHandler(handler)
    return logger
