"""Sanitizing log filter that redacts browsing history before it reaches handlers.

The engine only needs hosts to make decisions.  Full URLs (paths, query
strings, fragments) and cookie values must never leak through log
output, even when a collaborator passes them along in an error message.
"""

from __future__ import annotations

import logging
import re
from typing import Final

_SENSITIVE_KEYS: Final[tuple[str, ...]] = (
    "url",
    "full_url",
    "cookie",
    "cookies",
    "title",
)

_REDACTED: Final[str] = "[REDACTED]"

_SENSITIVE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\b(?P<key>"
    + "|".join(re.escape(k) for k in _SENSITIVE_KEYS)
    + r")\s*[=:]\s*(?P<value>\"[^\"]*\"|'[^']*'|\S+)",
    re.IGNORECASE,
)

# scheme://host[:port] followed by anything that is not whitespace or a quote
_URL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?P<origin>[a-z][a-z0-9+.-]*://[^/\s?#\"']+)(?P<rest>[/?#][^\s\"']*)?",
    re.IGNORECASE,
)


def redact_message(message: str) -> str:
    """Strip URL paths and sensitive ``key=value`` pairs from *message*.

    URLs keep their origin (``https://example.com``) so host-level
    context survives; everything after it is replaced.

    Args:
        message: Raw log message string.

    Returns:
        Message with sensitive values replaced by ``[REDACTED]``.
    """
    message = _SENSITIVE_PATTERN.sub(
        lambda m: f"{m.group('key')}={_REDACTED}", message,
    )
    return _URL_PATTERN.sub(
        lambda m: m.group("origin") + ("/" + _REDACTED if m.group("rest") else ""),
        message,
    )


class SanitizingFilter(logging.Filter):
    """A :class:`logging.Filter` that rewrites log records to strip browsing data.

    Attach to any logger or handler via :func:`install_sanitizing_filter`.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            record.msg = redact_message(record.getMessage())
            record.args = None
        else:
            record.msg = redact_message(str(record.msg))
        return True


def install_sanitizing_filter(
    logger: logging.Logger | None = None,
    *,
    handler_level: bool = False,
) -> SanitizingFilter:
    """Attach a :class:`SanitizingFilter` to *logger* (or the root logger).

    Args:
        logger: Target logger.  Defaults to the root logger if ``None``.
        handler_level: If ``True``, install on each handler of *logger*
            instead of the logger itself.  Needed for records propagated
            from child loggers, which bypass the parent's own filters.

    Returns:
        The filter instance that was installed.
    """
    filt = SanitizingFilter()
    target = logger or logging.getLogger()

    if handler_level:
        for handler in target.handlers:
            handler.addFilter(filt)
    else:
        target.addFilter(filt)

    return filt


def configure_logging(verbose: bool = False) -> None:
    """Set up root logging for CLI and server entry points."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    install_sanitizing_filter(handler_level=True)
