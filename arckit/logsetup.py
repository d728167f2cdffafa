"""Logger construction and an HTTP transport that logs round trips."""

from __future__ import annotations

import datetime as _dt
import logging
import re

import httpx

LOG_LEVEL_DEBUG = "debug"
LOG_LEVEL_INFO = "info"
LOG_LEVEL_WARN = "warn"
LOG_LEVEL_ERROR = "error"

LOGGER_NAME = "arckit"

HEADER_FROM_CACHE = "X-From-Cache"
HEADER_RATE_LIMIT_REMAINING = "X-RateLimit-Remaining"

_NAMED_LEVELS = {
    LOG_LEVEL_DEBUG: logging.DEBUG,
    LOG_LEVEL_INFO: logging.INFO,
    LOG_LEVEL_WARN: logging.WARNING,
    LOG_LEVEL_ERROR: logging.ERROR,
}

_INTEGER = re.compile(r"[+-]?[0-9]+")


def _verbosity(v: int) -> int:
    """Logging level of a message at verbosity ``v`` (0 is info, 1 is debug)."""
    if v <= 0:
        return logging.INFO
    return max(1, logging.DEBUG + 1 - v)


def _numeric_level(level: int) -> int:
    """Map a numeric severity (-1 debug, 0 info, 1 warn, 2 error, lower
    values for higher verbosity) onto a logging level."""
    if level >= -1:
        return logging.INFO + 10 * level
    return _verbosity(-level)


class _Formatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):  # noqa: N802
        moment = _dt.datetime.fromtimestamp(record.created).astimezone()
        return moment.isoformat(timespec="seconds")


class _ConsoleHandler(logging.StreamHandler):
    pass


def new_logger(log_level: str) -> logging.Logger:
    """Return the package logger configured for ``log_level``.

    ``log_level`` is one of "debug", "info", "warn", "error" or an integer
    in -128..127. Raises ValueError for anything else.
    """
    development = False
    if log_level in _NAMED_LEVELS:
        level = _NAMED_LEVELS[log_level]
        development = log_level == LOG_LEVEL_DEBUG
    else:
        if not _INTEGER.fullmatch(log_level or ""):
            raise ValueError(f"Failed to parse --log-level={log_level}: invalid syntax")
        numeric = int(log_level)
        if not -128 <= numeric <= 127:
            raise ValueError(
                f"Failed to parse --log-level={log_level}: value out of range"
            )
        level = _numeric_level(numeric)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in [h for h in logger.handlers if isinstance(h, _ConsoleHandler)]:
        logger.removeHandler(handler)

    handler = _ConsoleHandler()
    if development:
        fmt = "%(asctime)s\t%(levelname)s\t%(name)s\t%(filename)s:%(lineno)d\t%(message)s"
    else:
        fmt = "%(asctime)s\t%(levelname)s\t%(name)s\t%(message)s"
    handler.setFormatter(_Formatter(fmt))
    logger.addHandler(handler)
    return logger


class LoggingTransport(httpx.BaseTransport):
    """Wraps a transport and logs every response it returns."""

    def __init__(
        self, transport: httpx.BaseTransport, log: logging.Logger | None = None
    ) -> None:
        self.transport = transport
        self.log = log

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        response = self.transport.handle_request(request)
        self._log_round_trip(request, response)
        return response

    def close(self) -> None:
        self.transport.close()

    def _log_round_trip(self, request: httpx.Request, response: httpx.Response) -> None:
        if self.log is None:
            return

        marked = response.headers.get(HEADER_FROM_CACHE) == "1"
        fields: list[tuple[str, object]] = [
            ("from_cache", marked),
            ("method", request.method),
            ("url", str(request.url)),
        ]
        if not marked:
            # A cached response carries an outdated remaining count.
            fields.append(
                ("ratelimit_remaining", response.headers.get(HEADER_RATE_LIMIT_REMAINING, ""))
            )

        if self.log.isEnabledFor(_verbosity(4)):
            try:
                body = response.read()
            except httpx.HTTPError as err:
                self.log.log(_verbosity(3), "unable to copy http response error=%s", err)
                body = b""
            self.log.log(
                _verbosity(4),
                "Logging HTTP round-trip method=%s requestHeader=%s statusCode=%s "
                "responseHeader=%s responseBody=%s",
                request.method,
                dict(request.headers),
                response.status_code,
                dict(response.headers),
                body.decode("utf-8", "replace"),
            )

        template = " ".join(f"{key}=%s" for key, _ in fields)
        self.log.log(
            _verbosity(3),
            "Seen HTTP response " + template,
            *(value for _, value in fields),
        )