# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

import hashlib
import hmac
import logging
import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from opentelemetry import trace

__all__ = ["logger", "configure_logging", "anonymize"]

# Human-readable console format. Trace ids are not part of it: they live in
# ``extra`` and are only guaranteed to be present inside a span, so the JSON
# sinks carry them instead.
TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """
    Redirects standard logging records to Loguru.
    Libraries logging through the standard module (httpx, rdflib, authlib) end up
    in the same sinks as the package's own records.
    """

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno  # type: ignore[assignment]

        # Find the caller the message originated from, skipping the logging
        # module and this handler, so Loguru reports the right module and line
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename in (logging.__file__, __file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def trace_id_injector(record: dict[str, Any]) -> None:
    """
    Injects the OpenTelemetry trace_id and span_id into the log record.
    Used as a patcher for Loguru.
    """
    span = trace.get_current_span()
    # Only a valid, active span has ids worth recording
    ctx = span.get_span_context()
    if ctx.is_valid:
        # Stored in 'extra' so they appear in the JSON output
        record["extra"]["trace_id"] = format(ctx.trace_id, "032x")
        record["extra"]["span_id"] = format(ctx.span_id, "016x")
        # Correlation id mirrors the trace id for log searches across services
        record["extra"]["correlation_id"] = format(ctx.trace_id, "032x")


def anonymize(value: str, salt: str) -> str:
    """
    Returns an HMAC-SHA256 digest of ``value`` so WebIDs never reach logs or traces in clear.

    The digest is stable for a given salt, so records for the same user can still be
    correlated.

    Args:
        value: The identifier to anonymize (usually a WebID).
        salt: The configured PII salt.

    Returns:
        str: The hex digest.
    """
    return hmac.new(salt.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


def configure_logging() -> None:
    """
    Configures the logger based on environment variables.
    Call this to reload configuration if env vars change.

    ``COREASON_LOG_LEVEL`` selects the level (default INFO), ``COREASON_LOG_JSON=true``
    switches the console sink to JSON on stdout.
    """
    log_level = os.getenv("COREASON_LOG_LEVEL", "INFO").upper()
    log_json = os.getenv("COREASON_LOG_JSON", "false").lower() == "true"

    # Verify level exists in Loguru, default to INFO if not
    try:
        logger.level(log_level)
    except ValueError:
        log_level = "INFO"

    # Drop the default handler and anything added by a previous call, and set
    # the patcher in the same step
    logger.configure(handlers=[], patcher=trace_id_injector)

    # Sink 1: Console
    if log_json:
        # JSON to stdout for containerized deployments
        logger.add(sys.stdout, level=log_level, serialize=True)
    else:
        # Human-readable text to stderr
        logger.add(sys.stderr, level=log_level, format=TEXT_FORMAT)

    # Sink 2: File (JSON, rotation, retention)
    # Always JSON so the file can be analysed later. Read-only containers may
    # refuse to create logs/; file logging is skipped there.
    try:
        Path("logs").mkdir(parents=True, exist_ok=True)
        logger.add(
            "logs/app.log",
            rotation="500 MB",
            retention="10 days",
            serialize=True,
            enqueue=True,
            level=log_level,
        )
    except (PermissionError, OSError):
        pass

    # Intercept standard logging
    # force=True replaces whatever handlers the host application installed
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Set the root logger to the configured level so libraries do not build
    # debug records that every sink would drop anyway
    numeric_level = logging.getLevelName(log_level)
    if isinstance(numeric_level, int):
        logging.getLogger().setLevel(numeric_level)
    else:
        # Fallback if the level name is unknown to the standard module
        logging.getLogger().setLevel(logging.INFO)


# Initialize on import
configure_logging()
