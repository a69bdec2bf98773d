"""Logging setup

Everything logs through loguru's `logger`; this module only configures the sinks & routes the stdlib `logging` module
into loguru so third party libraries end up in the same stream.
"""
from __future__ import annotations
import os, sys, inspect, logging
from loguru import logger

LOG_LEVELS = ('TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL')

class InterceptHandler(logging.Handler):
  def emit(self, record: logging.LogRecord) -> None:
    # Get corresponding Loguru level if it exists.
    level: str | int
    try:
      level = logger.level(record.levelname).name
    except ValueError:
      level = record.levelno

    # Find caller from where originated the logged message.
    frame, depth = inspect.currentframe(), 0
    while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
      frame = frame.f_back
      depth += 1

    logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

def setup_logging(log_level: str | None = None, colorize: bool = True):
  """(Re)Configure the loguru stderr sink; the level defaults to the `LOG_LEVEL` environment variable or `INFO`."""
  log_level = (log_level or os.environ.get('LOG_LEVEL', 'INFO')).upper()
  if log_level not in LOG_LEVELS: raise ValueError(f"Unknown log level '{log_level}'; expected one of {', '.join(LOG_LEVELS)}")
  logger.remove()
  logger.add(sys.stderr, level=log_level, enqueue=True, colorize=colorize)
  logger.trace(f'Log level set to {log_level}')
  _log_level = {
    'TRACE': logging.DEBUG,
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'SUCCESS': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
  }[log_level]
  logging.basicConfig(handlers=[InterceptHandler()], level=_log_level, force=True)

def finalize_logging():
  logger.complete()
