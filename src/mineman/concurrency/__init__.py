from collections.abc import Coroutine, Callable
from loguru import logger

### Library Imports
from .log import *
###

def _log_trapper(coro: Callable[..., Coroutine]) -> Callable[..., Coroutine]:
  async def _log_trap(*args, **kwargs) -> None:
    try:
      return await coro(*args, **kwargs)
    except Exception:
      logger.opt(exception=True).debug(f"Trapped an Exception raised from {coro.__name__}")
      raise
  return _log_trap

def task_name(*parts: str) -> str:
  """Render a Task Name from its parts; ex. `broker-1:loop`"""
  return ':'.join(parts)
