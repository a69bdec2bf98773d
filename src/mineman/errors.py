"""Errors (not Exceptions)

Operations that can fail at runtime return, or resolve their Future with, either an `Error` or the `NO_ERROR` sentinel.
Callers compare against the sentinel by identity: `if err is not NO_ERROR: ...`
"""
from __future__ import annotations
from typing import Protocol, runtime_checkable

NO_ERROR_T = type('NO_ERROR', (), {})
NO_ERROR = NO_ERROR_T()

@runtime_checkable
class Error(Protocol):
  """An Error"""

  kind: str
  """The Kind of Error"""
  message: str
  """A Human Readable description about the Error that is helpful"""

  def __str__(self) -> str:
    """Pretty Print the Error for logging"""
    return f"{type(self).__name__}({self.kind}): {self.message}"

def is_error(value: object) -> bool:
  """Is the value an Error (as opposed to `NO_ERROR`, `None` or some other result)"""
  return value is not NO_ERROR and isinstance(value, Error)
