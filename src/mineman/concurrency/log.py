"""

Implements an Asynchronous, optionally bounded, Log of Items used as a FIFO Queue

All access is expected from a single event loop: the non-blocking methods are atomic w/ respect to other coroutines so a
producer can push without ever yielding control. A Log can be closed; a closed Log drops its contents, rejects pushes &
wakes any blocked consumers.

"""
from __future__ import annotations
from typing import Generic, TypeVar, AsyncIterator, Iterator, Protocol
from abc import abstractmethod
from dataclasses import dataclass, field
from collections import deque
from loguru import logger
import asyncio

__all__ = [
  'Log',
  'ItemLog'
]

I = TypeVar("I")

class Log(Generic[I], Protocol):
  """An Asynchronous Log of Items"""

  log: deque[I]
  """The Item Log"""

  @abstractmethod
  def __len__(self) -> int:
    """Get the length of the Log."""
    ...

  @abstractmethod
  def __iter__(self) -> Iterator[I]:
    """Iterate over a snapshot of the Log."""
    ...

  @abstractmethod
  def __contains__(self, item: I) -> bool:
    """Check if the Log contains an Item."""
    ...

  @property
  @abstractmethod
  def empty(self) -> bool:
    """Check if the Log is empty."""
    ...

  @property
  @abstractmethod
  def full(self) -> bool:
    """Check if the Log is full."""
    ...

  @property
  @abstractmethod
  def max_size(self) -> int | None:
    """Get the maximum size of the Log."""
    ...

  @property
  @abstractmethod
  def closed(self) -> bool:
    """Check if the Log has been closed."""
    ...

  @abstractmethod
  def push_nowait(self, item: I) -> None | I:
    """Push an Item onto the tail of the Log; returns the item back if the Log is full or closed."""
    ...

  @abstractmethod
  def pop_nowait(self) -> I | None:
    """Pop the head of the Log; returns None if the Log is empty."""
    ...

  @abstractmethod
  async def pop(self) -> I | None:
    """Pop the head of the Log waiting for an Item if necessary; returns None once the Log is closed."""
    ...

  @abstractmethod
  def drain(self) -> list[I]:
    """Remove & return every Item currently in the Log."""
    ...

  @abstractmethod
  def close(self) -> list[I]:
    """Close the Log returning any Items that were dropped."""
    ...

def _create_event(state: bool) -> asyncio.Event:
  event = asyncio.Event()
  if state: event.set()
  return event

@dataclass
class _ItemLogCtx:
  not_empty: asyncio.Event = field(default_factory=lambda: _create_event(False))
  """Is the Item Log not empty (or closed); consumers wait on this"""
  closed: bool = False
  """Has the Item Log been closed"""

@dataclass
class ItemLog(Log[I]):
  """An Async Log of Items; pass a bounded deque (`deque(maxlen=n)`) for a bounded Log."""

  log: deque[I] = field(default_factory=deque)
  """The Item Log"""
  _ctx: _ItemLogCtx = field(default_factory=_ItemLogCtx)

  @classmethod
  def bounded(cls, size: int) -> ItemLog[I]:
    """Create a Log that holds at most `size` Items"""
    if size < 1: raise ValueError(f"A bounded Log must hold at least 1 item; got {size}")
    return cls(log=deque(maxlen=size))

  def __len__(self) -> int:
    """Get the length of the Log."""
    return len(self.log)

  def __iter__(self) -> Iterator[I]:
    """Iterate over a snapshot of the Log."""
    return iter(tuple(self.log))

  def __aiter__(self) -> AsyncIterator[I]:
    """Consume the Log until it is closed."""
    return self._consume()

  async def _consume(self) -> AsyncIterator[I]:
    while True:
      item = await self.pop()
      if item is None and self._ctx.closed: return
      yield item

  def __contains__(self, item: I) -> bool:
    """Check if the Log contains an Item."""
    return item in self.log

  @property
  def empty(self) -> bool:
    """Check if the Log is empty."""
    return len(self.log) <= 0

  @property
  def full(self) -> bool:
    """Check if the Log is full."""
    if self.log.maxlen is None: return False
    else: return len(self.log) >= self.log.maxlen

  @property
  def max_size(self) -> int | None:
    """Get the maximum size of the Log."""
    return self.log.maxlen

  @property
  def closed(self) -> bool:
    """Check if the Log has been closed."""
    return self._ctx.closed

  def push_nowait(self, item: I) -> None | I:
    """Push an Item onto the tail of the Log; returns the item back if the Log is full or closed."""
    if self._ctx.closed or self.full: return item
    self.log.append(item)
    self._ctx.not_empty.set()
    return None

  def pop_nowait(self) -> I | None:
    """Pop the head of the Log; returns None if the Log is empty."""
    if self.empty: return None
    item = self.log.popleft()
    if self.empty and not self._ctx.closed: self._ctx.not_empty.clear()
    return item

  async def pop(self) -> I | None:
    """Pop the head of the Log waiting for an Item if necessary; returns None once the Log is closed."""
    while True:
      if self._ctx.closed: return None
      if not self.empty: return self.pop_nowait()
      await self._ctx.not_empty.wait()

  def drain(self) -> list[I]:
    """Remove & return every Item currently in the Log."""
    items = list(self.log)
    self.log.clear()
    if not self._ctx.closed: self._ctx.not_empty.clear()
    return items

  def close(self) -> list[I]:
    """Close the Log returning any Items that were dropped."""
    if self._ctx.closed: return []
    dropped = self.drain()
    self._ctx.closed = True
    self._ctx.not_empty.set() # Wake any blocked consumers
    if len(dropped) > 0: logger.trace(f"Closed a Log dropping {len(dropped)} Items")
    return dropped
