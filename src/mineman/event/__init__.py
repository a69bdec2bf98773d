"""

Asynchronous, in-process, publish-subscribe messaging used to decouple the application's modules.

- Publishers publish a Payload on a Topic; every Subscription of that Topic receives its own Message.
- A delivered Message stays "in flight" until the consumer acknowledges it:
  - `ack` releases the Message
  - `nack` redelivers the same Message to the same Subscription (immediately, unbounded)
  - `progress` is reserved for extending a processing deadline; it currently does nothing
- Every fallible operation reports an `Error` (or `NO_ERROR`) as its result; nothing here raises for runtime failures.
- Brokers are Modules: they are created from the `brokers` factory registry by name & initialized from configuration.
- Collaborators reach the active Broker through an `EventRegistry` handed to them by the application.

"""
from __future__ import annotations
import asyncio
from typing import Protocol, TypeVar, Any, runtime_checkable
from abc import abstractmethod
from collections.abc import Callable, Awaitable, AsyncIterator
from dataclasses import dataclass
from loguru import logger

from mineman.errors import Error, NO_ERROR_T, NO_ERROR
from mineman.app import Module, ModuleRegistry
from .errors import (
  BackpressureError, AlreadyClosedError, OperationCanceledError, BrokerStoppedError,
  NotInitializedError, HandlerFaultError, ScanError, ConfigError, ModuleError,
)
from .payload import (
  Payload, StringPayload, EventPayload, EventDescriptor, DataclassEventMixin,
  from_event_descriptor, is_event_descriptor,
)

T = TypeVar('T')

completion_t = asyncio.Future
"""TypeHint: A Future resolved, exactly once, with an `Error` or `NO_ERROR`"""

def generate_id(prefix: str, seq: int) -> str:
  return f"{prefix}-{seq:x}"

def resolved(value: Any) -> asyncio.Future:
  """A Future that is already resolved w/ the value; requires a running event loop"""
  fut = asyncio.get_running_loop().create_future()
  fut.set_result(value)
  return fut

@runtime_checkable
class Message(Protocol):
  """A delivered Payload, addressed to a single Subscription"""

  id: str
  subscriber_id: str
  payload: Payload

  @abstractmethod
  def scan(self, target: type[T], strict: bool = True) -> tuple[Error | NO_ERROR_T, T | None]:
    """Decode the Payload; see `Payload.scan`"""
    ...

  @abstractmethod
  def ack(self, cancel: asyncio.Event | None = None) -> completion_t:
    """Acknowledge & release the Message"""
    ...

  @abstractmethod
  def nack(self, cancel: asyncio.Event | None = None) -> completion_t:
    """Redeliver the Message to the same Subscription"""
    ...

  @abstractmethod
  def progress(self, cancel: asyncio.Event | None = None) -> completion_t:
    """Reserve the Message for additional time"""
    ...

message_handler_t = Callable[[Message], Awaitable[Error | NO_ERROR_T | None]]
"""TypeHint: Consumes a delivered Message; may report an Error which is logged"""

@runtime_checkable
class Subscription(Protocol):
  """A registered interest in a Topic"""

  id: str
  topic: str
  error: Error | NO_ERROR_T
  """Sticky Error captured when subscribing; `NO_ERROR` on success"""

  @property
  @abstractmethod
  def done(self) -> bool:
    """Has the Subscription been closed, cancelled or its Broker stopped"""
    ...

  @abstractmethod
  async def wait_done(self) -> None: ...

  @abstractmethod
  def cancel(self) -> None:
    """Signal the Subscription is no longer wanted; it is unsubscribed in the background"""
    ...

  @abstractmethod
  async def close(self) -> Error | NO_ERROR_T:
    """Unsubscribe; closing twice reports `AlreadyClosedError`"""
    ...

  @abstractmethod
  def messages(self) -> AsyncIterator[Message]:
    """Iterate the delivered Messages until the Subscription is closed"""
    ...

@dataclass
class FailedSubscription(Subscription):
  """A Subscription that never subscribed; it is born done & only reports its error"""

  error: Error
  topic: str = ''
  id: str = ''

  @property
  def done(self) -> bool: return True

  async def wait_done(self) -> None: return None

  def cancel(self) -> None: pass

  async def close(self) -> Error | NO_ERROR_T: return AlreadyClosedError()

  async def messages(self) -> AsyncIterator[Message]:
    return
    yield

@runtime_checkable
class Broker(Module, Protocol):
  """Brokers Messages between Publishers & Subscribers"""

  @abstractmethod
  def publish(self, topic: str, payload: Payload, cancel: asyncio.Event | None = None) -> completion_t: ...

  @abstractmethod
  async def subscribe(self, topic: str, cancel: asyncio.Event | None = None) -> Subscription: ...

  @abstractmethod
  async def subscribe_handler(self, topic: str, handler: message_handler_t, cancel: asyncio.Event | None = None) -> Subscription: ...

@dataclass(frozen=True)
class Sink:
  """A Handler a Module wants subscribed to a Topic"""
  topic: str
  handler: message_handler_t

@runtime_checkable
class EventService(Protocol):
  """A Module that consumes Events; its Sinks are subscribed by the EventHook"""

  @abstractmethod
  def create_sinks(self) -> list[Sink]: ...

brokers = ModuleRegistry()
"""The named Broker Factories; backends register themselves on import"""

@dataclass
class EventRegistry:
  """Forwards to whichever Broker is currently registered

  The application owns the registry & hands it to the modules that publish or subscribe; until a Broker is registered
  every call reports `NotInitializedError`.
  """

  broker: Broker | None = None

  @property
  def initialized(self) -> bool: return self.broker is not None

  def register(self, broker: Broker) -> None:
    if self.broker is not None and self.broker is not broker: logger.warning("Replacing the registered event broker")
    self.broker = broker

  def unregister(self) -> None:
    self.broker = None

  async def publish(self, topic: str, payload: Payload, cancel: asyncio.Event | None = None) -> Error | NO_ERROR_T:
    """Publish & wait until the Broker has fanned the Payload out"""
    if self.broker is None: return NotInitializedError()
    return await self.broker.publish(topic, payload, cancel=cancel)

  def publish_async(self, topic: str, payload: Payload, cancel: asyncio.Event | None = None) -> completion_t:
    """Publish without waiting; the returned Future may be ignored"""
    if self.broker is None: return resolved(NotInitializedError())
    return self.broker.publish(topic, payload, cancel=cancel)

  async def subscribe(self, topic: str, handler: message_handler_t, cancel: asyncio.Event | None = None) -> Subscription:
    """Subscribe a handler invoked for every delivered Message"""
    if self.broker is None: return FailedSubscription(NotInitializedError(), topic=topic)
    return await self.broker.subscribe_handler(topic, handler, cancel=cancel)

  async def subscribe_async(self, topic: str, cancel: asyncio.Event | None = None) -> Subscription:
    """Subscribe & consume the Messages yourself"""
    if self.broker is None: return FailedSubscription(NotInitializedError(), topic=topic)
    return await self.broker.subscribe(topic, cancel=cancel)
