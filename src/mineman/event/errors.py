"""Errors returned by the Event Brokers & Payload Codecs"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Literal

from mineman.errors import Error

@dataclass(frozen=True)
class BackpressureError(Error):
  """A bounded buffer was full so the operation was rejected instead of blocking"""
  message: str
  buffer: Literal['command', 'publish', 'subscriber']
  """Which buffer was exceeded"""
  kind: str = 'backpressure'

  @staticmethod
  def command() -> BackpressureError: return BackpressureError("can't handle anymore commands, buffer exceeded", 'command')
  @staticmethod
  def publish() -> BackpressureError: return BackpressureError("can't handle anymore publishes, buffer exceeded", 'publish')
  @staticmethod
  def subscriber(subscriber_id: str) -> BackpressureError: return BackpressureError(f"can't send to subscriber `{subscriber_id}`, buffer exceeded", 'subscriber')

@dataclass(frozen=True)
class AlreadyClosedError(Error):
  """The operation targets a subscriber (or message) that no longer exists"""
  message: str = 'subscription already closed'
  kind: str = 'already-closed'

@dataclass(frozen=True)
class OperationCanceledError(Error):
  message: str = 'operation canceled'
  kind: str = 'canceled'

@dataclass(frozen=True)
class BrokerStoppedError(Error):
  message: str = 'broker stopped'
  kind: str = 'stopped'

@dataclass(frozen=True)
class NotInitializedError(Error):
  """No Broker is registered to service the request"""
  message: str = 'event broker not yet initialized'
  kind: str = 'not-initialized'

@dataclass(frozen=True)
class HandlerFaultError(Error):
  """Servicing a command raised; the broker logged it & kept running"""
  message: str
  kind: str = 'fault'

@dataclass(frozen=True)
class ScanError(Error):
  """A Payload could not be decoded into the requested target"""
  message: str
  kind: Literal['invalid-type', 'name-mismatch', 'decode'] = 'decode'

@dataclass(frozen=True)
class ConfigError(Error):
  message: str
  kind: str = 'config'

@dataclass(frozen=True)
class ModuleError(Error):
  """The configured Module can't be loaded or doesn't satisfy the expected contract"""
  message: str
  kind: str = 'module'
