"""

# Payloads

The value carried by a published Message. A Payload is opaque to the broker; consumers decode ("scan") it into the
representation they expect.

- `StringPayload` wraps a plain string & only scans into `str`.
- `EventPayload` describes something that happened: a name, when it happened, supportive `data` & descriptive `meta`.
  It scans into an `EventDescriptor` class. The decoding Map merges, in order of precedence (lowest first):
  - `x-name`: the event name
  - `x-at`: the event timestamp
  - `x-meta-<key>`: each `meta` entry
  - `<key>`: each `data` entry

"""
from __future__ import annotations
import orjson
from typing import Any, Protocol, TypeVar, ClassVar, runtime_checkable
from abc import abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from loguru import logger

from mineman.errors import Error, NO_ERROR_T, NO_ERROR
from .errors import ScanError

T = TypeVar('T')

NAME_KEY = 'x-name'
AT_KEY = 'x-at'
META_PREFIX = 'x-meta-'

scan_result_t = tuple[Error | NO_ERROR_T, Any]
"""TypeHint: The result of scanning a Payload; the decoded value is None unless the error is `NO_ERROR`"""

def _now() -> datetime: return datetime.now(timezone.utc)

@runtime_checkable
class Payload(Protocol):
  """A Value that can be decoded into a target type"""

  @abstractmethod
  def scan(self, target: type[T], strict: bool = True) -> tuple[Error | NO_ERROR_T, T | None]:
    """Decode the Payload into a new instance of the target type"""
    ...

  @abstractmethod
  def marshal(self) -> bytes:
    """Encode the Payload as JSON"""
    ...

@runtime_checkable
class EventDescriptor(Protocol):
  """A typed view of a named Event"""

  name: ClassVar[str]
  """The Event Name this Descriptor represents"""

  @abstractmethod
  def to_event(self) -> EventPayload:
    """Convert the Descriptor into a publishable Payload"""
    ...

  @classmethod
  @abstractmethod
  def from_map(cls, m: Mapping[str, Any]) -> EventDescriptor:
    """Create a Descriptor from the decoding Map of an EventPayload"""
    ...

def is_event_descriptor(target: Any) -> bool:
  """Is the target an EventDescriptor class"""
  return (
    isinstance(target, type)
    and isinstance(getattr(target, 'name', None), str)
    and callable(getattr(target, 'to_event', None))
    and callable(getattr(target, 'from_map', None))
  )

@dataclass(frozen=True)
class StringPayload(Payload):
  value: str

  def scan(self, target: type[T], strict: bool = True) -> tuple[Error | NO_ERROR_T, T | None]:
    if target is not str: return ScanError("invalid type for scan string payload, only accept str", 'invalid-type'), None
    return NO_ERROR, self.value

  def marshal(self) -> bytes: return orjson.dumps(self.value)

  @staticmethod
  def unmarshal(data: bytes) -> StringPayload:
    value = orjson.loads(data)
    if not isinstance(value, str): raise ValueError(f"expected a JSON string; got {type(value).__name__}")
    return StringPayload(value)

  def __str__(self) -> str: return self.value

@dataclass(frozen=True)
class EventPayload(Payload):
  name: str
  """Refers to what actually happened"""
  at: datetime = field(default_factory=_now)
  """When the event occurred"""
  data: dict[str, Any] = field(default_factory=dict)
  """Supportive data of the event"""
  meta: dict[str, Any] = field(default_factory=dict)
  """Data that helps describe or distinguish the event from others; ex. user, tenant"""

  def as_map(self) -> dict[str, Any]:
    """The decoding Map of the Event"""
    m: dict[str, Any] = { NAME_KEY: self.name, AT_KEY: self.at }
    m |= { f"{META_PREFIX}{k}": v for k, v in self.meta.items() }
    m |= self.data
    return m

  def scan(self, target: type[T], strict: bool = True) -> tuple[Error | NO_ERROR_T, T | None]:
    if not is_event_descriptor(target): return ScanError("invalid type for scan event payload, only accept event descriptor", 'invalid-type'), None
    if strict and target.name != self.name: return ScanError(f"invalid event name for scan event payload, `{target.name}` can't decode `{self.name}`", 'name-mismatch'), None
    try: return NO_ERROR, target.from_map(self.as_map())
    except (TypeError, ValueError, KeyError) as e:
      logger.trace(f"Failed to decode event `{self.name}` into {target.__name__}: {e}")
      return ScanError(f"failed to decode event `{self.name}` into {target.__name__}: {e}", 'decode'), None

  def marshal(self) -> bytes:
    return orjson.dumps({ 'name': self.name, 'at': self.at, 'data': self.data, 'meta': self.meta })

  @staticmethod
  def unmarshal(data: bytes) -> EventPayload:
    obj = orjson.loads(data)
    if not isinstance(obj, dict) or not isinstance(obj.get('name'), str): raise ValueError("expected a JSON object w/ a string `name`")
    return EventPayload(
      name=obj['name'],
      at=datetime.fromisoformat(obj['at']) if 'at' in obj else _now(),
      data=obj.get('data') or {},
      meta=obj.get('meta') or {},
    )

def from_event_descriptor(ed: EventDescriptor) -> EventPayload:
  return ed.to_event()

def _field_key(f) -> str: return f.metadata.get('key', f.name)

class DataclassEventMixin:
  """A Convenience mixin implementing the EventDescriptor protocol for Dataclasses

  Fields are mapped to the decoding Map by `field(metadata={'key': ...})`, defaulting to the field name. A field keyed
  `x-at` carries the event timestamp & fields keyed `x-meta-<key>` carry metadata; every other field is event data.
  """

  name: ClassVar[str]

  def to_event(self) -> EventPayload:
    if not is_dataclass(self): raise TypeError(f"{type(self).__name__} must be a dataclass")
    at, data, meta = None, {}, {}
    for f in fields(self):
      key, value = _field_key(f), getattr(self, f.name)
      if key == NAME_KEY: continue
      elif key == AT_KEY: at = value
      elif key.startswith(META_PREFIX): meta[key.removeprefix(META_PREFIX)] = value
      else: data[key] = value
    return EventPayload(name=self.name, at=at or _now(), data=data, meta=meta)

  @classmethod
  def from_map(cls, m: Mapping[str, Any]):
    if not is_dataclass(cls): raise TypeError(f"{cls.__name__} must be a dataclass")
    return cls(**{
      f.name: m[_field_key(f)]
      for f in fields(cls)
      if f.init and _field_key(f) in m
    })
