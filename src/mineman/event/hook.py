"""
Wires Event Messaging into the Application

The EventHook loads the configured Broker, registers it into the application's EventRegistry & subscribes the Sinks of
every initialized `EventService` Module once the application runs.

```yaml
event:
  enabled: true
  broker: local
  local: { ... } # The Broker's own configuration
```
"""
from __future__ import annotations
from typing import TypedDict, Any
from collections.abc import Mapping
from dataclasses import dataclass, field, KW_ONLY
from loguru import logger

from mineman.errors import Error, NO_ERROR_T, NO_ERROR
from mineman.config import Config
from mineman.app import Hook, Module, ModuleRegistry
from . import EventRegistry, EventService, Sink, Subscription, Broker, brokers as default_brokers
from .errors import ConfigError, ModuleError, AlreadyClosedError
from . import backends as _backends # Registers the bundled Brokers

class HookConfig(TypedDict):
  enabled: bool
  broker: str
  """The name of the Broker in the Broker Registry"""

  @staticmethod
  def factory(**kwargs) -> HookConfig:
    return {
      'enabled': False,
      'broker': '',
    } | kwargs

  @staticmethod
  def from_map(m: Mapping[str, Any]) -> HookConfig:
    cfg = HookConfig.factory(**{ k: m[k] for k in HookConfig.__annotations__ if k in m })
    if not isinstance(cfg['enabled'], bool): raise ValueError(f"event.enabled must be a boolean; got {type(cfg['enabled']).__name__}")
    if not isinstance(cfg['broker'], str): raise ValueError(f"event.broker must be a string; got {type(cfg['broker']).__name__}")
    return cfg

class _HookCtx(TypedDict):
  broker: Broker | None
  sinks: list[Sink]
  subscriptions: list[Subscription]

  @staticmethod
  def factory(**kwargs) -> _HookCtx:
    return {
      'broker': None,
      'sinks': [],
      'subscriptions': [],
    } | kwargs

@dataclass
class EventHook(Hook):
  registry: EventRegistry = field(default_factory=EventRegistry)
  """Where the loaded Broker is registered for the rest of the application"""
  _: KW_ONLY
  brokers: ModuleRegistry = field(default_factory=lambda: default_brokers)
  """The Broker Factories to load the configured Broker from"""
  conf: HookConfig = field(default_factory=HookConfig.factory)
  _ctx: _HookCtx = field(default_factory=_HookCtx.factory)

  @property
  def enabled(self) -> bool: return self.conf['enabled']

  async def init(self, cfg: Config) -> Error | NO_ERROR_T:
    logger.trace("Loading event config...")
    try: self.conf = HookConfig.from_map(cfg.sub('event').data)
    except (ValueError, RuntimeError) as e: return ConfigError(str(e))
    logger.info(f"Event config loaded: broker=`{self.conf['broker']}`, enabled={self.conf['enabled']}")
    if not self.enabled: return NO_ERROR

    try: factory = self.brokers.get(self.conf['broker'])
    except KeyError as e: return ModuleError(str(e.args[0]))
    module = factory()
    if not isinstance(module, Broker): return ModuleError(f"module `{self.conf['broker']}` is not an event broker")
    logger.trace("Event broker loaded")

    if (err := await module.init(cfg.sub('event'))) is not NO_ERROR: return err
    logger.trace("Event broker initialized")

    self._ctx['broker'] = module
    self.registry.register(module)
    return NO_ERROR

  def module_loaded(self, m: Module) -> None: pass

  def module_initialized(self, m: Module) -> None:
    if isinstance(m, EventService):
      sinks = m.create_sinks()
      logger.trace(f"Collected {len(sinks)} event sinks from {type(m).__name__}")
      self._ctx['sinks'].extend(sinks)

  async def run(self) -> Error | NO_ERROR_T:
    """Subscribe every collected Sink; reports the first Subscription that failed"""
    if not self.enabled or self._ctx['broker'] is None: return NO_ERROR
    for sink in self._ctx['sinks']:
      sub = await self._ctx['broker'].subscribe_handler(sink.topic, sink.handler)
      if sub.error is not NO_ERROR:
        logger.error(f"Failed to subscribe an event sink to `{sink.topic}`: {sub.error}")
        return sub.error
      self._ctx['subscriptions'].append(sub)
    logger.debug(f"Subscribed {len(self._ctx['subscriptions'])} event sinks")
    return NO_ERROR

  async def close(self) -> Error | NO_ERROR_T:
    if not self.enabled or self._ctx['broker'] is None: return NO_ERROR
    logger.trace("Closing event subscriptions...")
    for sub in self._ctx['subscriptions']:
      err = await sub.close()
      if isinstance(err, AlreadyClosedError): logger.trace(f"Event subscription {sub.id} was already closed")
      elif err is not NO_ERROR:
        logger.error(f"Failed to close the event subscription {sub.id}: {err}")
        break
    self._ctx['subscriptions'].clear()

    logger.trace("Closing the event broker...")
    err = await self._ctx['broker'].close()
    self.registry.unregister()
    return err
