from __future__ import annotations
import asyncio
from typing import ClassVar
from dataclasses import dataclass, field
from datetime import datetime
from loguru import logger
from mineman.testing import TestResult, TestCode, bounded
from mineman.event.payload import DataclassEventMixin

__all__ = [
  'test_EventRegistry_uninitialized',
  'test_EventRegistry_forwarding',
  'test_EventHook_lifecycle',
  'test_EventHook_disabled',
  'test_EventHook_init_errors',
  'test_EventHook_run_error',
  'test_EventHook_close_skips_closed_sinks',
]

STATUS_CHANGED_TOPIC = 'network.status-changed'

@dataclass
class NetworkUp(DataclassEventMixin):
  name: ClassVar[str] = 'network.up'
  at: datetime = field(metadata={'key': 'x-at'})

class _Miner:
  """A Module consuming network status Events"""

  def __init__(self):
    self.seen: list[NetworkUp] = []

  async def init(self, cfg): ...

  async def close(self): ...

  def create_sinks(self):
    from mineman.event import Sink
    return [ Sink(STATUS_CHANGED_TOPIC, self.on_status_changed) ]

  async def on_status_changed(self, msg):
    from mineman.errors import NO_ERROR
    err, event = msg.scan(NetworkUp)
    if err is not NO_ERROR: return err
    self.seen.append(event)
    return await msg.ack()

def _event_config(**kwargs):
  from mineman.config import Config
  return Config.from_map({ 'event': kwargs })

async def _until(predicate, timeout: float = 1.0) -> bool:
  try:
    async with asyncio.timeout(timeout):
      while not predicate(): await asyncio.sleep(0.005)
  except TimeoutError: return False
  return True

@bounded()
async def test_EventRegistry_uninitialized(*args, **kwargs) -> TestResult:
  from mineman.event import EventRegistry, StringPayload, NotInitializedError
  try:
    registry = EventRegistry()
    assert not registry.initialized, "A new registry should not have a broker"

    err = await registry.publish('any', StringPayload('x'))
    assert isinstance(err, NotInitializedError), f"Publishing w/o a broker should report not initialized; got {err}"
    fut = registry.publish_async('any', StringPayload('x'))
    assert fut.done() and isinstance(fut.result(), NotInitializedError), "An async publish w/o a broker should resolve immediately w/ not initialized"

    async def handler(msg): ...
    for sub in (await registry.subscribe('any', handler), await registry.subscribe_async('any')):
      assert isinstance(sub.error, NotInitializedError), f"Subscribing w/o a broker should report not initialized; got {sub.error}"
      assert sub.done, "A failed subscription should already be done"
      assert [ m async for m in sub.messages() ] == [], "A failed subscription delivers nothing"

  except AssertionError as e: return TestResult(TestCode.FAIL, str(e))

  return TestResult(TestCode.PASS)

@bounded()
async def test_EventRegistry_forwarding(*args, **kwargs) -> TestResult:
  from mineman.errors import NO_ERROR
  from mineman.event import EventRegistry, StringPayload, NotInitializedError
  from mineman.event.backends.local import Broker
  broker = Broker()
  broker.start()
  try:
    registry = EventRegistry()
    registry.register(broker)
    assert registry.initialized

    sub = await registry.subscribe_async('greetings')
    assert sub.error is NO_ERROR, f"Subscribing through the registry should succeed; got {sub.error}"
    handled: list[str] = []
    async def handler(msg):
      handled.append(msg.scan(str)[1])
      return await msg.ack()
    handler_sub = await registry.subscribe('greetings', handler)
    assert handler_sub.error is NO_ERROR

    assert (err := await registry.publish('greetings', StringPayload('halo'))) is NO_ERROR, f"Publishing through the registry should succeed; got {err}"
    assert (err := await registry.publish_async('greetings', StringPayload('dunia'))) is NO_ERROR

    messages = sub.messages()
    received = [ (await anext(messages)).scan(str)[1] for _ in range(2) ]
    await messages.aclose()
    assert received == ['halo', 'dunia'], f"Unexpected messages {received}"
    assert await _until(lambda: handled == ['halo', 'dunia']), f"The handler should receive every message; got {handled}"

    registry.unregister()
    err = await registry.publish('greetings', StringPayload('gone'))
    assert isinstance(err, NotInitializedError), f"An unregistered registry should report not initialized; got {err}"

  except AssertionError as e: return TestResult(TestCode.FAIL, str(e))
  finally: await broker.close()

  return TestResult(TestCode.PASS)

@bounded()
async def test_EventHook_lifecycle(*args, **kwargs) -> TestResult:
  from mineman.errors import NO_ERROR
  from mineman.app import Lifecycle
  from mineman.event import EventRegistry
  from mineman.event.hook import EventHook
  from mineman.event.backends.local import Broker
  try:
    registry = EventRegistry()
    hook = EventHook(registry)
    err = await hook.init(_event_config(enabled=True, broker='local', local={ 'sub_buffer_size': 8, 'wait_on_close': True }))
    assert err is NO_ERROR, f"Initializing the hook should succeed; got {err}"
    assert isinstance(registry.broker, Broker), f"The hook should register the local broker; got {registry.broker}"
    assert registry.broker.config['sub_buffer_size'] == 8, "The broker should be configured from its own section"
    assert registry.broker.state is Lifecycle.RUNNING, "The broker should start on init"

    miner = _Miner()
    hook.module_loaded(miner)
    hook.module_initialized(miner)
    hook.module_initialized(object())
    assert (err := await hook.run()) is NO_ERROR, f"Running the hook should subscribe every sink; got {err}"

    at = datetime.fromisoformat('2024-05-06T07:08:09+00:00')
    err = await registry.publish(STATUS_CHANGED_TOPIC, NetworkUp(at=at).to_event())
    assert err is NO_ERROR, f"Publishing the status change should succeed; got {err}"
    assert await _until(lambda: len(miner.seen) == 1), "The sink should receive the status change"
    assert miner.seen[0] == NetworkUp(at=at), f"Unexpected event {miner.seen[0]}"
    logger.debug(f"The miner observed {miner.seen}")

    broker = registry.broker
    assert (err := await hook.close()) is NO_ERROR, f"Closing the hook should succeed; got {err}"
    assert broker.state is Lifecycle.STOPPED, "Closing the hook should stop the broker"
    assert not registry.initialized, "Closing the hook should unregister the broker"

  except AssertionError as e: return TestResult(TestCode.FAIL, str(e))

  return TestResult(TestCode.PASS)

@bounded()
async def test_EventHook_disabled(*args, **kwargs) -> TestResult:
  from mineman.errors import NO_ERROR
  from mineman.event import EventRegistry
  from mineman.event.hook import EventHook
  try:
    registry = EventRegistry()
    hook = EventHook(registry)
    assert (err := await hook.init(_event_config(enabled=False, broker='local'))) is NO_ERROR
    assert not registry.initialized, "A disabled hook should not register a broker"
    hook.module_initialized(_Miner())
    assert (err := await hook.run()) is NO_ERROR, f"Running a disabled hook should be a no-op; got {err}"
    assert (err := await hook.close()) is NO_ERROR, f"Closing a disabled hook should be a no-op; got {err}"

  except AssertionError as e: return TestResult(TestCode.FAIL, str(e))

  return TestResult(TestCode.PASS)

@bounded()
async def test_EventHook_init_errors(*args, **kwargs) -> TestResult:
  from mineman.errors import NO_ERROR
  from mineman.app import ModuleRegistry
  from mineman.event import EventRegistry, ConfigError, ModuleError
  from mineman.event.hook import EventHook
  from mineman.event.backends.local import Broker
  try:
    err = await EventHook().init(_event_config(enabled=True, broker='kafka'))
    assert isinstance(err, ModuleError), f"An unknown broker should report a module error; got {err}"

    not_brokers = ModuleRegistry()
    not_brokers.register('odd', _Miner)
    err = await EventHook(brokers=not_brokers).init(_event_config(enabled=True, broker='odd'))
    assert isinstance(err, ModuleError), f"A module that isn't a broker should report a module error; got {err}"

    err = await EventHook().init(_event_config(enabled='yes'))
    assert isinstance(err, ConfigError), f"An invalid hook config should report a config error; got {err}"

    registry = EventRegistry()
    hook = EventHook(registry)
    err = await hook.init(_event_config(enabled=True, local={ 'pub_buffer_size': -1 }))
    assert isinstance(err, ConfigError), f"An invalid broker config should report a config error; got {err}"
    assert not registry.initialized, "A broker that failed to initialize should not be registered"

    hook = EventHook(registry)
    assert (err := await hook.init(_event_config(enabled=True))) is NO_ERROR, f"The default broker should load; got {err}"
    assert isinstance(registry.broker, Broker), "The default broker should be the local broker"
    await hook.close()

  except AssertionError as e: return TestResult(TestCode.FAIL, str(e))

  return TestResult(TestCode.PASS)

@bounded()
async def test_EventHook_run_error(*args, **kwargs) -> TestResult:
  from mineman.errors import NO_ERROR
  from mineman.event import EventRegistry, BrokerStoppedError
  from mineman.event.hook import EventHook
  try:
    registry = EventRegistry()
    hook = EventHook(registry)
    assert (err := await hook.init(_event_config(enabled=True))) is NO_ERROR
    hook.module_initialized(_Miner())
    assert (err := await registry.broker.close()) is NO_ERROR

    err = await hook.run()
    assert isinstance(err, BrokerStoppedError), f"Running against a stopped broker should report the failed subscription; got {err}"
    err = await hook.close()
    assert isinstance(err, BrokerStoppedError), f"Closing the hook should report the broker already stopped; got {err}"

  except AssertionError as e: return TestResult(TestCode.FAIL, str(e))

  return TestResult(TestCode.PASS)

@bounded()
async def test_EventHook_close_skips_closed_sinks(*args, **kwargs) -> TestResult:
  from mineman.errors import NO_ERROR
  from mineman.app import Lifecycle
  from mineman.event import EventRegistry
  from mineman.event.hook import EventHook
  try:
    registry = EventRegistry()
    hook = EventHook(registry)
    assert (err := await hook.init(_event_config(enabled=True))) is NO_ERROR
    for _ in range(3): hook.module_initialized(_Miner())
    assert (err := await hook.run()) is NO_ERROR, f"Running the hook should subscribe every sink; got {err}"
    first, *rest = hook._ctx['subscriptions']

    # The first sink is closed elsewhere before the hook shuts down
    assert (err := await first.close()) is NO_ERROR
    closed: list[tuple] = []
    def _recording(sub):
      close = sub.close
      async def _close():
        err = await close()
        closed.append((sub.id, err))
        return err
      return _close
    for sub in rest: sub.close = _recording(sub)

    broker = registry.broker
    assert (err := await hook.close()) is NO_ERROR, f"An already closed sink should not fail the hook's close; got {err}"
    assert closed == [ (sub.id, NO_ERROR) for sub in rest ], f"Every later sink subscription should be closed by the hook; got {closed}"
    assert broker.state is Lifecycle.STOPPED, "Closing the hook should stop the broker"

  except AssertionError as e: return TestResult(TestCode.FAIL, str(e))

  return TestResult(TestCode.PASS)
