"""
Implements an in-memory, single process, Event Broker

- A single Command Loop (an asyncio Task) owns every piece of Broker State:
  - `topics`: Topic -> ordered Subscriber Ids
  - `subscribers`: Subscriber Id -> Delivery Queue & Cancellation Token
  - `inflight`: Message Id -> delivered but not yet acknowledged Message
- Clients never touch the State; they submit Commands & wait on the Command's Future:
  - `Publish`, `Subscribe`, `Unsubscribe`, `Ack`, `Nack`, `Progress`
  - Every Future is resolved exactly once w/ an Error or `NO_ERROR` (a `Subscribe` resolves w/ a Subscription)
- Every buffer is bounded & nothing blocks on a full buffer; the operation is rejected w/ a `BackpressureError`:
  - The Command Queue (`cmd_buffer_size`) holds every submitted Command
  - The Publish Queue (`pub_buffer_size`) holds accepted Publishes awaiting fan out
  - Each Subscriber's Delivery Queue holds `sub_buffer_size` published Messages plus one slot reserved for redelivery
- Publishing fans a Payload out to every Subscriber of the Topic, all or nothing; each Subscriber receives its own
  Message (w/ its own Id). Publishing to a Topic w/o Subscribers succeeds & does nothing.
- Loop Priority: Close Direct > Commands > Publishes > Close Wait. A Close Wait is only serviced once both queues are
  empty; a Close Direct rejects anything still queued w/ `BrokerStoppedError`. Commands submitted after a Close was
  requested are rejected w/ `BrokerStoppedError` so a Close Wait only drains what was already accepted.
- A Command Handler raising doesn't stop the Loop; the Command resolves w/ `HandlerFaultError`.
- Nack redelivers immediately & unboundedly; a Message that always fails processing loops forever.
"""
from __future__ import annotations
import asyncio, itertools
from typing import TypedDict, NotRequired, Callable, Any, assert_never
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field, KW_ONLY
from loguru import logger

from mineman.errors import Error, NO_ERROR_T, NO_ERROR, is_error
from mineman.config import Config
from mineman.app import Lifecycle
from mineman.concurrency import ItemLog, _log_trapper, task_name
from .. import (
  Message, Subscription, Broker as BrokerInterface, FailedSubscription,
  Payload, message_handler_t, completion_t, brokers, generate_id,
)
from ..errors import (
  BackpressureError, AlreadyClosedError, OperationCanceledError, BrokerStoppedError,
  HandlerFaultError, ConfigError,
)

_broker_seq = itertools.count(1)

@dataclass(frozen=True)
class Publish:
  topic: str
  payload: Payload
  result: asyncio.Future
  cancel: asyncio.Event | None = None

@dataclass(frozen=True)
class Subscribe:
  id: str
  topic: str
  result: asyncio.Future
  """Resolves w/ the Subscription (a failed Subscription on error)"""
  cancel: asyncio.Event | None = None

@dataclass(frozen=True)
class Unsubscribe:
  id: str
  topic: str
  result: asyncio.Future

@dataclass(frozen=True)
class Ack:
  id: str
  subscriber_id: str
  result: asyncio.Future
  cancel: asyncio.Event | None = None

@dataclass(frozen=True)
class Nack:
  id: str
  subscriber_id: str
  result: asyncio.Future
  cancel: asyncio.Event | None = None

@dataclass(frozen=True)
class Progress:
  id: str
  subscriber_id: str
  result: asyncio.Future
  cancel: asyncio.Event | None = None

@dataclass(frozen=True)
class CloseDirect:
  result: asyncio.Future

@dataclass(frozen=True)
class CloseWait:
  result: asyncio.Future

command_t = Publish | Subscribe | Unsubscribe | Ack | Nack | Progress
"""TypeHint: The closed set of Commands the Loop services"""
close_t = CloseDirect | CloseWait
submit_t = Callable[[command_t], Error | NO_ERROR_T]
"""TypeHint: Submits a Command to the Loop; returns the Error if the Command was rejected outright"""

def _resolve(fut: asyncio.Future, value: Any) -> None:
  if not fut.done(): fut.set_result(value)

def _is_set(cancel: asyncio.Event | None) -> bool:
  return cancel is not None and cancel.is_set()

class BrokerConfig(TypedDict):
  wait_on_close: bool
  """Does Close let the queued Commands finish before stopping"""
  cmd_buffer_size: int
  pub_buffer_size: int
  sub_buffer_size: int
  """How many published Messages a Subscriber can hold before Publishes are rejected"""

  @staticmethod
  def factory(**kwargs) -> BrokerConfig:
    return {
      'wait_on_close': True,
      'cmd_buffer_size': 256,
      'pub_buffer_size': 256,
      'sub_buffer_size': 16,
    } | kwargs

  @staticmethod
  def from_map(m: Mapping[str, Any], base: BrokerConfig | None = None) -> BrokerConfig:
    """Overlay the known keys of the Map onto the base config; unknown keys are ignored"""
    return (base or BrokerConfig.factory()) | { k: m[k] for k in BrokerConfig.__annotations__ if k in m }

  @staticmethod
  def validate(cfg: BrokerConfig) -> None:
    if not isinstance(cfg['wait_on_close'], bool): raise ValueError(f"wait_on_close must be a boolean; got {type(cfg['wait_on_close']).__name__}")
    for key in ('cmd_buffer_size', 'pub_buffer_size', 'sub_buffer_size'):
      value = cfg[key]
      if isinstance(value, bool) or not isinstance(value, int): raise ValueError(f"{key} must be an integer; got {type(value).__name__}")
      if value < 1: raise ValueError(f"{key} must be positive; got {value}")

class _SubscriberState(TypedDict):
  topic: str
  delivery_queue: ItemLog[LocalMessage]
  """The Subscriber's Delivery Queue; closed when the Subscriber is removed"""
  token: asyncio.Event
  """The Subscriber's Cancellation Token; set once the Subscriber is done"""

class _BrokerCtx(TypedDict):
  state: Lifecycle
  lfcl_events: dict[Lifecycle, asyncio.Event]
  """Set as the Broker reaches each Lifecycle Stage"""
  topics: dict[str, list[str]]
  subscribers: dict[str, _SubscriberState]
  inflight: dict[str, LocalMessage]
  cancel: asyncio.Event
  """The Global Cancellation; set once the Broker starts draining"""
  wakeup: asyncio.Event
  """Set whenever there is something for the Loop to service"""
  closers: list[close_t]
  msg_seq: itertools.count
  sub_seq: itertools.count
  tasks: set[asyncio.Task]
  """Watcher & Consumer Tasks"""
  cmd_queue: NotRequired[ItemLog[command_t]]
  pub_queue: NotRequired[ItemLog[Publish]]
  loop_task: NotRequired[asyncio.Task]

  @staticmethod
  def factory(**kwargs) -> _BrokerCtx:
    return {
      'state': Lifecycle.IDLE,
      'lfcl_events': { stage: asyncio.Event() for stage in Lifecycle },
      'topics': {},
      'subscribers': {},
      'inflight': {},
      'cancel': asyncio.Event(),
      'wakeup': asyncio.Event(),
      'closers': [],
      'msg_seq': itertools.count(1),
      'sub_seq': itertools.count(1),
      'tasks': set(),
    } | kwargs

@dataclass(frozen=True)
class LocalMessage(Message):
  """A Message delivered to a single Subscriber; it talks back to the Broker only through `submit`"""

  id: str
  subscriber_id: str
  payload: Payload
  _: KW_ONLY
  submit: submit_t = field(repr=False, compare=False)

  def scan(self, target, strict: bool = True):
    return self.payload.scan(target, strict=strict)

  def _send(self, kind: type[Ack] | type[Nack] | type[Progress], cancel: asyncio.Event | None) -> completion_t:
    result = asyncio.get_running_loop().create_future()
    self.submit(kind(id=self.id, subscriber_id=self.subscriber_id, result=result, cancel=cancel))
    return result

  def ack(self, cancel: asyncio.Event | None = None) -> completion_t: return self._send(Ack, cancel)

  def nack(self, cancel: asyncio.Event | None = None) -> completion_t: return self._send(Nack, cancel)

  def progress(self, cancel: asyncio.Event | None = None) -> completion_t: return self._send(Progress, cancel)

@dataclass
class LocalSubscription(Subscription):
  id: str
  topic: str
  _: KW_ONLY
  delivery_queue: ItemLog[LocalMessage] = field(repr=False)
  token: asyncio.Event = field(repr=False)
  submit: submit_t = field(repr=False)
  error: Error | NO_ERROR_T = NO_ERROR

  @property
  def done(self) -> bool: return self.token.is_set()

  async def wait_done(self) -> None: await self.token.wait()

  def cancel(self) -> None:
    if not self.token.is_set(): logger.trace(f"Subscription {self.id} cancelled")
    self.token.set()

  async def close(self) -> Error | NO_ERROR_T:
    result = asyncio.get_running_loop().create_future()
    self.submit(Unsubscribe(id=self.id, topic=self.topic, result=result))
    return await result

  async def messages(self) -> AsyncIterator[LocalMessage]:
    while (msg := await self.delivery_queue.pop()) is not None:
      yield msg

@dataclass
class Broker(BrokerInterface):
  """The in-memory Event Broker

  Usage:

  ```
  broker = Broker()
  if (err := await broker.init(cfg)) is not NO_ERROR: ...
  sub = await broker.subscribe('hello')
  await broker.publish('hello', StringPayload('halo'))
  async for msg in sub.messages():
    err, value = msg.scan(str)
    await msg.ack()
  await broker.close()
  ```
  """

  _id: str = field(default_factory=lambda: generate_id('broker', next(_broker_seq)))
  """The Unique Identity of a Broker"""
  config: BrokerConfig = field(default_factory=BrokerConfig.factory)
  _: KW_ONLY
  start_on_init: bool = True
  """Start the Command Loop during `init`; otherwise during `run`"""
  _ctx: _BrokerCtx = field(default_factory=_BrokerCtx.factory)
  """Stateful Context of the Broker"""

  @property
  def id(self) -> str: return self._id

  @property
  def state(self) -> Lifecycle: return self._ctx['state']

  async def wait_for(self, stage: Lifecycle) -> None:
    """Wait until the Broker has reached the Lifecycle Stage"""
    await self._ctx['lfcl_events'][stage].wait()

  def _transition(self, stage: Lifecycle) -> None:
    logger.trace(f"Broker {self.id} transitioning from {self._ctx['state'].name} to {stage.name}")
    self._ctx['state'] = stage
    self._ctx['lfcl_events'][stage].set()

  ### Module Lifecycle ###

  async def init(self, cfg: Config) -> Error | NO_ERROR_T:
    """Load the Broker's configuration from the `local` section & start it if configured to"""
    logger.trace(f"Initializing Broker {self.id}")
    try:
      config = BrokerConfig.from_map(cfg.sub('local').data, base=self.config)
      BrokerConfig.validate(config)
    except (ValueError, RuntimeError) as e:
      logger.error(f"Invalid configuration for Broker {self.id}: {e}")
      return ConfigError(str(e))
    self.config = config
    logger.debug(f"Broker {self.id} configuration: {self.config}")
    if self.start_on_init: return self.start()
    return NO_ERROR

  def start(self) -> Error | NO_ERROR_T:
    """Schedule the Command Loop; requires a running event loop"""
    if self._ctx['state'] is not Lifecycle.IDLE: raise RuntimeError(f"Broker {self.id} has already been started")
    BrokerConfig.validate(self.config)
    self._ctx['cmd_queue'] = ItemLog.bounded(self.config['cmd_buffer_size'])
    self._ctx['pub_queue'] = ItemLog.bounded(self.config['pub_buffer_size'])
    self._ctx['loop_task'] = asyncio.create_task(
      _log_trapper(self._loop)(),
      name=task_name(self.id, 'loop'),
    )
    # A Loop cancelled before it ever ran still has to drain
    self._ctx['loop_task'].add_done_callback(lambda _: self._shutdown())
    self._transition(Lifecycle.RUNNING)
    logger.info(f"Broker {self.id} started")
    return NO_ERROR

  async def run(self) -> Error | NO_ERROR_T:
    """Start the Broker (if it isn't already) & wait until it stops"""
    if self._ctx['state'] is Lifecycle.IDLE:
      if (err := self.start()) is not NO_ERROR: return err
    await self.wait_for(Lifecycle.STOPPED)
    return NO_ERROR

  async def close(self) -> Error | NO_ERROR_T:
    """Stop the Broker; waits for queued Commands first when `wait_on_close` is set"""
    if self._ctx['state'] is Lifecycle.IDLE: return BrokerStoppedError("broker has not been started")
    if self._ctx['state'] is Lifecycle.STOPPED: return BrokerStoppedError("broker already stopped")
    if self._ctx['state'] is Lifecycle.DRAINING:
      await self.wait_for(Lifecycle.STOPPED)
      return NO_ERROR
    result = asyncio.get_running_loop().create_future()
    signal: close_t = CloseWait(result) if self.config['wait_on_close'] else CloseDirect(result)
    logger.trace(f"Requesting Broker {self.id} to close: {type(signal).__name__}")
    self._ctx['closers'].append(signal)
    self._ctx['wakeup'].set()
    return await result

  ### Client Facade ###

  def _reject(self, cmd: command_t, err: Error) -> None:
    if isinstance(cmd, Subscribe): _resolve(cmd.result, FailedSubscription(err, topic=cmd.topic, id=cmd.id))
    else: _resolve(cmd.result, err)

  def _submit(self, cmd: command_t) -> Error | NO_ERROR_T:
    state = self._ctx['state']
    if state is not Lifecycle.RUNNING:
      err = BrokerStoppedError("broker has not been started") if state is Lifecycle.IDLE else BrokerStoppedError()
      logger.trace(f"Broker {self.id} is {state.name}; rejecting {type(cmd).__name__}")
      self._reject(cmd, err)
      return err
    # Once a close is pending only the already queued Commands are serviced
    if len(self._ctx['closers']) > 0:
      err = BrokerStoppedError("broker is closing")
      logger.trace(f"Broker {self.id} is closing; rejecting {type(cmd).__name__}")
      self._reject(cmd, err)
      return err
    if self._ctx['cmd_queue'].push_nowait(cmd) is not None:
      err = BackpressureError.command()
      logger.trace(f"Broker {self.id} command queue is full; rejecting {type(cmd).__name__}")
      self._reject(cmd, err)
      return err
    self._ctx['wakeup'].set()
    return NO_ERROR

  def publish(self, topic: str, payload: Payload, cancel: asyncio.Event | None = None) -> completion_t:
    """Publish the Payload to every Subscriber of the Topic; never blocks, the Future resolves once fanned out"""
    result = asyncio.get_running_loop().create_future()
    self._submit(Publish(topic=topic, payload=payload, result=result, cancel=cancel))
    return result

  async def subscribe(self, topic: str, cancel: asyncio.Event | None = None) -> Subscription:
    """Subscribe to the Topic; failures are reported through the returned Subscription's `error`"""
    sub_id = generate_id('sub', next(self._ctx['sub_seq']))
    result = asyncio.get_running_loop().create_future()
    self._submit(Subscribe(id=sub_id, topic=topic, result=result, cancel=cancel))
    subscription: Subscription = await result
    if subscription.error is NO_ERROR: self._watch(subscription, cancel)
    return subscription

  async def subscribe_handler(self, topic: str, handler: message_handler_t, cancel: asyncio.Event | None = None) -> Subscription:
    """Subscribe to the Topic & invoke the Handler for every delivered Message"""
    subscription = await self.subscribe(topic, cancel=cancel)
    if subscription.error is not NO_ERROR: return subscription

    async def _consume() -> None:
      async for msg in subscription.messages():
        if _is_set(cancel): return
        try: err = await handler(msg)
        except Exception:
          logger.opt(exception=True).error(f"Handler for Subscription {subscription.id} on `{topic}` raised while processing Message {msg.id}")
          continue
        if is_error(err): logger.warning(f"Handler for Subscription {subscription.id} on `{topic}` failed to process Message {msg.id}: {err}")
      logger.trace(f"Consumer of Subscription {subscription.id} finished")

    self._spawn(_consume, task_name(self.id, subscription.id, 'consume'))
    return subscription

  def _spawn(self, coro: Callable, name: str) -> asyncio.Task:
    task = asyncio.create_task(_log_trapper(coro)(), name=name)
    self._ctx['tasks'].add(task)
    task.add_done_callback(self._ctx['tasks'].discard)
    return task

  def _watch(self, subscription: Subscription, cancel: asyncio.Event | None) -> None:
    """Unsubscribe once the Subscription is done or the caller's Cancellation fires"""
    async def _watch_subscription() -> None:
      waiters = [asyncio.ensure_future(subscription.wait_done())]
      if cancel is not None: waiters.append(asyncio.ensure_future(cancel.wait()))
      try: await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
      finally:
        for w in waiters: w.cancel()
      err = await subscription.close()
      if err is not NO_ERROR: logger.trace(f"Watcher of Subscription {subscription.id} closed it: {err}")
      else: logger.trace(f"Watcher of Subscription {subscription.id} unsubscribed it")

    self._spawn(_watch_subscription, task_name(self.id, subscription.id, 'watch'))

  ### Command Loop ###

  def _close_requested(self, kind: type[CloseDirect] | type[CloseWait]) -> bool:
    return any(isinstance(c, kind) for c in self._ctx['closers'])

  async def _loop(self) -> None:
    logger.trace(f"Broker {self.id} command loop started")
    cmd_queue, pub_queue = self._ctx['cmd_queue'], self._ctx['pub_queue']
    wakeup = self._ctx['wakeup']
    try:
      while True:
        if self._close_requested(CloseDirect):
          logger.trace(f"Broker {self.id} received a direct close")
          break
        if (cmd := cmd_queue.pop_nowait()) is not None:
          self._service(self._handle_command, cmd)
        elif (pub := pub_queue.pop_nowait()) is not None:
          self._service(self._handle_publish, pub)
        elif self._close_requested(CloseWait):
          logger.trace(f"Broker {self.id} received a close & has nothing left to service")
          break
        else:
          wakeup.clear()
          await wakeup.wait()
          continue
        # Let the consumers run between Commands
        await asyncio.sleep(0)
    finally:
      self._shutdown()

  def _service(self, handler: Callable[[Any], None], cmd: command_t) -> None:
    try: handler(cmd)
    except Exception as e:
      logger.opt(exception=e).error(f"Broker {self.id} failed to handle {type(cmd).__name__}")
      self._reject(cmd, HandlerFaultError(f"failed to handle {type(cmd).__name__}: {e}"))

  def _handle_command(self, cmd: command_t) -> None:
    logger.trace(f"Broker {self.id} handling {type(cmd).__name__}")
    if isinstance(cmd, Publish): self._handle_publish_request(cmd)
    elif isinstance(cmd, Subscribe): self._handle_subscribe(cmd)
    elif isinstance(cmd, Unsubscribe): self._handle_unsubscribe(cmd)
    elif isinstance(cmd, Ack): self._handle_ack(cmd)
    elif isinstance(cmd, Nack): self._handle_nack(cmd)
    elif isinstance(cmd, Progress): self._handle_progress(cmd)
    else: assert_never(cmd)

  def _canceled(self, cmd: command_t) -> bool:
    return self._ctx['cancel'].is_set() or _is_set(getattr(cmd, 'cancel', None))

  def _handle_publish_request(self, cmd: Publish) -> None:
    if self._canceled(cmd): return _resolve(cmd.result, OperationCanceledError())
    if self._ctx['pub_queue'].push_nowait(cmd) is not None:
      logger.trace(f"Broker {self.id} publish queue is full; rejecting a publish to `{cmd.topic}`")
      _resolve(cmd.result, BackpressureError.publish())

  def _handle_publish(self, cmd: Publish) -> None:
    if self._canceled(cmd): return _resolve(cmd.result, OperationCanceledError())
    subscriber_ids = self._ctx['topics'].get(cmd.topic)
    if not subscriber_ids:
      logger.trace(f"Broker {self.id} has no subscribers for `{cmd.topic}`")
      return _resolve(cmd.result, NO_ERROR)

    targets = [ (sub_id, self._ctx['subscribers'][sub_id]) for sub_id in subscriber_ids ]
    for sub_id, sub in targets:
      # The last slot is reserved for redelivery
      if len(sub['delivery_queue']) >= sub['delivery_queue'].max_size - 1:
        logger.trace(f"Broker {self.id} subscriber {sub_id} is congested; rejecting a publish to `{cmd.topic}`")
        return _resolve(cmd.result, BackpressureError.subscriber(sub_id))

    for sub_id, sub in targets:
      msg = LocalMessage(
        id=generate_id('msg', next(self._ctx['msg_seq'])),
        subscriber_id=sub_id,
        payload=cmd.payload,
        submit=self._submit,
      )
      self._ctx['inflight'][msg.id] = msg
      rejected = sub['delivery_queue'].push_nowait(msg)
      assert rejected is None, f"Delivery Queue of {sub_id} rejected an admitted Message"
    logger.trace(f"Broker {self.id} delivered a publish to `{cmd.topic}` to {len(targets)} subscribers")
    _resolve(cmd.result, NO_ERROR)

  def _handle_subscribe(self, cmd: Subscribe) -> None:
    if self._canceled(cmd): return _resolve(cmd.result, FailedSubscription(OperationCanceledError(), topic=cmd.topic, id=cmd.id))
    if cmd.result.done():
      logger.trace(f"Broker {self.id} dropping Subscribe {cmd.id}; the subscriber stopped waiting")
      return
    state: _SubscriberState = {
      'topic': cmd.topic,
      'delivery_queue': ItemLog.bounded(self.config['sub_buffer_size'] + 1),
      'token': asyncio.Event(),
    }
    self._ctx['subscribers'][cmd.id] = state
    self._ctx['topics'].setdefault(cmd.topic, []).append(cmd.id)
    logger.trace(f"Broker {self.id} subscribed {cmd.id} to `{cmd.topic}`")
    _resolve(cmd.result, LocalSubscription(
      id=cmd.id,
      topic=cmd.topic,
      delivery_queue=state['delivery_queue'],
      token=state['token'],
      submit=self._submit,
    ))

  def _handle_unsubscribe(self, cmd: Unsubscribe) -> None:
    state = self._ctx['subscribers'].get(cmd.id)
    if state is None: return _resolve(cmd.result, AlreadyClosedError())
    state['token'].set()
    state['delivery_queue'].close()
    subscriber_ids = self._ctx['topics'].get(state['topic'], [])
    if cmd.id in subscriber_ids: subscriber_ids.remove(cmd.id)
    if not subscriber_ids: self._ctx['topics'].pop(state['topic'], None)
    del self._ctx['subscribers'][cmd.id]
    logger.trace(f"Broker {self.id} unsubscribed {cmd.id} from `{state['topic']}`")
    _resolve(cmd.result, NO_ERROR)

  def _handle_ack(self, cmd: Ack) -> None:
    if self._canceled(cmd): return _resolve(cmd.result, OperationCanceledError())
    self._ctx['inflight'].pop(cmd.id, None)
    _resolve(cmd.result, NO_ERROR)

  def _handle_nack(self, cmd: Nack) -> None:
    if self._canceled(cmd): return _resolve(cmd.result, OperationCanceledError())
    msg = self._ctx['inflight'].get(cmd.id)
    if msg is None: return _resolve(cmd.result, AlreadyClosedError(f"message `{cmd.id}` is no longer in flight"))
    state = self._ctx['subscribers'].get(msg.subscriber_id)
    if state is None: return _resolve(cmd.result, AlreadyClosedError(f"subscriber `{msg.subscriber_id}` already closed"))
    if state['delivery_queue'].push_nowait(msg) is not None: return _resolve(cmd.result, BackpressureError.subscriber(msg.subscriber_id))
    logger.trace(f"Broker {self.id} redelivered {msg.id} to {msg.subscriber_id}")
    _resolve(cmd.result, NO_ERROR)

  def _handle_progress(self, cmd: Progress) -> None:
    if self._canceled(cmd): return _resolve(cmd.result, OperationCanceledError())
    _resolve(cmd.result, NO_ERROR)

  def _shutdown(self) -> None:
    """Drain the Broker; everything still outstanding is rejected w/ `BrokerStoppedError`"""
    if self._ctx['state'] in (Lifecycle.DRAINING, Lifecycle.STOPPED): return
    self._transition(Lifecycle.DRAINING)
    self._ctx['cancel'].set()
    for state in self._ctx['subscribers'].values():
      state['token'].set()
      state['delivery_queue'].close()
    self._ctx['subscribers'].clear()
    self._ctx['topics'].clear()
    self._ctx['inflight'].clear()

    stopped = BrokerStoppedError()
    dropped = self._ctx['cmd_queue'].close() + self._ctx['pub_queue'].close()
    for cmd in dropped: self._reject(cmd, stopped)
    if len(dropped) > 0: logger.debug(f"Broker {self.id} rejected {len(dropped)} outstanding commands")

    self._transition(Lifecycle.STOPPED)
    for closer in self._ctx['closers']: _resolve(closer.result, NO_ERROR)
    self._ctx['closers'].clear()
    logger.info(f"Broker {self.id} stopped")

def new_broker() -> Broker: return Broker()

brokers.register('local', new_broker)
brokers.register('', new_broker)
