"""

# Application Contracts

The contracts the host application uses to drive its modules: a Module is initialized from its configuration section
& closed on shutdown; a Hook is a Module that additionally runs alongside the application.

"""
from __future__ import annotations
import enum
from typing import Protocol, runtime_checkable, Callable
from abc import abstractmethod
from dataclasses import dataclass, field
from loguru import logger

from mineman.errors import Error, NO_ERROR_T
from mineman.config import Config

class Lifecycle(enum.Enum):
  IDLE = enum.auto()
  """Created but not yet started"""
  RUNNING = enum.auto()
  """Started & servicing requests"""
  DRAINING = enum.auto()
  """Shutdown was requested; outstanding work is being rejected or flushed"""
  STOPPED = enum.auto()
  """Fully stopped; can't be restarted"""

@runtime_checkable
class Module(Protocol):
  """A unit of the application w/ a managed lifecycle"""

  @abstractmethod
  async def init(self, cfg: Config) -> Error | NO_ERROR_T: ...

  @abstractmethod
  async def close(self) -> Error | NO_ERROR_T: ...

@runtime_checkable
class Hook(Module, Protocol):
  """A Module that runs alongside the application once every Module is initialized"""

  @abstractmethod
  async def run(self) -> Error | NO_ERROR_T: ...

  def module_loaded(self, m: Module) -> None:
    """Notified once a Module has been created"""

  def module_initialized(self, m: Module) -> None:
    """Notified once a Module has been initialized"""

module_factory_t = Callable[[], Module]
"""TypeHint: A Factory producing a new, uninitialized, Module"""

@dataclass
class ModuleRegistry:
  """A Registry of named Module Factories"""

  factories: dict[str, module_factory_t] = field(default_factory=dict)

  def register(self, name: str, factory: module_factory_t) -> None:
    if name in self.factories: logger.warning(f"Replacing the registered module factory `{name}`")
    self.factories[name] = factory

  def get(self, name: str) -> module_factory_t:
    if name not in self.factories: raise KeyError(f"No module registered as `{name}`")
    return self.factories[name]

  def load(self) -> list[module_factory_t]:
    """Every registered Factory (a Factory registered under several names is listed once)"""
    return list(dict.fromkeys(self.factories.values()))

  def load_map(self) -> dict[str, module_factory_t]:
    return dict(self.factories)
