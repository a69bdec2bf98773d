"""

# Configuration

Application configuration is a tree of Key-Value Maps loaded from a YAML or JSON document. Modules receive a `Config`
view scoped to their own section (ex. the event hook gets `event`, the broker gets `event.<broker>`).

"""
from __future__ import annotations
import pathlib, orjson, yaml
from typing import Any
from collections.abc import Mapping
from dataclasses import dataclass, field
from loguru import logger

class ConfigLoadError(RuntimeError): pass

_MISSING = object()

@dataclass(frozen=True)
class Config:
  """A read only view over a (sub)tree of the configuration"""

  data: Mapping[str, Any] = field(default_factory=dict)
  """The Key-Value Map backing this view"""
  path: str = ''
  """The dotted path of this view relative to the root; empty for the root"""

  @staticmethod
  def from_map(data: Mapping[str, Any] | None) -> Config:
    if data is None: data = {}
    if not isinstance(data, Mapping): raise ConfigLoadError(f"Configuration must be a Map; got {type(data).__name__}")
    return Config(data=data)

  def _lookup(self, path: str) -> Any:
    node: Any = self.data
    for key in (k for k in path.split('.') if k):
      if not isinstance(node, Mapping) or key not in node: return _MISSING
      node = node[key]
    return node

  def _join(self, path: str) -> str: return '.'.join(p for p in (self.path, path) if p)

  def has(self, path: str) -> bool:
    """Is the dotted path set"""
    return self._lookup(path) is not _MISSING

  def get(self, path: str, default: Any = None) -> Any:
    """Get the value at the dotted path or the default if it isn't set"""
    value = self._lookup(path)
    return default if value is _MISSING else value

  def sub(self, path: str) -> Config:
    """Scope the view to the Map at the dotted path; an unset path yields an empty view"""
    value = self._lookup(path)
    if value is _MISSING or value is None: value = {}
    if not isinstance(value, Mapping): raise ConfigLoadError(f"Configuration key '{self._join(path)}' must be a Map; got {type(value).__name__}")
    return Config(data=value, path=self._join(path))

  def as_map(self) -> dict[str, Any]:
    """A (shallow) copy of the underlying Map"""
    return dict(self.data)

def load(file: str | pathlib.Path) -> Config:
  """Load a Configuration File; the format is chosen by its suffix"""
  _file = pathlib.Path(file)
  if not (_file.exists() and _file.is_file()): raise ConfigLoadError(f"File '{_file}' does not exist or is not a file")
  logger.debug(f"Loading configuration from {_file.as_posix()}")
  if _file.suffix == '.json':
    try: data = orjson.loads(_file.read_bytes())
    except orjson.JSONDecodeError as e: raise ConfigLoadError(f"Failed to parse {_file}: {e}") from e
  elif _file.suffix in ('.yaml', '.yml'):
    try: data = yaml.safe_load(_file.read_text())
    except yaml.YAMLError as e: raise ConfigLoadError(f"Failed to parse {_file}: {e}") from e
  else: raise ConfigLoadError(f"Unsupported configuration format: {_file.suffix}")
  return Config.from_map(data)
