"""A minimal asynchronous Test Harness

Tests are coroutine functions returning a `TestResult`; they are grouped by the module they exercise & each group is run
concurrently on a single event loop.
"""
from __future__ import annotations
import enum, asyncio, functools
from dataclasses import dataclass, field
from typing import Callable, Coroutine, Any

test_fn_t = Callable[..., Coroutine[Any, Any, 'TestResult']]

@dataclass
class TestError:
  name: str
  error: BaseException

class TestCode(enum.Enum):
  PASS = enum.auto()
  FAIL = enum.auto()
  SKIP = enum.auto()

@dataclass(frozen=True)
class TestResult:
  code: TestCode
  """The Result of the Test."""
  msg: str | None = None
  """An Optional Descriptive Message associated w/ the state of the Test's result. ex. A Reason for failure."""

  def __str__(self) -> str:
    if self.msg is None: return f"Test {self.code.name}"
    return f"Test {self.code.name}: {self.msg}"

def bounded(seconds: float = 5.0) -> Callable[[test_fn_t], test_fn_t]:
  """Fail a Test instead of hanging the suite if it doesn't complete within `seconds`."""
  def _bounded_wrapper(tst: test_fn_t) -> test_fn_t:
    @functools.wraps(tst)
    async def _wrapper(*args, **kwargs) -> TestResult:
      try:
        async with asyncio.timeout(seconds):
          return await tst(*args, **kwargs)
      except TimeoutError: return TestResult(TestCode.FAIL, f"Timed out after {seconds}s")
    return _wrapper
  return _bounded_wrapper

@dataclass
class TestRegistry:
  tests: dict[str, dict[str, test_fn_t]] = field(default_factory=dict)

  @property
  def groups(self) -> tuple[str, ...]:
    """The Registered Test Groups."""
    return tuple(self.tests.keys())

  def register(self, group_name: str, name: str, fn: test_fn_t) -> None:
    """Register a Test in a Group."""
    if group_name not in self.tests: self.tests[group_name] = {}
    if name in self.tests[group_name]: raise ValueError(f"Test {name} is already registered")
    self.tests[group_name][name] = fn

  def register_module(self, group_name: str, module: Any) -> None:
    """Register every name listed in a Test Module's `__all__`; the `test_` prefix is stripped from the Test Name."""
    for attr in module.__all__:
      self.register(group_name, attr.removeprefix('test_'), getattr(module, attr))

  def deregister(self, group_name: str, name: str) -> None:
    """Deregister a Test from a Group."""
    if group_name not in self.tests: raise ValueError(f"Group {group_name} does not exist")
    if name not in self.tests[group_name]: raise ValueError(f"Test {name} is not registered")
    del self.tests[group_name][name]
    if len(self.tests[group_name]) == 0: del self.tests[group_name]

  def get_group_tests(self, group_name: str, *args, **kwargs) -> dict[str, Coroutine[Any, Any, TestResult]]:
    """Get the Tests in each Group."""
    if group_name not in self.tests: raise ValueError(f"Group {group_name} does not exist")
    return { name: fn(*args, **kwargs) for name, fn in self.tests[group_name].items() }

test_registry = TestRegistry()
"""The Shared Test Registry."""
