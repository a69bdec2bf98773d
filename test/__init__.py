from mineman.testing import test_registry

def register_tests() -> None:
  from .tests import itemlog, payload, broker, event, config
  test_registry.register_module("mineman.concurrency.log", itemlog)
  test_registry.register_module("mineman.event.payload", payload)
  test_registry.register_module("mineman.event.backends.local", broker)
  test_registry.register_module("mineman.event", event)
  test_registry.register_module("mineman.config", config)
