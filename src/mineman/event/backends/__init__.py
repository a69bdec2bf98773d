"""The bundled Event Broker Backends; importing this package registers them w/ `mineman.event.brokers`"""
from . import local
