"""
Cadence - asynchronous flow-control primitives.

- cadence.core: errors, result envelope, structured logging, settings
- cadence.execution: bounded concurrency, debounce/throttle, retry, recovery
"""

__version__ = "0.1.0"

from cadence.core import *  # noqa
from cadence.execution import *  # noqa
