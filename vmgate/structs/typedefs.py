"""
Rudimentary type definitions shared across the modules.

Some stdlib classes are generics in the type-sheds, but not at runtime
(e.g. `logging.LoggerAdapter`), so they are defined here once and reused.
"""
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# Either a module-level logger, or a per-object one (see `vmgate.engines.loggers.ObjectLogger`).
Logger = Union[logging.Logger, LoggerAdapter]
