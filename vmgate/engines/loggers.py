"""
Logging of the reviews with the references to the reviewed objects.

Every admission review gets its own `ObjectLogger`, which carries a reference
to the reviewed VirtualMachine. The reference is rendered as a prefix
in the text logs (``[namespace/name] message``), or as a separate field
in the JSON logs (``{"object": {...}, "message": ...}``).

The records of other loggers (aiohttp, asyncio, the CLI) have no reference,
and are rendered as usual by the same formatters.
"""
import copy
import enum
import logging
from typing import Any, Mapping, MutableMapping, Optional, Sequence, Tuple, Union

import pythonjsonlogger.core
import pythonjsonlogger.json

from vmgate.structs import bodies, typedefs

DEFAULT_JSON_REFKEY = 'object'
""" A key for object references in JSON logs, as seen by the log parsers. """

REFERENCE_ATTR = 'k8s_ref'

# The upper bounds of the log levels for the "severity" field of JSON logs.
SEVERITIES: Sequence[Tuple[int, str]] = [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
]
FATAL_SEVERITY = 'fatal'

# Too chatty for the webhook's logs, unless explicitly debugged.
LIBRARY_LOGGERS = ['asyncio', 'aiohttp.access']


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = enum.auto()


def get_reference(record: logging.LogRecord) -> Optional[Mapping[str, Any]]:
    return getattr(record, REFERENCE_ATTR, None)


def get_severity(levelno: int) -> str:
    for threshold, severity in SEVERITIES:
        if levelno <= threshold:
            return severity
    return FATAL_SEVERITY


class ObjectFormatter(logging.Formatter):
    """ A marker of the webhook's own formatters (e.g. to find its handlers). """


class ObjectTextFormatter(ObjectFormatter, logging.Formatter):
    pass


class ObjectJsonFormatter(ObjectFormatter, pythonjsonlogger.json.JsonFormatter):
    """
    JSON logs with the reviewed object's reference under a dedicated key.

    The raw record attribute with the reference is excluded from the output,
    so that the reference is rendered once under the ``refkey`` only.
    """

    def __init__(
            self,
            *args: Any,
            refkey: Optional[str] = None,
            **kwargs: Any,
    ) -> None:
        reserved_attrs = set(kwargs.pop('reserved_attrs', pythonjsonlogger.core.RESERVED_ATTRS))
        kwargs['reserved_attrs'] = reserved_attrs | {REFERENCE_ATTR}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self._refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: MutableMapping[str, object],
            record: logging.LogRecord,
            message_dict: MutableMapping[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        ref = get_reference(record)
        if ref is not None:
            log_record[self._refkey] = ref
        log_record.setdefault('severity', get_severity(record.levelno))


class ObjectPrefixingMixin(ObjectFormatter):
    """ Prepend the messages with the object's namespace & name, if known. """

    def format(self, record: logging.LogRecord) -> str:
        ref = get_reference(record)
        if ref is not None:
            namespace = ref.get('namespace', '')
            name = ref.get('name', '')
            prefix = f"[{namespace}/{name}]" if namespace else f"[{name}]"
            record = copy.copy(record)  # the same record goes to other handlers unprefixed
            record.msg = f"{prefix} {record.msg}"
        return super().format(record)


class ObjectPrefixingTextFormatter(ObjectPrefixingMixin, ObjectTextFormatter):
    pass


class ObjectPrefixingJsonFormatter(ObjectPrefixingMixin, ObjectJsonFormatter):
    pass


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A logger of one admission review, bound to the reviewed object.

    All records get the object's reference (see `bodies.build_object_reference`)
    as an extra attribute, which the formatters above render as they see fit.
    The extras passed to the individual log calls are kept too.
    """

    def __init__(self, *, body: Mapping[str, Any]) -> None:
        super().__init__(logger, {REFERENCE_ATTR: bodies.build_object_reference(body)})

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> Tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get('extra', {})}
        return msg, kwargs


logger = logging.getLogger('vmgate.objects')


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: Union[LogFormat, str] = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> None:
    """
    Set up the root logger for the webhook server or the CLI commands.
    """
    log_level = 'DEBUG' if debug or verbose else 'WARNING' if quiet else 'INFO'
    formatter = make_formatter(log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey)
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # A null handler stops the fallback to the "last resort" stderr handler.
    for name in LIBRARY_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.propagate = bool(debug)
        if not debug:
            library_logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: Union[LogFormat, str] = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> ObjectFormatter:
    """
    Pick a formatter for the format and the prefixing mode.

    With no explicit prefixing mode, the text logs are prefixed with
    the objects' names, and the JSON logs are not (they have the references).
    """
    if log_prefix is None:
        log_prefix = log_format is not LogFormat.JSON

    if log_format is LogFormat.JSON:
        json_cls = ObjectPrefixingJsonFormatter if log_prefix else ObjectJsonFormatter
        return json_cls(refkey=log_refkey)

    if isinstance(log_format, LogFormat):
        fmt = log_format.value
    elif isinstance(log_format, str):
        fmt = log_format
    else:
        raise ValueError(f"Unsupported log format: {log_format!r}")
    text_cls = ObjectPrefixingTextFormatter if log_prefix else ObjectTextFormatter
    return text_cls(fmt)
