"""
Some basic dicts and field-in-a-dict manipulation helpers.

The bodies under review are plain JSON-decoded dicts, exactly as they arrive
in the admission reviews. Everything here works on such dicts only.
"""
import collections.abc
import enum
from typing import Any, List, Mapping, MutableMapping, Optional, Tuple, TypeVar, Union

from vmgate.structs import quantities

FieldPath = Tuple[str, ...]
FieldSpec = Union[None, str, FieldPath, List[str]]

_T = TypeVar('_T')


class _UNSET(enum.Enum):
    token = enum.auto()


def parse_field(
        field: FieldSpec,
) -> FieldPath:
    """
    Convert any field into a tuple of nested sub-fields.

    Supported notations:

    * ``None`` (for root of a dict).
    * ``"field.subfield"``
    * ``("field", "subfield")``
    * ``["field", "subfield"]``
    """
    if field is None:
        return tuple()
    elif isinstance(field, str):
        return tuple(field.split('.'))
    elif isinstance(field, (list, tuple)):
        return tuple(field)
    else:
        raise ValueError(f"Field must be either a str, or a list/tuple. Got {field!r}")


def resolve(
        d: Optional[Mapping[Any, Any]],
        field: FieldSpec,
        default: Union[_T, _UNSET] = _UNSET.token,
) -> Union[Any, _T]:
    """
    Retrieve a nested sub-field from a dict.

    If ``default`` is provided, then all non-existent and non-mapping values
    are assumed to be empty dictionaries, and ``default`` is returned.

    Otherwise (with no default), attempts to get the inexistent keys will
    raise either a ``TypeError`` or ``KeyError``:

    * ``KeyError`` for actual absence of keys while the structures are correct.
    * ``TypeError`` for attempting to get a key for a non-dictionary:
      e.g. ``None['key']``, ``"string"['key']``, ``123['key']``, etc.

    The "safe" mode (with a default) is what the field checkers use:
    a VirtualMachine without e.g. ``spec.template`` simply has no fields there.
    """
    path = parse_field(field)
    try:
        result = d
        for key in path:
            if isinstance(result, collections.abc.Mapping):
                result = result[key]
            elif not isinstance(default, _UNSET):
                return default
            else:
                raise TypeError(f"The structure is not a dict with field {key!r}: {result!r}")
        return result
    except KeyError:
        if not isinstance(default, _UNSET):
            return default
        raise


def ensure(
        d: MutableMapping[Any, Any],
        field: FieldSpec,
        value: Any,
) -> None:
    """
    Force-set a nested sub-field in a dict.

    If some levels of parents are missing, they are created as empty dicts
    (this what makes it "ensuring", not just "setting").
    """
    result = d
    path = parse_field(field)
    if not path:
        raise ValueError("Setting a root of a dict is impossible. Provide the specific fields.")
    for key in path[:-1]:
        try:
            result = result[key]
        except KeyError:
            result = result.setdefault(key, {})
    result[path[-1]] = value


def discard(
        d: MutableMapping[Any, Any],
        field: FieldSpec,
) -> None:
    """
    Remove a nested sub-field from a dict if it is there.

    Unlike `ensure`, it never creates the intermediate parents. And unlike
    a cleaning removal, it never removes the parents that become empty:
    the surrounding structure stays as it was, only the leaf key is gone.
    If any parent is absent or is not a dict, the goal is already achieved.
    """
    path = parse_field(field)
    if not path:
        raise ValueError("Removing a root of a dict is impossible. Provide a specific field.")
    parent = resolve(d, path[:-1], None)
    if isinstance(parent, collections.abc.MutableMapping):
        parent.pop(path[-1], None)


# The sections where an empty dict is the same as no dict at all: the maps (labels, requests),
# and the non-optional sub-structures (spec, domain, devices, resources) that always exist
# in the apiserver's view of an object, even if empty. All other sections are optional:
# e.g. ``cpu: {}`` or ``masquerade: {}`` is a present section with defaults, not an absence.
EMPTY_AS_ABSENT = frozenset({
    'metadata', 'labels', 'annotations',
    'spec', 'status', 'nodeSelector',
    'domain', 'devices', 'resources', 'requests', 'limits',
})


def is_erased(value: Any, field: FieldSpec = None) -> bool:
    """
    Check if the value is one of the "no value" forms in this field.

    ``None`` and ``[]`` are always erased. ``{}`` is erased only in the fields
    where an empty section means nothing (see `EMPTY_AS_ABSENT`) and at the root.
    """
    path = parse_field(field)
    if value is None:
        return True
    elif isinstance(value, collections.abc.Mapping):
        return len(value) == 0 and (not path or path[-1] in EMPTY_AS_ABSENT)
    elif isinstance(value, (list, tuple)):
        return len(value) == 0
    else:
        return False


def semantic_equal(a: Any, b: Any, field: FieldSpec = None) -> bool:
    """
    Compare two JSON-like structures the way Kubernetes compares objects.

    An absent key, ``None``, and an empty list are all equal to each other:
    all of them are the "erased" form of a field. An empty dict joins them
    only where `is_erased` says so. The quantities (``1Gi`` vs. ``1024Mi``)
    are compared by their values in the fields known to hold the quantities.
    Everything else is compared structurally. The order of list items matters.

    Mind that ``False``, ``0``, and ``""`` are real values and are not erased:
    e.g. ``running: false`` is different from no ``running`` field at all.

    The ``field`` is where the values are located in the object, e.g. ``"spec"``;
    the root by default. The list indexes are not a part of the field's path.
    """
    path = parse_field(field)
    if is_erased(a, path) and is_erased(b, path):
        return True
    elif a is None and isinstance(b, collections.abc.Mapping) and is_erased({}, path):
        return semantic_equal({}, b, path)
    elif b is None and isinstance(a, collections.abc.Mapping) and is_erased({}, path):
        return semantic_equal(a, {}, path)
    elif isinstance(a, collections.abc.Mapping) and isinstance(b, collections.abc.Mapping):
        keys = set(a) | set(b)
        return all(semantic_equal(a.get(key), b.get(key), path + (key,)) for key in keys)
    elif isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(semantic_equal(x, y, path) for x, y in zip(a, b))
    elif isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b  # so that True != 1, and False != 0.
    elif quantities.is_quantity_field(path) and quantities.is_quantity(a) and quantities.is_quantity(b):
        return quantities.parse_quantity(a) == quantities.parse_quantity(b)
    else:
        return bool(a == b)
