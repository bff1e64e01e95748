"""
Kubernetes resource quantities: ``2``, ``500m``, ``1Gi``, ``1024Mi``, ``1e3``.

The apiservers compare the quantities by their values, not by their notation:
``1Gi`` and ``1024Mi`` are the same amount of memory. The clients can freely
re-serialize the quantities in any notation, so the reviewed objects must
be compared the same way, or else a no-op rewrite looks like a change.

Only the fields known to hold the quantities are compared this way.
Everywhere else, e.g. in labels, ``"1k"`` and ``"1000"`` are different strings.
"""
import decimal
import re
from typing import Any, Collection, Optional, Sequence, Tuple

# None is a wildcard for any key, e.g. for any resource name in the requests.
QuantityFieldPattern = Tuple[Optional[str], ...]

QUANTITY_FIELDS: Collection[QuantityFieldPattern] = (
    ('resources', 'requests', None),  # in the domain, and in the PVCs/DVs storage
    ('resources', 'limits', None),
    ('memory', 'guest'),
    ('memory', 'maxGuest'),
    ('emptyDisk', 'capacity'),
    ('hostDisk', 'capacity'),
)

SUFFIXES = {
    'Ki': 2 ** 10, 'Mi': 2 ** 20, 'Gi': 2 ** 30, 'Ti': 2 ** 40, 'Pi': 2 ** 50, 'Ei': 2 ** 60,
    'n': decimal.Decimal('1e-9'), 'u': decimal.Decimal('1e-6'), 'm': decimal.Decimal('1e-3'),
    '': 1, 'k': 10 ** 3, 'M': 10 ** 6, 'G': 10 ** 9, 'T': 10 ** 12, 'P': 10 ** 15, 'E': 10 ** 18,
}

# The exponent goes before the single-letter suffixes: "1E3" is 1000, but "1E" is 10**18.
QUANTITY_RE = re.compile(r'''
    ^
    (?P<number>[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+))
    (?:
        (?P<binary>Ki|Mi|Gi|Ti|Pi|Ei) |
        [eE](?P<exponent>[+-]?[0-9]+) |
        (?P<decimal>[numkMGTPE])
    )?
    $
''', re.VERBOSE)

# Large enough for the exact products of the biggest suffixes, unlike the default 28 digits.
PRECISION = 100


def is_quantity_field(path: Sequence[str]) -> bool:
    """ Check if the field (as a path of keys, with no list indexes) holds a quantity. """
    for pattern in QUANTITY_FIELDS:
        if len(path) >= len(pattern):
            tail = path[len(path) - len(pattern):]
            if all(expected is None or expected == key for expected, key in zip(pattern, tail)):
                return True
    return False


def is_quantity(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    elif isinstance(value, (int, float)):
        return True
    elif isinstance(value, str):
        return QUANTITY_RE.match(value.strip()) is not None
    else:
        return False


def parse_quantity(value: Any) -> decimal.Decimal:
    """
    Convert a quantity in any notation into its exact value.

    Raises `ValueError` for the values that are not quantities.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Not a quantity: {value!r}")

    with decimal.localcontext() as context:
        context.prec = PRECISION
        if isinstance(value, (int, float)):
            return decimal.Decimal(str(value))

        match = QUANTITY_RE.match(value.strip())
        if match is None:
            raise ValueError(f"Not a quantity: {value!r}")
        number = decimal.Decimal(match.group('number'))
        if match.group('binary'):
            return number * SUFFIXES[match.group('binary')]
        elif match.group('exponent'):
            return number.scaleb(int(match.group('exponent')))
        else:
            return number * SUFFIXES[match.group('decimal') or '']
