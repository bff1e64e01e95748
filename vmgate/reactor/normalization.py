"""
Normalization of the system-managed metadata before the final comparison.

These fields are managed by the apiservers and differ between the old & new
objects on every stored update, regardless of what the user has changed.
They must never be treated as the user's changes to the metadata.

The field set is fixed and is independent of the field checkers.
"""
from typing import Any, MutableMapping

from vmgate.structs import dicts

SYSTEM_METADATA_FIELDS = (
    'resourceVersion',
    'generation',
    'managedFields',
    'selfLink',
    'uid',  # immutable, but normalized anyway for consistency.
    'creationTimestamp',  # immutable too.
    'deletionTimestamp',
    'deletionGracePeriodSeconds',
)


def normalize_metadata(
        old: MutableMapping[str, Any],
        new: MutableMapping[str, Any],
) -> None:
    """
    Erase the system-managed metadata fields in both bodies in place.

    Labels, annotations, finalizers, owner references, and other user-managed
    fields remain intact and are compared as usual.
    """
    for field in SYSTEM_METADATA_FIELDS:
        dicts.discard(old, ('metadata', field))
        dicts.discard(new, ('metadata', field))
