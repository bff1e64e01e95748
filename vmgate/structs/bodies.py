"""
All the structures coming from the Kubernetes API in the admission reviews.

The bodies are kept as plain JSON-decoded dicts, the same as the apiservers
send them. For type-checking, they are declared as `TypedDict` up to the level
the webhook actually uses. Arbitrary other fields of VirtualMachines are
present at runtime and are compared as is, but are not declared here.

.. note::

    The nested schema of ``kubevirt.io/v1`` VirtualMachines is not replicated.
    The field checkers refer to the fields by their paths only
    (e.g. ``spec.template.spec.domain.devices.disks``), and treat whatever
    is found there as an opaque JSON value.
"""
from typing import Any, List, Mapping, Optional, cast

from typing_extensions import TypedDict

Labels = Mapping[str, str]
Annotations = Mapping[str, str]


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Labels
    annotations: Annotations
    finalizers: List[str]
    ownerReferences: List[Mapping[str, Any]]
    managedFields: List[Mapping[str, Any]]
    resourceVersion: str
    generation: int
    deletionTimestamp: str
    deletionGracePeriodSeconds: int
    creationTimestamp: str
    selfLink: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


class ObjectReference(TypedDict, total=False):
    apiVersion: str
    kind: str
    namespace: Optional[str]
    name: str
    uid: str


def build_object_reference(
        body: Mapping[str, Any],
) -> ObjectReference:
    """
    Construct an object reference for the logs.

    Keep in mind that some fields can be absent or null: e.g. ``uid`` for objects
    under creation, or ``apiVersion`` and even ``metadata`` in malformed reviews.
    """
    meta = get_metadata(body)
    ref = dict(
        apiVersion=body.get('apiVersion'),
        kind=body.get('kind'),
        name=meta.get('name'),
        uid=meta.get('uid'),
        namespace=meta.get('namespace'),
    )
    return cast(ObjectReference, {key: val for key, val in ref.items() if val})


def get_metadata(body: Mapping[str, Any]) -> RawMeta:
    """ Get the metadata, or empty metadata if they are null or malformed. """
    meta = body.get('metadata')
    return cast(RawMeta, meta) if isinstance(meta, Mapping) else RawMeta()


def get_api_group(body: Mapping[str, Any]) -> str:
    """ Extract the API group from ``apiVersion``: ``kubevirt.io/v1`` -> ``kubevirt.io``. """
    api_version = body.get('apiVersion')
    api_version = api_version if isinstance(api_version, str) else ''
    group, _, _ = api_version.rpartition('/')
    return group
