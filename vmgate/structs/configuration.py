"""
All configuration flags, options, settings to fine-tune the webhook.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).

The settings are static for the lifetime of the webhook process:
they are read on every request, but are never reloaded.
"""
import dataclasses
from typing import Dict, Optional

from vmgate.structs import tokens


def _default_subresources() -> Dict[tokens.AuthorizationToken, str]:
    return {
        tokens.AuthorizationToken.FULL_ADMIN: 'full-admin',
        tokens.AuthorizationToken.STORAGE: 'storage-admin',
        tokens.AuthorizationToken.NETWORK: 'network-admin',
        tokens.AuthorizationToken.COMPUTE: 'compute-admin',
        tokens.AuthorizationToken.DEVICES: 'devices-admin',
        tokens.AuthorizationToken.LIFECYCLE: 'lifecycle-admin',
        tokens.AuthorizationToken.CDROM_MEDIA: 'cdrom-user',
    }


@dataclasses.dataclass
class AuthorizationSettings:

    group: str = 'kubevirt.io'
    """
    The API group of the resource attributes in the access reviews.
    """

    resource: str = 'virtualmachines'
    """
    The resource (plural name) of the resource attributes in the access reviews.
    """

    verb: str = 'update'
    """
    The verb of the resource attributes in the access reviews.
    """

    subresources: Dict[tokens.AuthorizationToken, str] = dataclasses.field(
        default_factory=_default_subresources)
    """
    RBAC subresources that grant the tokens, e.g. ``storage-admin``.

    A ClusterRole granting the token to a user then looks like this::

        rules:
          - apiGroups: ["kubevirt.io"]
            resources: ["virtualmachines/storage-admin"]
            verbs: ["update"]
    """

    timeout: Optional[float] = 10.0
    """
    How long (in seconds) to wait for one permission check before failing.

    Keep it well below the webhook's ``timeoutSeconds`` (max. 30 seconds),
    since the apiservers give up on the whole request after that.
    ``None`` disables the timeout (the apiservers' timeout still applies).
    """

    concurrent_queries: bool = False
    """
    Should the granular permissions be checked concurrently or one by one?

    The checks are independent, so they can run in parallel to reduce
    the latency of the review, at the cost of a burst of API requests.
    In either case, all checks must succeed before the fields are checked.
    """


@dataclasses.dataclass
class AdmissionSettings:

    group: str = 'kubevirt.io'
    """
    The API group of objects accepted for the review.
    """

    kind: str = 'VirtualMachine'
    """
    The kind of objects accepted for the review. Others are rejected as errors.
    """


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for each individual HTTP request to the Kubernetes API.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for establishing a connection to the Kubernetes API.
    """


@dataclasses.dataclass
class GuardSettings:
    authorization: AuthorizationSettings = dataclasses.field(default_factory=AuthorizationSettings)
    admission: AdmissionSettings = dataclasses.field(default_factory=AdmissionSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
