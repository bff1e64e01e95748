"""
Authorization tokens and per-request snapshots of the permissions.

A token names one semantic operation that a user can be granted on a specific
VirtualMachine: either everything (``full-admin``), or modifying one category
of fields. How the token is checked is the oracle's business
(e.g. RBAC subresources in `vmgate.engines.oracles.SubjectAccessReviewOracle`).
"""
import enum
import types
from typing import Iterator, Mapping


class AuthorizationToken(str, enum.Enum):
    FULL_ADMIN = 'full-admin'
    STORAGE = 'storage'
    NETWORK = 'network'
    COMPUTE = 'compute'
    DEVICES = 'devices'
    LIFECYCLE = 'lifecycle'
    CDROM_MEDIA = 'cdrom-media'

    def __str__(self) -> str:
        return str(self.value)


class Permissions(Mapping[AuthorizationToken, bool]):
    """
    An immutable snapshot of the granted tokens for one request.

    It is collected once per request and never changes afterwards.
    Tokens that were not checked are considered as not granted.
    """

    def __init__(self, __src: Mapping[AuthorizationToken, bool]) -> None:
        super().__init__()
        self._data = types.MappingProxyType(dict(__src))

    def __repr__(self) -> str:
        grants = [str(token) for token, granted in self._data.items() if granted]
        return f'{self.__class__.__name__}({grants!r})'

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[AuthorizationToken]:
        return iter(self._data)

    def __getitem__(self, token: AuthorizationToken) -> bool:
        return self._data[token]

    def granted(self, token: AuthorizationToken) -> bool:
        return bool(self._data.get(token, False))

    def any(self) -> bool:
        return any(self._data.values())
