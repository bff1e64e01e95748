"""
Authentication-related structures.

The webhook talks to the Kubernetes API only to review the users' access
(``SubjectAccessReview``). For that, a minimally sufficient data structure
is introduced to bring all the credentials together in a structured and
type-annotated way -- regardless of where they were loaded from.

The information is the one passed to the HTTP protocol and TCP/SSL connection
only, i.e. everything usable in a generic HTTP client, and nothing more:

* TCP server host & port.
* SSL verification/ignorance flag.
* SSL certificate authority.
* SSL client certificate and its private key.
* HTTP ``Authorization: Basic username:password``.
* HTTP ``Authorization: Bearer token`` (or other schemes: Bearer, Digest, etc).

.. seealso::
    :mod:`vmgate.utilities.piggybacking`.
"""
import dataclasses
from typing import Optional


class LoginError(Exception):
    """ Raised when the webhook cannot login to the API. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """
    A single endpoint with specific credentials and connection flags to use.
    """
    server: str  # e.g. "https://localhost:443"
    ca_path: Optional[str] = None
    ca_data: Optional[bytes] = None
    insecure: Optional[bool] = None
    username: Optional[str] = None
    password: Optional[str] = None
    scheme: Optional[str] = None  # RFC-7235/5.1: e.g. Bearer, Basic, Digest, etc.
    token: Optional[str] = None
    certificate_path: Optional[str] = None
    certificate_data: Optional[bytes] = None
    private_key_path: Optional[str] = None
    private_key_data: Optional[bytes] = None
    default_namespace: Optional[str] = None
    priority: int = 0
