"""
Permission oracles: answering if a user may do a semantic operation on a VM.

The authorization pipeline depends only on the abstract `PermissionOracle`.
The production implementation asks the cluster's RBAC via access reviews.
Other implementations are possible (and are used in the CLI and in tests).

An oracle either answers with ``True``/``False``, or fails with `OracleError`.
A failure is neither a grant nor a denial: it aborts the whole review.
"""
import asyncio
import logging
from typing import Any, Collection, Mapping, Optional, Union

import aiohttp
from typing_extensions import Protocol

from vmgate.clients import auth, errors, reviewing
from vmgate.structs import configuration, identities, tokens

logger = logging.getLogger(__name__)

# All users, as a key for the static grants.
EVERYONE = '*'


class OracleError(Exception):
    """ A permission cannot be checked. It is neither granted, nor denied. """

    def __init__(self, message: str, *, token: Optional[tokens.AuthorizationToken] = None) -> None:
        super().__init__(message)
        self.token = token


class OracleUnavailableError(OracleError):
    """ The permission source cannot be reached. """


class OracleQueryFailedError(OracleError):
    """ The permission source was reached, but responded with an error. """


class OracleTimeoutError(OracleError):
    """ The permission source did not respond in time. """


class PermissionOracle(Protocol):
    async def authorize(
            self,
            identity: identities.Identity,
            namespace: str,
            name: str,
            token: tokens.AuthorizationToken,
    ) -> bool: ...


class SubjectAccessReviewOracle:
    """
    Check the permissions via ``SubjectAccessReview`` in the cluster's RBAC.

    Every token is mapped to an RBAC subresource of VirtualMachines, and
    is checked for the specific VirtualMachine by name (so that the RBAC
    roles can grant the permissions to some VMs only via ``resourceNames``).

    The webhook's own service account needs the permission
    to create ``subjectaccessreviews.authorization.k8s.io``.
    """

    def __init__(
            self,
            *,
            context: auth.APIContext,
            settings: configuration.GuardSettings,
    ) -> None:
        super().__init__()
        self.context = context
        self.settings = settings

    async def authorize(
            self,
            identity: identities.Identity,
            namespace: str,
            name: str,
            token: tokens.AuthorizationToken,
    ) -> bool:
        attributes = self.build_attributes(namespace=namespace, name=name, token=token)
        what = f"{attributes['resource']}/{attributes['subresource']}"
        try:
            allowed = await reviewing.create_subject_access_review(
                identity=identity,
                attributes=attributes,
                settings=self.settings,
                context=self.context,
            )
        except errors.APIError as e:
            raise OracleQueryFailedError(f"Failed to create a SubjectAccessReview for {what}: "
                                         f"{e.message or e.status}", token=token) from e
        except aiohttp.ClientConnectionError as e:
            raise OracleUnavailableError(f"Failed to create a SubjectAccessReview for {what}: "
                                         f"{e}", token=token) from e
        except aiohttp.ClientResponseError as e:  # e.g. non-JSON responses with 2xx statuses.
            raise OracleQueryFailedError(f"Failed to create a SubjectAccessReview for {what}: "
                                         f"{e}", token=token) from e

        if allowed is None:
            raise OracleQueryFailedError(f"The SubjectAccessReview for {what} has no status.",
                                         token=token)
        logger.debug(f"Access of {identity.username!r} to {what} of {namespace}/{name}: {allowed}")
        return allowed

    def build_attributes(
            self,
            *,
            namespace: str,
            name: str,
            token: tokens.AuthorizationToken,
    ) -> reviewing.ResourceAttributes:
        try:
            subresource = self.settings.authorization.subresources[token]
        except KeyError:
            raise OracleError(f"No RBAC subresource is configured for {token}.", token=token)
        return reviewing.ResourceAttributes(
            namespace=namespace,
            verb=self.settings.authorization.verb,
            group=self.settings.authorization.group,
            resource=self.settings.authorization.resource,
            subresource=subresource,
            name=name,
        )


class StaticOracle:
    """
    A pre-defined set of grants per user, kept in memory.

    The grants are keyed by usernames, or by ``"*"`` for all users.
    The grants of the user and of all users are combined.

    It is used for offline reviews and in tests, where no cluster exists.
    """

    def __init__(
            self,
            grants: Optional[Mapping[str, Collection[Union[str, tokens.AuthorizationToken]]]] = None,
    ) -> None:
        super().__init__()
        self.grants = {
            username: frozenset(tokens.AuthorizationToken(token) for token in user_tokens)
            for username, user_tokens in (grants or {}).items()
        }

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.grants!r})'

    async def authorize(
            self,
            identity: identities.Identity,
            namespace: str,
            name: str,
            token: tokens.AuthorizationToken,
    ) -> bool:
        personal = self.grants.get(identity.username, frozenset())
        common = self.grants.get(EVERYONE, frozenset())
        return token in personal or token in common


async def authorize(
        oracle: PermissionOracle,
        *,
        identity: identities.Identity,
        namespace: str,
        name: str,
        token: tokens.AuthorizationToken,
        timeout: Optional[float] = None,
) -> bool:
    """
    Ask the oracle once, and convert its failures to `OracleError`.

    Cancellations are not converted: they propagate as usual.
    """
    try:
        result: Any = await asyncio.wait_for(
            oracle.authorize(identity, namespace, name, token),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise OracleTimeoutError(f"The permission check timed out after {timeout}s.",
                                 token=token) from e
    except OracleError as e:
        if e.token is None:
            e.token = token
        raise
    if not isinstance(result, bool):
        raise OracleQueryFailedError(f"The permission check returned a non-boolean: {result!r}",
                                     token=token)
    return result
