"""
The authorization of VirtualMachine updates by the categories of fields.

The pipeline is a fixed sequence of steps for every update:

* The users with full admin access can change anything, and are not checked.
* The users with no granular permissions at all are not restricted here:
  they have passed the usual RBAC for updating the VMs, and the webhook
  does not interfere (for backward compatibility with the existing roles).
* For the users with some granular permissions, the permitted changes
  are erased ("neutralized") from the copies of the old & new objects,
  one category after another, in the order of the checkers.
* The system-managed metadata are erased too.
* Whatever difference remains, was not permitted: the update is denied.

The pipeline is a pure function of its inputs and the oracle's answers:
it keeps no state between the requests, and never modifies the objects.
"""
import asyncio
import copy
from typing import Any, Collection, Dict, List, Mapping, MutableMapping, Tuple

from vmgate.engines import oracles
from vmgate.reactor import checkers as checkers_
from vmgate.reactor import normalization
from vmgate.structs import configuration, dicts, identities, tokens, typedefs, verdicts

Bodies = Tuple[MutableMapping[str, Any], MutableMapping[str, Any]]


async def authorize_update(
        *,
        identity: identities.Identity,
        namespace: str,
        name: str,
        old: Mapping[str, Any],
        new: Mapping[str, Any],
        oracle: oracles.PermissionOracle,
        checkers: Collection[checkers_.FieldCategoryChecker] = checkers_.DEFAULT_CHECKERS,
        settings: configuration.GuardSettings,
        logger: typedefs.Logger,
) -> verdicts.Verdict:
    """
    Decide if the user may change the old object into the new object.

    Returns a verdict (either allowed or denied with the reason), or raises
    `oracles.OracleError` if any of the permissions cannot be checked.
    A failure to check a permission is never treated as a grant or a denial.
    """
    checkers_.validate_order(checkers)

    # The admins are not restricted: neither the fields, nor the metadata are checked.
    if await check_full_admin(identity=identity, namespace=namespace, name=name,
                              oracle=oracle, settings=settings):
        logger.info(f"Allowed: {identity.username!r} has the full admin access.")
        return verdicts.Verdict.allow("Full admin access.")

    # Users with no granular permissions are not the webhook's business (only the usual RBAC).
    permissions = await collect_permissions(identity=identity, namespace=namespace, name=name,
                                            oracle=oracle, checkers=checkers, settings=settings)
    if not permissions.any():
        logger.info(f"Allowed: {identity.username!r} has no granular permissions (not opted in).")
        return verdicts.Verdict.allow("No granular permissions are in effect.")

    # Erase the permitted changes. The originals must remain intact for the other webhooks.
    old_copy, new_copy = neutralize_permitted(
        old=old, new=new, checkers=checkers, permissions=permissions, logger=logger)
    normalization.normalize_metadata(old_copy, new_copy)

    verdict = evaluate_residual(old_copy, new_copy)
    if verdict.allowed:
        logger.info(f"Allowed: all changes by {identity.username!r} are permitted.")
    else:
        logger.info(f"Denied: {verdict.reason} by {identity.username!r}. "
                    f"Granted: {sorted(str(t) for t in permissions if permissions[t])}.")
    return verdict


async def check_full_admin(
        *,
        identity: identities.Identity,
        namespace: str,
        name: str,
        oracle: oracles.PermissionOracle,
        settings: configuration.GuardSettings,
) -> bool:
    return await oracles.authorize(
        oracle,
        identity=identity,
        namespace=namespace,
        name=name,
        token=tokens.AuthorizationToken.FULL_ADMIN,
        timeout=settings.authorization.timeout,
    )


async def collect_permissions(
        *,
        identity: identities.Identity,
        namespace: str,
        name: str,
        oracle: oracles.PermissionOracle,
        checkers: Collection[checkers_.FieldCategoryChecker],
        settings: configuration.GuardSettings,
) -> tokens.Permissions:
    """
    Check all the checkers' tokens for the user, and return a snapshot of them.

    All the tokens must be checked successfully, or none of them is used:
    the first failure aborts the collection (and cancels the others, if any).
    """
    queue: List[tokens.AuthorizationToken] = [checker.token for checker in checkers]
    if not settings.authorization.concurrent_queries:
        grants: Dict[tokens.AuthorizationToken, bool] = {}
        for token in queue:
            grants[token] = await oracles.authorize(
                oracle,
                identity=identity,
                namespace=namespace,
                name=name,
                token=token,
                timeout=settings.authorization.timeout,
            )
        return tokens.Permissions(grants)

    tasks: Dict[tokens.AuthorizationToken, asyncio.Task] = {
        token: asyncio.create_task(oracles.authorize(
            oracle,
            identity=identity,
            namespace=namespace,
            name=name,
            token=token,
            timeout=settings.authorization.timeout,
        ), name=f"permission check for {token}")
        for token in queue
    }
    try:
        if tasks:
            await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)

        # Re-raise the first failure in the order of the checkers, for reproducible errors.
        for task in tasks.values():
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore
        return tokens.Permissions({token: task.result() for token, task in tasks.items()})
    finally:
        pending = [task for task in tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)


def neutralize_permitted(
        *,
        old: Mapping[str, Any],
        new: Mapping[str, Any],
        checkers: Collection[checkers_.FieldCategoryChecker],
        permissions: tokens.Permissions,
        logger: typedefs.Logger,
) -> Bodies:
    """
    Erase the changes of the permitted categories from the copies of the bodies.

    The checkers are applied strictly one after another, each one to the result
    of the previous ones. If a category is changed but not permitted, its changes
    remain in place: a later (wider) checker can still neutralize them.
    """
    bodies: Bodies = (copy.deepcopy(dict(old)), copy.deepcopy(dict(new)))
    for checker in checkers:
        bodies = apply_checker(checker, bodies, permissions=permissions, logger=logger)
    return bodies


def apply_checker(
        checker: checkers_.FieldCategoryChecker,
        bodies: Bodies,
        *,
        permissions: tokens.Permissions,
        logger: typedefs.Logger,
) -> Bodies:
    old, new = bodies
    if not checker.has_changed(old, new):
        logger.debug(f"Checker {checker.name!r}: no changes.")
    elif not permissions.granted(checker.token):
        logger.debug(f"Checker {checker.name!r}: changed, but {checker.token} is not granted.")
    else:
        logger.debug(f"Checker {checker.name!r}: changed and permitted by {checker.token}.")
        checker.neutralize(old, new)
    return old, new


def evaluate_residual(
        old: Mapping[str, Any],
        new: Mapping[str, Any],
) -> verdicts.Verdict:
    """
    Judge by the remaining difference after all neutralizations & normalizations.

    Only the ``metadata`` & ``spec`` are compared; the ``status`` is not
    the users' business (and goes through its own subresource anyway).
    The metadata violations have the priority over the spec violations.
    """
    metadata_changed = not dicts.semantic_equal(old.get('metadata'), new.get('metadata'), 'metadata')
    spec_changed = not dicts.semantic_equal(old.get('spec'), new.get('spec'), 'spec')
    if metadata_changed:
        return verdicts.Verdict.deny(verdicts.DenialReason.METADATA_VIOLATION)
    elif spec_changed:
        return verdicts.Verdict.deny(verdicts.DenialReason.SPEC_VIOLATION)
    else:
        return verdicts.Verdict.allow()
