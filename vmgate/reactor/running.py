import asyncio
import functools
import logging
from typing import Collection, Optional

from vmgate.clients import auth
from vmgate.engines import oracles
from vmgate.reactor import admission, checkers as checkers_
from vmgate.structs import configuration, credentials, reviews
from vmgate.utilities import piggybacking

logger = logging.getLogger(__name__)


def run(
        *,
        server: reviews.WebhookServerProtocol,
        settings: Optional[configuration.GuardSettings] = None,
        oracle: Optional[oracles.PermissionOracle] = None,
        checkers: Collection[checkers_.FieldCategoryChecker] = checkers_.DEFAULT_CHECKERS,
        info: Optional[credentials.ConnectionInfo] = None,
) -> None:
    """
    Run the whole webhook synchronously, until interrupted.
    """
    try:
        asyncio.run(webhook(
            server=server,
            settings=settings,
            oracle=oracle,
            checkers=checkers,
            info=info,
        ))
    except asyncio.CancelledError:
        pass


async def webhook(
        *,
        server: reviews.WebhookServerProtocol,
        settings: Optional[configuration.GuardSettings] = None,
        oracle: Optional[oracles.PermissionOracle] = None,
        checkers: Collection[checkers_.FieldCategoryChecker] = checkers_.DEFAULT_CHECKERS,
        info: Optional[credentials.ConnectionInfo] = None,
) -> None:
    """
    Run the whole webhook asynchronously.

    If no oracle is provided, the webhook logs in to the cluster
    (either with the provided credentials, or by detecting them),
    and checks the permissions via the access reviews.
    """
    settings = settings if settings is not None else configuration.GuardSettings()
    checkers_.validate_order(checkers)

    context: Optional[auth.APIContext] = None
    if oracle is None:
        info = info if info is not None else piggybacking.login()
        context = auth.APIContext(info)
        oracle = oracles.SubjectAccessReviewOracle(context=context, settings=settings)

    webhookfn: reviews.WebhookFn = functools.partial(
        admission.serve_admission_request,
        settings=settings,
        oracle=oracle,
        checkers=checkers,
    )
    try:
        async for client_config in server(webhookfn):
            logger.info(f"The webhook is ready: {client_config.get('url')}")
    finally:
        if context is not None:
            await context.close()
