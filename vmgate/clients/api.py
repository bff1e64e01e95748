from typing import Any, Mapping, Optional

import aiohttp

from vmgate.clients import auth, errors
from vmgate.structs import configuration


async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.GuardSettings,
        context: auth.APIContext,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
) -> aiohttp.ClientResponse:
    """
    Make a single request to the Kubernetes API and check it for errors.

    There are no retries: the requests are made on behalf of an admission
    review, which has its own tight deadline set by the apiservers.
    """
    if '://' not in url:
        url = context.server.rstrip('/') + '/' + url.lstrip('/')

    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    response = await context.session.request(
        method=method,
        url=url,
        json=payload,
        headers=headers,
        timeout=timeout,
    )
    await errors.check_response(response)  # but do not parse it!
    return response


async def post(
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.GuardSettings,
        context: auth.APIContext,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
) -> Any:
    response = await request(
        method='post',
        url=url,
        payload=payload,
        headers=headers,
        timeout=timeout,
        settings=settings,
        context=context,
    )
    async with response:
        return await response.json()
