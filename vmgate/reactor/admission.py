import logging
from typing import Any, Collection, Mapping, Optional, Union

from vmgate.engines import loggers, oracles
from vmgate.reactor import authorization, checkers as checkers_
from vmgate.structs import bodies, configuration, identities, reviews, verdicts

logger = logging.getLogger(__name__)

# Operations that are fully covered by the usual RBAC verbs: nothing to check by fields.
PASSTHROUGH_OPERATIONS = frozenset({'CREATE', 'DELETE', 'CONNECT'})


class WebhookError(Exception):
    """
    Raised when a webhook request is bad, not an API operation under check.
    """


class MissingDataError(WebhookError):
    """ An admission is requested but some expected data are missing. """


class TypeMismatchError(WebhookError):
    """ An admission is requested for objects of an unexpected kind. """


async def serve_admission_request(
        # Required for all webhook servers, meaningless without it:
        request: reviews.Request,
        *,
        # Optional for webhook servers that can recognise this information:
        headers: Optional[Mapping[str, str]] = None,
        sslpeer: Optional[Mapping[str, Any]] = None,
        webhook: Optional[str] = None,
        # Injected by partial() from the CLI or the embedding application:
        settings: configuration.GuardSettings,
        oracle: oracles.PermissionOracle,
        checkers: Collection[checkers_.FieldCategoryChecker] = checkers_.DEFAULT_CHECKERS,
) -> reviews.Response:
    """
    The actual and the only implementation of the `WebhookFn` protocol.

    This function is passed to the webhook server to be called
    whenever a new admission request is received.

    Some parameters are provided by the caller via partial binding,
    so that the resulting function matches the `WebhookFn` protocol. Other
    parameters are passed by the webhook servers when they call the function.

    The bad requests are reported as `WebhookError`, and the servers respond
    with HTTP 400 to them. The failed permission checks are reported back
    as the denials of the reviewed operation with the code 500.
    """
    payload: reviews.RequestPayload = request.get('request') or {}
    if not isinstance(payload, Mapping):
        raise MissingDataError("The admission request is missing or malformed.")
    operation = payload.get('operation')
    userinfo = payload.get('userInfo')
    new_body = payload.get('object')
    old_body = payload.get('oldObject')
    if not isinstance(userinfo, Mapping):
        raise MissingDataError("User info is missing from the admission request.")

    identity = identities.Identity.from_userinfo(userinfo)
    raw_body = new_body if isinstance(new_body, Mapping) else old_body
    object_logger = loggers.ObjectLogger(body=raw_body if isinstance(raw_body, Mapping) else {})

    if operation in PASSTHROUGH_OPERATIONS:
        object_logger.debug(f"Allowed: {operation} by {identity.username!r} is not checked.")
        return build_response(request=request, outcome=verdicts.Verdict.allow())
    if operation != 'UPDATE':
        raise WebhookError(f"Unsupported operation in the admission request: {operation!r}")

    if old_body is None or new_body is None:
        raise MissingDataError("Either old or new object is missing from the admission request.")
    check_type(old_body, settings=settings)
    check_type(new_body, settings=settings)

    meta = bodies.get_metadata(new_body)
    namespace = payload.get('namespace') or meta.get('namespace') or ''
    name = payload.get('name') or meta.get('name') or ''

    try:
        verdict = await authorization.authorize_update(
            identity=identity,
            namespace=namespace,
            name=name,
            old=old_body,
            new=new_body,
            oracle=oracle,
            checkers=checkers,
            settings=settings,
            logger=object_logger,
        )
    except oracles.OracleError as e:
        object_logger.error(f"Failed to check the permissions of {identity.username!r}: {e}")
        return build_response(request=request, outcome=e)
    return build_response(request=request, outcome=verdict)


def check_type(
        body: Any,
        *,
        settings: configuration.GuardSettings,
) -> None:
    if not isinstance(body, Mapping):
        raise TypeMismatchError(f"Expected a {settings.admission.group}/{settings.admission.kind}, "
                                f"got a non-object: {body!r}.")
    group = bodies.get_api_group(body)
    kind = body.get('kind')
    if group != settings.admission.group or kind != settings.admission.kind:
        raise TypeMismatchError(f"Expected a {settings.admission.group}/{settings.admission.kind}, "
                                f"got {body.get('apiVersion')!r} {kind!r}.")


def build_response(
        *,
        request: reviews.Request,
        outcome: Union[verdicts.Verdict, oracles.OracleError],
) -> reviews.Response:
    """
    Construct the admission review response to a review request.
    """
    payload = request.get('request') or {}
    allowed = isinstance(outcome, verdicts.Verdict) and outcome.allowed
    response = reviews.Response(
        apiVersion=request.get('apiVersion', 'admission.k8s.io/v1'),
        kind=request.get('kind', 'AdmissionReview'),
        response=reviews.ResponsePayload(
            uid=request.get('request', {}).get('uid', ''),
            allowed=allowed))

    if isinstance(outcome, oracles.OracleError):
        token = outcome.token if outcome.token is not None else 'unknown'
        response['response']['status'] = reviews.ResponseStatus(
            code=500,
            message=f"Failed to check {str(token)!r} permission: {outcome}",
        )
    elif not outcome.allowed:
        response['response']['status'] = reviews.ResponseStatus(
            code=403,
            reason='Forbidden',
            message=outcome.message,
        )
    return response
