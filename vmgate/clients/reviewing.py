"""
Access reviews: asking the cluster's RBAC if a user is allowed to do something.
"""
from typing import Any, List, Mapping, Optional

from typing_extensions import TypedDict

from vmgate.clients import api, auth
from vmgate.structs import configuration, identities

SUBJECT_ACCESS_REVIEWS_URL = '/apis/authorization.k8s.io/v1/subjectaccessreviews'


class ResourceAttributes(TypedDict, total=False):
    namespace: str
    verb: str
    group: str
    resource: str
    subresource: str
    name: str


class SubjectAccessReviewSpec(TypedDict, total=False):
    user: str
    groups: List[str]
    uid: str
    resourceAttributes: ResourceAttributes


def build_subject_access_review(
        *,
        identity: identities.Identity,
        attributes: ResourceAttributes,
) -> Mapping[str, Any]:
    spec = SubjectAccessReviewSpec(
        user=identity.username,
        groups=sorted(identity.groups),
        resourceAttributes=attributes,
    )
    if identity.uid:
        spec['uid'] = identity.uid
    return {
        'apiVersion': 'authorization.k8s.io/v1',
        'kind': 'SubjectAccessReview',
        'spec': spec,
    }


async def create_subject_access_review(
        *,
        identity: identities.Identity,
        attributes: ResourceAttributes,
        settings: configuration.GuardSettings,
        context: auth.APIContext,
) -> Optional[bool]:
    """
    Review the user's access to the specified resource attributes.

    Returns ``status.allowed`` as reported by the apiservers,
    or ``None`` if the response has no status at all.
    """
    body = build_subject_access_review(identity=identity, attributes=attributes)
    response = await api.post(
        url=SUBJECT_ACCESS_REVIEWS_URL,
        payload=body,
        settings=settings,
        context=context,
    )
    status = response.get('status') if isinstance(response, Mapping) else None
    if not isinstance(status, Mapping):
        return None
    return bool(status.get('allowed', False))
