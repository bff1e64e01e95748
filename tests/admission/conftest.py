import asyncio
import dataclasses
import gc
import warnings

import pytest

from vmgate.structs.reviews import Request, RequestKind, RequestPayload, RequestResource, \
                                   UpdateOptions, UserInfo, WebhookFn
from vmgate.toolkits.webhooks import WebhookServer


@pytest.fixture()
def no_serverside_resource_warnings():
    """
    Hide an irrelevant ResourceWarning on the server side.

    It happens when a client disconnects from the webhook server,
    and the server closes the transport for that client. The garbage
    collector calls ``__del__()`` on the SSL proto object, despite
    it is not close to the moment.
    """
    with warnings.catch_warnings():
        warnings.filterwarnings('ignore',
                                category=ResourceWarning,
                                module='asyncio.sslproto',
                                message='unclosed transport')
        yield
        gc.collect()


@pytest.fixture()
async def no_clientside_resource_warnings():
    """
    Hide an irrelevant ResourceWarning on the client side.

    https://docs.aiohttp.org/en/stable/client_advanced.html#graceful-shutdown
    """
    yield
    await asyncio.sleep(0.100)


@pytest.fixture()
async def no_sslproto_warnings(no_serverside_resource_warnings, no_clientside_resource_warnings):
    pass


# Cert generation is somewhat slow (~1s), and needs the optional dependencies.
@pytest.fixture(scope='module')
def certpkey():
    try:
        return WebhookServer.build_certificate(['localhost', '127.0.0.1'])
    except Exception as e:
        pytest.skip(f"Self-signed certificates cannot be generated: {e}")


@pytest.fixture()
def certfile(tmp_path, certpkey):
    path = tmp_path / 'cert.pem'
    path.write_bytes(certpkey[0])
    return str(path)


@pytest.fixture()
def pkeyfile(tmp_path, certpkey):
    path = tmp_path / 'pkey.pem'
    path.write_bytes(certpkey[1])
    return str(path)


@pytest.fixture()
def adm_request(old, new):
    return Request(
        apiVersion='admission.k8s.io/v1',
        kind='AdmissionReview',
        request=RequestPayload(
            uid='uid1',
            kind=RequestKind(group='kubevirt.io', version='v1', kind='VirtualMachine'),
            resource=RequestResource(group='kubevirt.io', version='v1', resource='virtualmachines'),
            subResource=None,
            requestKind=RequestKind(group='kubevirt.io', version='v1', kind='VirtualMachine'),
            requestResource=RequestResource(group='kubevirt.io', version='v1', resource='virtualmachines'),
            requestSubResource=None,
            userInfo=UserInfo(username='user1', uid='useruid1', groups=['group1']),
            name='vm1',
            namespace='ns1',
            operation='UPDATE',
            options=UpdateOptions(apiVersion='meta.k8s.io/v1', kind='UpdateOptions'),
            object=new,
            oldObject=old,
            dryRun=False,
        ))


@dataclasses.dataclass(frozen=True)
class Responder:
    fn: WebhookFn
    fut: asyncio.Future  # asyncio.Future[Response]


@pytest.fixture()
async def responder() -> Responder:
    fut = asyncio.Future()
    async def fn(*_, **__):
        return await fut
    return Responder(fn=fn, fut=fut)
