import copy
import io
import json
import logging
import re
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

from vmgate.clients.auth import APIContext
from vmgate.engines.loggers import ObjectLogger, ObjectPrefixingTextFormatter, configure
from vmgate.engines.oracles import StaticOracle
from vmgate.structs.configuration import GuardSettings
from vmgate.structs.credentials import ConnectionInfo
from vmgate.structs.identities import Identity


def pytest_configure(config):
    config.addinivalue_line('markers', "e2e: end-to-end tests with real clusters.")


#
# The reviewed objects: a typical VM with all the field categories present.
#

VM_BODY = {
    'apiVersion': 'kubevirt.io/v1',
    'kind': 'VirtualMachine',
    'metadata': {
        'name': 'vm1',
        'namespace': 'ns1',
        'uid': 'uid-vm1',
        'resourceVersion': '1000',
        'generation': 3,
        'creationTimestamp': '2026-01-01T00:00:00Z',
        'labels': {'app': 'web'},
        'annotations': {'owner': 'team-a'},
    },
    'spec': {
        'running': True,
        'template': {
            'metadata': {'labels': {'kubevirt.io/vm': 'vm1'}},
            'spec': {
                'domain': {
                    'cpu': {'cores': 2},
                    'resources': {'requests': {'memory': '2Gi'}},
                    'devices': {
                        'disks': [
                            {'name': 'rootdisk', 'disk': {'bus': 'virtio'}},
                            {'name': 'cdrom1', 'cdrom': {'bus': 'sata'}},
                        ],
                        'interfaces': [
                            {'name': 'default', 'masquerade': {}},
                        ],
                    },
                },
                'networks': [
                    {'name': 'default', 'pod': {}},
                ],
                'volumes': [
                    {'name': 'rootdisk', 'containerDisk': {'image': 'fedora:40'}},
                    {'name': 'cdrom1', 'dataVolume': {'name': 'iso-1', 'hotpluggable': True}},
                ],
            },
        },
    },
    'status': {
        'ready': True,
    },
}


@pytest.fixture()
def vm():
    """ A fresh copy of the VM for every test, to be modified freely. """
    return copy.deepcopy(VM_BODY)


@pytest.fixture()
def old(vm):
    return copy.deepcopy(vm)


@pytest.fixture()
def new(vm):
    return copy.deepcopy(vm)


@pytest.fixture()
def identity():
    return Identity(username='user1', groups=frozenset({'group1'}), uid='useruid1')


@pytest.fixture()
def settings():
    return GuardSettings()


@pytest.fixture()
def oracle_factory():
    """ Build an in-memory oracle with the specified tokens granted to everyone. """
    def factory(*tokens):
        return StaticOracle({'*': tokens})
    return factory


@pytest.fixture()
def logger(vm):
    return ObjectLogger(body=vm)


#
# Mocking of the Kubernetes API for the access reviews.
#

@pytest.fixture()
def hostname():
    """ A fake hostname to be used in all aiohttp/aresponses tests. """
    return 'fake-host'


@pytest.fixture()
async def api_context(hostname):
    context = APIContext(ConnectionInfo(server=f'https://{hostname}', token='fake-token'))
    try:
        yield context
    finally:
        await context.close()


@pytest.fixture()
def resp_mocker(aresponses):
    """
    A factory of server-side callbacks for `aresponses` with mocking/spying.

    The value of the fixture is a function, which returns a coroutine mock.
    That coroutine mock should be passed to `aresponses.add` as a response
    callback function. When called, it calls the mock defined by the function's
    arguments (specifically, return_value or side_effects).

    The request's JSON payload is preserved as ``request.data`` for assertions.

    Sample usage::

        def test_me(resp_mocker):
            response = aiohttp.web.json_response({'a': 'b'})
            callback = resp_mocker(return_value=response)
            aresponses.add(hostname, '/path/', 'get', callback)
            do_something()
            assert callback.called
            assert callback.call_count == 1
    """
    def resp_maker(*args, **kwargs):
        actual_response = MagicMock(*args, **kwargs)
        async def resp_mock_effect(request):
            try:
                request.data = await request.json()
            except json.JSONDecodeError:
                request.data = await request.text()
            return actual_response()

        return AsyncMock(side_effect=resp_mock_effect)
    return resp_maker


#
# Helpers for the logging checks.
#

@pytest.fixture()
def logstream(caplog):
    """ Prefixing is done at the final output. We have to intercept it. """

    logger = logging.getLogger()
    handlers = list(logger.handlers)

    # Setup all log levels of sub-libraries. A side-effect: the handlers are also added.
    configure(verbose=True)

    # Remove any stream handlers added in the step above. But keep the caplog's handlers.
    for handler in list(logger.handlers):
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr:
            logger.removeHandler(handler)

    # Inject our stream-intercepting handler.
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    formatter = ObjectPrefixingTextFormatter('prefix %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    try:
        with caplog.at_level(logging.DEBUG):
            yield stream
    finally:
        logger.removeHandler(handler)
        logger.handlers[:] = handlers  # undo `configure()`


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    def assert_logs_fn(patterns, prohibited=[], strict=False):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            # The expected pattern is at position 0.
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                m = re.search(pattern, message)
                if m:
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break  # out of `remaining_patterns` cycle
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")
                elif strict:
                    raise AssertionError(f"Unexpected log message: {message!r}")

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                m = re.search(pattern, message)
                if m:
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
