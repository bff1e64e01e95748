import functools
import json
import logging

import click.testing
import pytest
import yaml

from vmgate.cli import main
from vmgate.engines.loggers import ObjectFormatter


@pytest.fixture(autouse=True)
def _restore_logging():
    # The commands configure the logging globally: undo it after every test.
    logger = logging.getLogger()
    handlers, level = logger.handlers[:], logger.level
    libs = [logging.getLogger(name) for name in ['asyncio', 'aiohttp.access']]
    states = [(lib.propagate, lib.handlers[:]) for lib in libs]
    yield
    for handler in logger.handlers[:]:
        if handler not in handlers and isinstance(handler.formatter, ObjectFormatter):
            logger.removeHandler(handler)
    logger.setLevel(level)
    for lib, (propagate, lib_handlers) in zip(libs, states):
        lib.propagate = propagate
        lib.handlers[:] = lib_handlers


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def real_run(mocker):
    return mocker.patch('vmgate.reactor.running.run')


@pytest.fixture()
def review_file(tmp_path, adm_request):
    """ A factory of admission review files, either in JSON or in YAML. """
    def factory(request=adm_request, *, fmt='json'):
        path = tmp_path / f'review.{fmt}'
        if fmt == 'yaml':
            path.write_text(yaml.safe_dump(request))
        else:
            path.write_text(json.dumps(request))
        return str(path)
    return factory


@pytest.fixture()
def adm_request(old, new):
    return {
        'apiVersion': 'admission.k8s.io/v1',
        'kind': 'AdmissionReview',
        'request': {
            'uid': 'uid1',
            'operation': 'UPDATE',
            'namespace': 'ns1',
            'name': 'vm1',
            'userInfo': {'username': 'user1', 'uid': 'useruid1', 'groups': ['group1']},
            'object': new,
            'oldObject': old,
        },
    }
