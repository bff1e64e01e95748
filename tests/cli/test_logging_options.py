import logging

import pytest


@pytest.mark.parametrize('expect_debug, expect_info, options, envvars', [
    (False, True, [], {}),
    (False, False, ['-q'], {}),
    (False, False, ['--quiet'], {}),
    (False, False, [], {'VMGATE_SERVE_QUIET': 'true'}),
    (True, True, ['-d'], {}),
    (True, True, ['--debug'], {}),
    (True, True, [], {'VMGATE_SERVE_DEBUG': 'true'}),
    (True, True, ['-v'], {}),
    (True, True, ['--verbose'], {}),
    (True, True, [], {'VMGATE_SERVE_VERBOSE': 'true'}),
], ids=[
    'default',
    'opt-short-q', 'opt-long-quiet', 'env-quiet-true',
    'opt-short-d', 'opt-long-debug', 'env-debug-true',
    'opt-short-v', 'opt-long-verbose', 'env-verbose-true',
])
def test_verbosity(invoke, caplog, options, envvars, expect_debug, expect_info, real_run):
    result = invoke(['serve'] + options, env=envvars)
    assert result.exit_code == 0

    logger = logging.getLogger()
    logger.debug('some debug')
    logger.info('some info')
    logger.warning('some warning')
    logger.error('some error')

    assert len(caplog.records) >= 2 + int(expect_info) + int(expect_debug)
    assert caplog.records[-1].message == 'some error'
    assert caplog.records[-2].message == 'some warning'
    if expect_info:
        assert caplog.records[-3].message == 'some info'
    if expect_debug:
        assert caplog.records[-4].message == 'some debug'


@pytest.mark.parametrize('options', [
    ([]),
    (['-q']),
    (['--quiet']),
    (['-v']),
    (['--verbose']),
], ids=['default', 'q', 'quiet', 'v', 'verbose'])
def test_no_lowlevel_dumps_in_nondebug(invoke, caplog, options, real_run):
    result = invoke(['serve'] + options)
    assert result.exit_code == 0

    logging.getLogger('asyncio').error('boom!')
    logging.getLogger('aiohttp.access').error('boom!')

    assert len(caplog.records) == 0


@pytest.mark.parametrize('options', [
    (['-d']),
    (['--debug']),
], ids=['d', 'debug'])
def test_lowlevel_dumps_in_debug_mode(invoke, caplog, options, real_run):
    result = invoke(['serve'] + options)
    assert result.exit_code == 0

    logging.getLogger('asyncio').debug('hello!')
    logging.getLogger('aiohttp.access').debug('hello!')

    assert len(caplog.records) == 2


@pytest.mark.parametrize('options', [
    ['--log-format=plain'],
    ['--log-format=full'],
    ['--log-format=json'],
    ['--log-format=json', '--log-refkey=vm'],
    ['--log-prefix'],
    ['--no-log-prefix'],
])
def test_log_formats_are_accepted(invoke, options, real_run):
    result = invoke(['serve'] + options)
    assert result.exit_code == 0


def test_unknown_log_format_is_rejected(invoke, real_run):
    result = invoke(['serve', '--log-format=xml'])
    assert result.exit_code == 2
    assert not real_run.called
