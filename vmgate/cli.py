import asyncio
import functools
import json
import sys
from typing import Any, Callable, Collection, Optional

import click
import yaml

from vmgate.engines import loggers, oracles
from vmgate.reactor import admission, running
from vmgate.structs import configuration, tokens
from vmgate.toolkits import webhooks
from vmgate.utilities import versions


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


class TokenParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[token.value for token in tokens.AuthorizationToken])

    def convert(self, value: Any, param: Any, ctx: Any) -> tokens.AuthorizationToken:
        if isinstance(value, tokens.AuthorizationToken):
            return value
        name: str = super().convert(value, param, ctx)
        return tokens.AuthorizationToken(name)


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


@click.version_option(version=versions.version, prog_name='vmgate')
@click.group(name='vmgate', context_settings=dict(
    auto_envvar_prefix='VMGATE',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('--addr', type=str, default=None)
@click.option('--port', type=int, default=9443)
@click.option('--path', type=str, default=None)
@click.option('--host', type=str, default=None)
@click.option('--certfile', type=click.Path(exists=True, dir_okay=False))
@click.option('--pkeyfile', type=click.Path(exists=True, dir_okay=False))
@click.option('--cadump', type=click.Path(dir_okay=False))
@click.option('--insecure', is_flag=True)
@click.option('--timeout', type=float, default=None)
@click.option('--concurrent-queries', is_flag=True)
def serve(
        addr: Optional[str],
        port: int,
        path: Optional[str],
        host: Optional[str],
        certfile: Optional[str],
        pkeyfile: Optional[str],
        cadump: Optional[str],
        insecure: bool,
        timeout: Optional[float],
        concurrent_queries: bool,
) -> None:
    """ Start the admission webhook and review the VM updates until interrupted. """
    if bool(certfile) != bool(pkeyfile):
        raise click.UsageError("Either both --certfile and --pkeyfile can be used, or none.")
    settings = configuration.GuardSettings()
    settings.authorization.concurrent_queries = concurrent_queries
    if timeout is not None:
        settings.authorization.timeout = timeout
    server = webhooks.WebhookServer(
        addr=addr,
        port=port,
        path=path,
        host=host,
        certfile=certfile,
        pkeyfile=pkeyfile,
        cadump=cadump,
        insecure=insecure,
    )
    return running.run(server=server, settings=settings)


@main.command()
@logging_options
@click.option('-g', '--grant', 'grants', type=TokenParamType(), multiple=True)
@click.argument('file', type=click.File('r'))
def review(
        file: Any,
        grants: Collection[tokens.AuthorizationToken],
) -> None:
    """
    Review one AdmissionReview (JSON or YAML) offline, with the given grants.

    The response is printed as JSON. The exit code is 0 if the operation
    is allowed, and 1 if it is denied.
    """
    try:
        request = yaml.safe_load(file.read())  # JSON is a subset of YAML.
    except yaml.YAMLError as e:
        raise click.BadParameter(f"The review is neither JSON nor YAML: {e}", param_hint='FILE')
    if not isinstance(request, dict):
        raise click.BadParameter("The review must be an object.", param_hint='FILE')

    oracle = oracles.StaticOracle({oracles.EVERYONE: grants})
    settings = configuration.GuardSettings()
    try:
        response = asyncio.run(admission.serve_admission_request(
            request, settings=settings, oracle=oracle))
    except admission.WebhookError as e:
        raise click.ClickException(f"The admission review is malformed: {e}")

    click.echo(json.dumps(response, indent=2))
    if not response['response']['allowed']:
        sys.exit(1)
