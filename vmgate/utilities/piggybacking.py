"""
Rudimentary logins to the Kubernetes API for the access reviews.

The webhook is not a client library, and does not implement the complex
authentication methods (auth-providers, exec plugins, etc). For the usual
in-cluster deployment, the service account is enough. For development,
a kubeconfig file with a token or a client certificate is enough too.

If ``pykube-ng`` is installed (the ``vmgate[full-auth]`` extra),
it is used in preference, since it supports more ways of authentication.

.. seealso::
    :mod:`vmgate.structs.credentials` and :class:`vmgate.clients.auth.APIContext`.
"""
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence

import yaml

from vmgate.structs import credentials, typedefs

logger = logging.getLogger(__name__)

# Keep as constants to make them patchable. Higher priority is more preferred.
PRIORITY_OF_PYKUBE: int = 30
PRIORITY_OF_SERVICE_ACCOUNT: int = 20
PRIORITY_OF_KUBECONFIG: int = 10

# As per https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'

LoginFn = Callable[..., Optional[credentials.ConnectionInfo]]


def login(
        *,
        logger: typedefs.Logger = logger,
) -> credentials.ConnectionInfo:
    """
    Try all the login methods, and use the most preferred of the successful ones.

    The methods that are not applicable (e.g. no service account outside
    of a cluster) are silently skipped. The methods that are applicable,
    but fail, are logged. If none succeeds, `credentials.LoginError` is raised.
    """
    results: List[credentials.ConnectionInfo] = []
    for fn in LOGIN_FUNCTIONS:
        try:
            info = fn(logger=logger)
        except credentials.LoginError as e:
            logger.warning(f"Login via {fn.__name__} has failed: {e}")
        else:
            if info is not None:
                logger.debug(f"Login via {fn.__name__} has succeeded: {info.server}")
                results.append(info)

    if not results:
        raise credentials.LoginError("No valid credentials are available: "
                                     "neither a service account, nor a kubeconfig.")
    return max(results, key=lambda info: info.priority)  # the first of the equal ones.


def login_via_pykube(
        *,
        logger: typedefs.Logger,
        **_: Any,
) -> Optional[credentials.ConnectionInfo]:

    try:
        import pykube
    except ImportError:
        return None

    config: pykube.KubeConfig
    try:
        config = pykube.KubeConfig.from_service_account()
        logger.debug("Pykube is configured in cluster with service account.")
    except FileNotFoundError:
        try:
            config = pykube.KubeConfig.from_file()
            logger.debug("Pykube is configured via kubeconfig file.")
        except (pykube.PyKubeError, FileNotFoundError):
            raise credentials.LoginError("Cannot authenticate pykube "
                                         "neither in-cluster, nor via kubeconfig.")

    # The auth-provider's token is refreshed by pykube on any request; we take the result.
    provider_token = None
    if config.user.get('auth-provider'):
        api = pykube.HTTPClient(config)
        api.get(version='', base='/')  # ignore the response status
        provider_token = config.user.get('auth-provider', {}).get('config', {}).get('access-token')

    ca: Optional[pykube.config.BytesOrFile] = config.cluster.get('certificate-authority')
    cert: Optional[pykube.config.BytesOrFile] = config.user.get('client-certificate')
    pkey: Optional[pykube.config.BytesOrFile] = config.user.get('client-key')
    return credentials.ConnectionInfo(
        server=config.cluster.get('server'),
        ca_path=ca.filename() if ca else None,  # can be a temporary file
        insecure=config.cluster.get('insecure-skip-tls-verify'),
        username=config.user.get('username'),
        password=config.user.get('password'),
        token=config.user.get('token') or provider_token,
        certificate_path=cert.filename() if cert else None,  # can be a temporary file
        private_key_path=pkey.filename() if pkey else None,  # can be a temporary file
        default_namespace=config.namespace,
        priority=PRIORITY_OF_PYKUBE,
    )


def login_with_service_account(
        *,
        logger: typedefs.Logger,
        root: str = SERVICE_ACCOUNT_DIR,
        **_: Any,
) -> Optional[credentials.ConnectionInfo]:
    """
    Login with the pod's own service account, as mounted by Kubernetes.

    The server is taken from the environment variables of the pod if set,
    or the well-known in-cluster DNS name is used otherwise.
    """
    token_path = os.path.join(root, 'token')
    ns_path = os.path.join(root, 'namespace')
    ca_path = os.path.join(root, 'ca.crt')

    if not os.path.exists(token_path):
        return None

    with open(token_path, encoding='utf-8') as f:
        token = f.read().strip()

    namespace: Optional[str] = None
    if os.path.exists(ns_path):
        with open(ns_path, encoding='utf-8') as f:
            namespace = f.read().strip()

    host = os.environ.get('KUBERNETES_SERVICE_HOST')
    port = os.environ.get('KUBERNETES_SERVICE_PORT')
    if host and ':' in host:
        host = f'[{host}]'  # IPv6
    server = f'https://{host}:{port}' if host and port else 'https://kubernetes.default.svc'

    logger.debug("Logging in with the service account.")
    return credentials.ConnectionInfo(
        server=server,
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
        default_namespace=namespace or None,
        priority=PRIORITY_OF_SERVICE_ACCOUNT,
    )


def login_with_kubeconfig(
        *,
        logger: typedefs.Logger,
        **_: Any,
) -> Optional[credentials.ConnectionInfo]:
    """
    Login with the current context of the kubeconfig file(s).

    Only the static credentials are supported: tokens, client certificates,
    basic auth, and the already issued tokens of the auth-providers.
    """
    kubeconfig = os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser('~/.kube/config')):
        kubeconfig = '~/.kube/config'
    if not kubeconfig:
        return None

    paths = [path.strip() for path in kubeconfig.split(os.pathsep)]
    paths = [os.path.expanduser(path) for path in paths if path]
    configs: List[Dict[str, Any]] = []
    for path in paths:
        with open(path, encoding='utf-8') as f:
            configs.append(yaml.safe_load(f.read()) or {})

    # When merged, the first file wins for every named item and for the current context.
    current_context = next((c['current-context'] for c in configs if c.get('current-context')), None)
    contexts = _merge_named(configs, 'contexts', 'context')
    clusters = _merge_named(configs, 'clusters', 'cluster')
    users = _merge_named(configs, 'users', 'user')

    if current_context is None:
        raise credentials.LoginError('Current context is not set in kubeconfigs.')
    try:
        context = contexts[current_context]
        cluster = clusters[context['cluster']]
        user = users.get(context.get('user'), {})
    except KeyError as e:
        raise credentials.LoginError(f'The kubeconfig is inconsistent: {e} is not found.')

    # Unlike pykube, no request is made to refresh the provider's token: we use it as it is.
    provider_token = user.get('auth-provider', {}).get('config', {}).get('access-token')

    logger.debug(f"Logging in with the kubeconfig context {current_context!r}.")
    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or provider_token,
        default_namespace=context.get('namespace'),
        priority=PRIORITY_OF_KUBECONFIG,
    )


def _merge_named(configs: Sequence[Dict[str, Any]], section: str, key: str) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for config in configs:
        for item in config.get(section) or []:
            merged.setdefault(item['name'], item.get(key) or {})
    return merged


LOGIN_FUNCTIONS: Sequence[LoginFn] = (
    login_via_pykube,
    login_with_service_account,
    login_with_kubeconfig,
)
