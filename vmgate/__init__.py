"""
The main vmgate module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the webhook's top-level interface,
# as it is seen by the users (e.g. when embedding it). So, we export the names.

from vmgate.clients.auth import (
    APIContext,
)
from vmgate.clients.errors import (
    APIError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APIServerError,
)
from vmgate.engines.loggers import (
    LogFormat,
    ObjectLogger,
    configure,
)
from vmgate.engines.oracles import (
    PermissionOracle,
    SubjectAccessReviewOracle,
    StaticOracle,
    OracleError,
    OracleUnavailableError,
    OracleQueryFailedError,
    OracleTimeoutError,
)
from vmgate.reactor.admission import (
    WebhookError,
    MissingDataError,
    TypeMismatchError,
    serve_admission_request,
    build_response,
)
from vmgate.reactor.authorization import (
    authorize_update,
)
from vmgate.reactor.checkers import (
    FieldCategoryChecker,
    StorageChecker,
    NetworkChecker,
    ComputeChecker,
    DevicesChecker,
    LifecycleChecker,
    CdromMediaChecker,
    DEFAULT_CHECKERS,
)
from vmgate.reactor.normalization import (
    normalize_metadata,
)
from vmgate.reactor.running import (
    run,
    webhook,
)
from vmgate.structs.configuration import (
    GuardSettings,
)
from vmgate.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from vmgate.structs.identities import (
    Identity,
)
from vmgate.structs.tokens import (
    AuthorizationToken,
    Permissions,
)
from vmgate.structs.typedefs import (
    Logger,
)
from vmgate.structs.verdicts import (
    DenialReason,
    Verdict,
)
from vmgate.toolkits.webhooks import (
    MissingDependencyError,
    WebhookServer,
)
from vmgate.utilities.piggybacking import (
    login,
    login_via_pykube,
    login_with_kubeconfig,
    login_with_service_account,
)
from vmgate.utilities.versions import (
    version as __version__,
)

__all__ = [
    'APIContext',
    'APIError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'APIConflictError',
    'APIServerError',
    'LogFormat',
    'ObjectLogger',
    'configure',
    'PermissionOracle',
    'SubjectAccessReviewOracle',
    'StaticOracle',
    'OracleError',
    'OracleUnavailableError',
    'OracleQueryFailedError',
    'OracleTimeoutError',
    'WebhookError',
    'MissingDataError',
    'TypeMismatchError',
    'serve_admission_request',
    'build_response',
    'authorize_update',
    'FieldCategoryChecker',
    'StorageChecker',
    'NetworkChecker',
    'ComputeChecker',
    'DevicesChecker',
    'LifecycleChecker',
    'CdromMediaChecker',
    'DEFAULT_CHECKERS',
    'normalize_metadata',
    'run',
    'webhook',
    'GuardSettings',
    'LoginError',
    'ConnectionInfo',
    'Identity',
    'AuthorizationToken',
    'Permissions',
    'Logger',
    'DenialReason',
    'Verdict',
    'MissingDependencyError',
    'WebhookServer',
    'login',
    'login_via_pykube',
    'login_with_kubeconfig',
    'login_with_service_account',
]
