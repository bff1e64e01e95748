"""
The HTTP session to the Kubernetes API for the access reviews.

The webhook talks to the API only to post the ``SubjectAccessReviews``,
always with its own credentials, and always from one event loop.
So, one session is made at the startup and is shared by all the reviews.
"""
import base64
import os
import ssl
import tempfile
from typing import Dict, List, Optional

import aiohttp

from vmgate.structs import credentials
from vmgate.utilities import versions


class APIContext:
    """
    The webhook's session to the Kubernetes API, and the API server's URL.

    Made once from the webhook's credentials (see `vmgate.utilities.piggybacking.login`)
    and closed when the webhook exits. The credentials given as raw data
    (e.g. from a kubeconfig with embedded certificates) are stored
    in temporary files while the session is open: `ssl` accepts only the files.
    """

    session: aiohttp.ClientSession
    server: str

    def __init__(
            self,
            info: credentials.ConnectionInfo,
    ) -> None:
        super().__init__()
        self._tempfiles = _TempFiles()

        ca_path = self._materialize("CA", info.ca_path, info.ca_data)
        certificate_path = self._materialize("certificate", info.certificate_path, info.certificate_data)
        private_key_path = self._materialize("private key", info.private_key_path, info.private_key_data)

        context = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH, cafile=ca_path)
        if certificate_path and private_key_path:
            context.load_cert_chain(certfile=certificate_path, keyfile=private_key_path)
        if info.insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        headers = build_headers(info)
        auth = aiohttp.BasicAuth(info.username, info.password) if info.username and info.password else None
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=context),
            headers=headers,
            auth=auth,
        )
        self.server = info.server

    def _materialize(self, what: str, path: Optional[str], data: Optional[bytes]) -> Optional[str]:
        if path and data:
            raise credentials.LoginError(f"Both {what} path & data are set. Need only one.")
        elif data:
            return self._tempfiles.write(base64.b64decode(data))
        else:
            return path or None

    async def close(self) -> None:
        await self.session.close()
        self._tempfiles.purge()


def build_headers(info: credentials.ConnectionInfo) -> Dict[str, str]:
    """ Build the token-based ``Authorization`` header, if any, and the ``User-Agent``. """
    headers: Dict[str, str] = {'User-Agent': f'vmgate/{versions.version or "unknown"}'}
    if info.scheme or info.token:
        scheme = info.scheme or 'Bearer'
        headers['Authorization'] = f'{scheme} {info.token}' if info.token else scheme
    return headers


class _TempFiles:
    """
    The credentials' data stored as files: one file per distinct content.

    The files are removed when the session is closed, or at least when
    the webhook's context is garbage-collected without closing.
    """

    def __init__(self) -> None:
        super().__init__()
        self._paths: Dict[bytes, str] = {}

    def __del__(self) -> None:
        self.purge()

    def write(self, content: bytes) -> str:
        if content not in self._paths:
            with tempfile.NamedTemporaryFile(delete=False) as f:
                f.write(content)
            self._paths[content] = f.name
        return self._paths[content]

    def purge(self) -> None:
        paths: List[str] = list(self._paths.values())
        self._paths.clear()
        for path in paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass  # already removed by someone else
