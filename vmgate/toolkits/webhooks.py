"""
The HTTPS server for the admission reviews from the apiservers.

The server knows nothing about VirtualMachines or permissions: it receives
the admission reviews, passes them to a `reviews.WebhookFn` function
(see `vmgate.reactor.admission.serve_admission_request`), and sends back
whatever that function returns.
"""
import asyncio
import base64
import contextlib
import ipaddress
import json
import logging
import os
import pathlib
import socket
import ssl
import tempfile
import urllib.parse
from typing import TYPE_CHECKING, AsyncIterator, Collection, Dict, Iterable, Optional, Tuple, Union

import aiohttp.web

from vmgate.reactor import admission
from vmgate.structs import reviews

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    StrPath = Union[str, os.PathLike[str]]
else:
    StrPath = Union[str, os.PathLike]

HEALTHZ_PATH = '/healthz'


class MissingDependencyError(ImportError):
    """ A feature is used which requires an optional dependency. """


class WebhookServer:
    """
    A local HTTPS endpoint for the admission reviews.

    * ``addr``, ``port`` is where to listen for connections
      (defaults to all interfaces and a random free port).
    * ``path`` is the root path of the webhook endpoints;
      the reviews are accepted at any sub-path of it (e.g. ``/validate/vm``).
    * ``host`` is the hostname to put into the webhook's client config;
      if not specified, an accessible form of ``addr`` is used.

    The apiservers talk to webhooks only via HTTPS. The server's certificate
    is either provided (``certfile``, ``pkeyfile``, optionally ``password``),
    or is generated as self-signed for the host, the address, and ``extra_sans``
    (this requires the ``vmgate[dev]`` extra).

    * ``cadata``, ``cafile`` is the CA bundle for the apiservers to verify
      the server's certificate; it goes to the client config only.
      By default, the server's own certificate is used as the CA bundle.
    * ``cadump`` is a path to write the CA bundle to,
      e.g. for ``curl --cacert ...`` or for the webhook configuration.
    * ``verify_mode``, ``verify_cafile``, ``verify_capath``, ``verify_cadata``
      configure the verification of the client certificates of the apiservers
      (`ssl.SSLContext.verify_mode`, `ssl.SSLContext.load_verify_locations`).
    * ``insecure`` serves plain HTTP: for debugging, or behind a TLS proxy.

    Besides the reviews, the server responds to ``GET /healthz``
    for the liveness & readiness probes.
    """

    addr: Optional[str]  # None means "all interfaces"
    port: Optional[int]  # None means random port
    host: Optional[str]
    path: Optional[str]

    cadata: Optional[bytes]  # -> .webhooks.*.clientConfig.caBundle
    cafile: Optional[StrPath]
    cadump: Optional[StrPath]

    context: Optional[ssl.SSLContext]
    insecure: bool
    certfile: Optional[StrPath]
    pkeyfile: Optional[StrPath]
    password: Optional[str]

    extra_sans: Iterable[str]

    verify_mode: Optional[ssl.VerifyMode]
    verify_cafile: Optional[StrPath]
    verify_capath: Optional[StrPath]
    verify_cadata: Optional[Union[str, bytes]]

    def __init__(
            self,
            *,
            # Listening socket, root URL path, and the reported URL hostname:
            addr: Optional[str] = None,
            port: Optional[int] = None,
            path: Optional[str] = None,
            host: Optional[str] = None,
            # The CA bundle for the apiservers:
            cadata: Optional[bytes] = None,
            cafile: Optional[StrPath] = None,
            cadump: Optional[StrPath] = None,
            # A pre-configured SSL context (if any):
            context: Optional[ssl.SSLContext] = None,
            # The server's own certificate, or lack of it:
            insecure: bool = False,
            certfile: Optional[StrPath] = None,
            pkeyfile: Optional[StrPath] = None,
            password: Optional[str] = None,
            # Extra names for the self-signed certificate:
            extra_sans: Iterable[str] = (),
            # Verification of the client certificates:
            verify_mode: Optional[ssl.VerifyMode] = None,
            verify_cafile: Optional[StrPath] = None,
            verify_capath: Optional[StrPath] = None,
            verify_cadata: Optional[Union[str, bytes]] = None,
    ) -> None:
        super().__init__()
        self.addr = addr
        self.port = port
        self.path = path
        self.host = host
        self.cadata = cadata
        self.cafile = cafile
        self.cadump = cadump
        self.context = context
        self.insecure = insecure
        self.certfile = certfile
        self.pkeyfile = pkeyfile
        self.password = password
        self.extra_sans = extra_sans
        self.verify_mode = verify_mode
        self.verify_cafile = verify_cafile
        self.verify_capath = verify_capath
        self.verify_cadata = verify_cadata

    async def __call__(self, fn: reviews.WebhookFn) -> AsyncIterator[reviews.WebhookClientConfig]:
        """
        Serve the reviews until cancelled; yield the client config once started.
        """
        cadata, context = self._build_ssl()
        runner = aiohttp.web.AppRunner(self.build_app(fn), handle_signals=False)
        await runner.setup()
        try:
            addr = self.addr or None  # None is aiohttp's "any interface"
            port = self.port or self._allocate_free_port()
            site = aiohttp.web.TCPSite(runner, addr, port, ssl_context=context)
            await site.start()

            schema = 'http' if context is None else 'https'
            listening_url = self._build_url(schema, addr or '*', port, self.path or '')
            host = self.host or self._get_accessible_addr(self.addr)
            url = self._build_url(schema, host, port, self.path or '')
            logger.info(f"Listening for admission reviews at {listening_url}")
            logger.debug(f"Accessing the admission reviews at {url}")

            client_config = reviews.WebhookClientConfig(url=url)
            if cadata is not None:
                client_config['caBundle'] = base64.b64encode(cadata).decode('ascii')

            yield client_config
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()

    def build_app(self, fn: reviews.WebhookFn) -> aiohttp.web.Application:

        # A coroutine instead of a partial, so that aiohttp does not warn about it.
        async def _serve_fn(request: aiohttp.web.Request) -> aiohttp.web.Response:
            return await self._serve(fn, request)

        path = self.path.rstrip('/') if self.path else ''
        app = aiohttp.web.Application()
        app.add_routes([
            aiohttp.web.get(HEALTHZ_PATH, self._healthz),
            aiohttp.web.post(f"{path}/{{id:.*}}", _serve_fn),
        ])
        if path:  # the client config's URL itself, with no trailing slash
            app.add_routes([aiohttp.web.post(path, _serve_fn)])
        return app

    @staticmethod
    async def _healthz(request: aiohttp.web.Request) -> aiohttp.web.Response:
        return aiohttp.web.json_response({'status': 'ok'})

    @staticmethod
    async def _serve(
            fn: reviews.WebhookFn,
            request: aiohttp.web.Request,
    ) -> aiohttp.web.Response:
        """
        Serve a single admission review.

        The errors are reported in one of two ways:

        * As HTTP errors of the webhook itself, when the review is malformed.
          The apiservers then apply the webhook's ``failurePolicy``.
        * As a denial in the review's ``.response.status``, when the review
          is fine, but the operation is not permitted (or cannot be checked).
          The apiservers then pass the status to the requesting user.
        """
        # This is the identity of an apiserver, not of the user who makes the API request.
        headers = dict(request.headers)
        sslpeer = request.transport.get_extra_info('peercert') if request.transport else None
        webhook = request.match_info.get('id')
        try:
            text = await request.text()
            data = json.loads(text)
            if not isinstance(data, dict):
                raise admission.WebhookError("The admission review must be a JSON object.")
            response = await fn(data, webhook=webhook, sslpeer=sslpeer, headers=headers)
            return aiohttp.web.json_response(response)
        except admission.WebhookError as e:
            logger.warning(f"Rejected a malformed admission review: {e}")
            raise aiohttp.web.HTTPBadRequest(reason=str(e))
        except json.JSONDecodeError as e:
            logger.warning(f"Rejected a non-JSON admission review: {e}")
            raise aiohttp.web.HTTPBadRequest(reason=str(e))

    @staticmethod
    def _allocate_free_port() -> int:
        with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind(('', 0))  # '' is a special IPv4 form for "any interface"
            return int(s.getsockname()[1])

    @staticmethod
    def _get_accessible_addr(addr: Optional[str]) -> str:
        """
        Convert a catch-all listening address (``0.0.0.0``, ``::``) to a reachable one.

        Other addresses and hostnames are returned as they are.
        """
        if addr is None:
            return 'localhost'
        try:
            ipv4 = ipaddress.IPv4Address(addr)
        except ipaddress.AddressValueError:
            pass
        else:
            return '127.0.0.1' if ipv4.is_unspecified else addr
        try:
            ipv6 = ipaddress.IPv6Address(addr)
        except ipaddress.AddressValueError:
            pass
        else:
            return '::1' if ipv6.is_unspecified else addr
        return addr

    @staticmethod
    def _build_url(schema: str, host: str, port: int, path: str) -> str:
        try:
            ipv6 = ipaddress.IPv6Address(host)
        except ipaddress.AddressValueError:
            pass
        else:
            host = f'[{ipv6}]'
        is_default_port = ((schema == 'http' and port == 80) or
                           (schema == 'https' and port == 443))
        netloc = host if is_default_port else f'{host}:{port}'
        return urllib.parse.urlunsplit([schema, netloc, path, '', ''])

    def _build_ssl(self) -> Tuple[Optional[bytes], Optional[ssl.SSLContext]]:
        """
        Build the server's SSL context and the CA bundle for the client config.

        Both are ``None`` for the insecure (HTTP) mode. Without the provided
        certificate, a self-signed one is generated, and it becomes the CA bundle.
        """
        if self.insecure and self.context is not None:
            raise ValueError("Insecure mode cannot have an SSL context specified.")

        cadata = self.cadata
        if cadata is None and self.cafile is not None:
            cadata = pathlib.Path(self.cafile).read_bytes()

        context = self.context
        if context is None and not self.insecure:
            context = ssl.create_default_context(purpose=ssl.Purpose.CLIENT_AUTH)

        if context is not None:
            self._load_client_verification(context)
            if self.certfile is not None and self.pkeyfile is not None:
                logger.debug("Using the provided certificate for HTTPS.")
                context.load_cert_chain(self.certfile, self.pkeyfile, self.password)
                if cadata is None:
                    cadata = pathlib.Path(self.certfile).read_bytes()
            else:
                logger.debug("Generating a self-signed certificate for HTTPS.")
                addr = self._get_accessible_addr(self.addr)
                hostnames = [self.host or addr, addr] + list(self.extra_sans)
                certdata, pkeydata = self.build_certificate(hostnames, self.password)
                with tempfile.NamedTemporaryFile() as certf, tempfile.NamedTemporaryFile() as pkeyf:
                    certf.write(certdata)
                    pkeyf.write(pkeydata)
                    certf.flush()
                    pkeyf.flush()
                    context.load_cert_chain(certf.name, pkeyf.name, self.password)
                cadata = certdata  # the self-signed certificate is its own CA.

        # Only the certificate, never the private key.
        if self.cadump is not None and cadata is not None:
            pathlib.Path(self.cadump).write_bytes(cadata)

        return cadata, context

    def _load_client_verification(self, context: ssl.SSLContext) -> None:
        if self.verify_mode is not None:
            context.verify_mode = self.verify_mode
        if self.verify_cafile or self.verify_capath or self.verify_cadata:
            logger.debug("Loading a CA for the client certificate verification.")
            context.load_verify_locations(
                self.verify_cafile,
                self.verify_capath,
                self.verify_cadata,
            )
            if context.verify_mode == ssl.CERT_NONE:
                context.verify_mode = ssl.CERT_OPTIONAL

    @staticmethod
    def build_certificate(
            hostnames: Collection[str],
            password: Optional[str] = None,
    ) -> Tuple[bytes, bytes]:
        """
        Build a self-signed certificate for the hostnames & IP addresses.

        Returns the PEM-encoded certificate and its private key.

        The IP addresses are recognised and put as IP SANs in the canonical form
        (the apiservers are strict about it); the catch-all ones are skipped.
        The first non-IP hostname becomes the common name, or the first IP
        if there are no hostnames at all.

        It requires ``certbuilder`` & ``oscrypto``, which are only installed
        with the ``vmgate[dev]`` extra: in the clusters, the certificates are
        usually provided by cert-manager or similar tools.
        """
        try:
            import certbuilder
            import oscrypto.asymmetric
        except ImportError:
            raise MissingDependencyError(
                "Self-signed certificates require an extra dependency: "
                "run `pip install vmgate[dev]`. "
                "Or provide the certificate & key via certfile=/pkeyfile=. "
                "Or use insecure=True for plain HTTP.")

        parsed_ips: Dict[str, Union[ipaddress.IPv4Address, ipaddress.IPv6Address]] = {}
        for hostname in hostnames:
            try:
                parsed_ips[hostname] = ipaddress.IPv4Address(hostname)
            except ipaddress.AddressValueError:
                pass
            try:
                parsed_ips[hostname] = ipaddress.IPv6Address(hostname)
            except ipaddress.AddressValueError:
                pass

        dns_names = [hostname for hostname in hostnames if hostname not in parsed_ips]
        ip_names = [str(ip) for ip in parsed_ips.values() if not ip.is_unspecified]

        subject = {'common_name': dns_names[0] if dns_names else ip_names[0]}
        public_key, private_key = oscrypto.asymmetric.generate_pair('rsa', bit_size=2048)
        builder = certbuilder.CertificateBuilder(subject, public_key)
        builder.ca = True
        builder.key_usage = {'digital_signature', 'key_encipherment', 'key_cert_sign', 'crl_sign'}
        builder.extended_key_usage = {'server_auth', 'client_auth'}
        builder.self_signed = True
        builder.subject_alt_ips = sorted(set(ip_names))
        builder.subject_alt_domains = sorted(set(dns_names) | set(ip_names))
        certificate = builder.build(private_key)
        cert_pem: bytes = certbuilder.pem_armor_certificate(certificate)
        pkey_pem: bytes = oscrypto.asymmetric.dump_private_key(private_key, password, target_ms=10)
        return cert_pem, pkey_pem
