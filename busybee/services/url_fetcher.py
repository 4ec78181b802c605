"""
Remote image download with SSRF protection.

Key Features:
- Only http/https URLs without embedded credentials, with a host and a
  valid port
- The host is resolved once and every resolved address must be public
- The request is pinned to a resolved address (Host header and TLS SNI
  keep the original name) so DNS cannot rebind between check and connect
- Redirects are never followed; non-2xx responses and oversized
  Content-Length are rejected before any byte is stored
- The body is streamed into FileStorage, which re-applies magic-byte and
  size enforcement
"""

import ipaddress
import socket
from collections.abc import Callable
from urllib.parse import urlsplit

import httpx

from busybee.errors import ValidationError
from busybee.storage.files import FileStorage, StoredUpload, normalize_content_type
from busybee.utils.logger import safe_log_value, setup_logger

logger = setup_logger("services.url_fetcher")

FIELD = "imageUrl"

DEFAULT_PORTS = {"http": 80, "https": 443}

EXTENSION_BY_CONTENT_TYPE = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
}

Resolver = Callable[..., list]


def is_public_address(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """False for any-local, loopback, link-local, private/site-local, multicast and reserved."""
    if isinstance(address, ipaddress.IPv6Address):
        if address.ipv4_mapped is not None:
            return is_public_address(address.ipv4_mapped)
        if address.is_site_local:
            return False
    return not (
        address.is_unspecified
        or address.is_loopback
        or address.is_link_local
        or address.is_private
        or address.is_multicast
        or address.is_reserved
    )


def filename_for_content_type(content_type: str) -> str:
    return "download" + EXTENSION_BY_CONTENT_TYPE.get(normalize_content_type(content_type), ".png")


class UrlImageDownloader:
    def __init__(
        self,
        storage: FileStorage,
        *,
        connect_timeout: float = 5.0,
        read_timeout: float = 5.0,
        user_agent: str = "busybee/1.0",
        resolver: Resolver = socket.getaddrinfo,
        transport: httpx.BaseTransport | None = None,
    ):
        self.storage = storage
        self.timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self.user_agent = user_agent
        self._resolver = resolver
        self._transport = transport

    @classmethod
    def from_settings(cls, storage: FileStorage, settings) -> "UrlImageDownloader":
        return cls(
            storage,
            connect_timeout=settings.url_connect_timeout,
            read_timeout=settings.url_read_timeout,
            user_agent=settings.url_user_agent,
        )

    def download_and_store(self, url: str | None, username: str) -> StoredUpload:
        target, host, port = self._validate_url(url, username)
        logger.info(
            f"URL upload attempt: user={safe_log_value(username)} "
            f"scheme={target.scheme} host={safe_log_value(host)}"
        )
        addresses = self._resolve_public(host, port, username)

        with httpx.Client(
            timeout=self.timeout,
            follow_redirects=False,
            trust_env=False,
            transport=self._transport,
        ) as client:
            response = self._send_pinned(client, target, host, addresses, username)
            try:
                return self._store_response(response, host, username)
            finally:
                response.close()

    def _validate_url(self, url: str | None, username: str):
        if url is None or not url.strip():
            raise self._reject("missing URL", username)
        try:
            parsed = urlsplit(url.strip())
            port = parsed.port
        except ValueError as e:
            raise self._reject("invalid URL", username) from e

        scheme = parsed.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise self._reject("unsupported URL protocol", username)
        if parsed.username is not None or parsed.password is not None or "@" in parsed.netloc:
            raise self._reject("URL must not contain credentials", username)
        host = parsed.hostname
        if not host:
            raise self._reject("URL missing host", username)
        if port is not None and not 1 <= port <= 65535:
            raise self._reject("invalid port", username)
        try:
            target = httpx.URL(parsed.geturl())
        except httpx.InvalidURL as e:
            raise self._reject("invalid URL", username) from e
        return target, host, port or DEFAULT_PORTS[scheme]

    def _resolve_public(self, host: str, port: int, username: str) -> list[str]:
        try:
            infos = self._resolver(host, port, type=socket.SOCK_STREAM)
        except (OSError, UnicodeError) as e:
            logger.warning(f"URL upload rejected (DNS failure): user={safe_log_value(username)} host={safe_log_value(host)}")
            raise ValidationError(FIELD, "host resolution failed") from e

        addresses: list[str] = []
        for info in infos:
            literal = str(info[4][0]).split("%", 1)[0]
            try:
                address = ipaddress.ip_address(literal)
            except ValueError as e:
                raise ValidationError(FIELD, "host resolution failed") from e
            if not is_public_address(address):
                logger.warning(
                    f"URL upload rejected (SSRF blocked): user={safe_log_value(username)} "
                    f"host={safe_log_value(host)} ip={address}"
                )
                raise ValidationError(FIELD, "blocked host address")
            if str(address) not in addresses:
                addresses.append(str(address))

        if not addresses:
            logger.warning(f"URL upload rejected (DNS empty): user={safe_log_value(username)} host={safe_log_value(host)}")
            raise ValidationError(FIELD, "host resolution failed")
        return addresses

    def _send_pinned(
        self, client: httpx.Client, target: httpx.URL, host: str, addresses: list[str], username: str
    ) -> httpx.Response:
        """GET ``target`` against each resolved address in turn until one connects."""
        last_error: Exception | None = None
        for address in addresses:
            pinned_host = f"[{address}]" if ":" in address else address
            request = client.build_request(
                "GET",
                target.copy_with(host=pinned_host),
                headers={"User-Agent": self.user_agent},
            )
            request.headers["Host"] = target.netloc.decode("ascii")
            request.extensions["sni_hostname"] = host
            try:
                return client.send(request, stream=True)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                last_error = e
            except httpx.HTTPError as e:
                last_error = e
                break
        logger.warning(
            f"URL upload fetch failed: user={safe_log_value(username)} "
            f"host={safe_log_value(host)} error={type(last_error).__name__}"
        )
        raise ValidationError(FIELD, "failed to fetch URL") from last_error

    def _store_response(self, response: httpx.Response, host: str, username: str) -> StoredUpload:
        if not response.is_success:
            logger.warning(
                f"URL upload rejected (non-OK status): user={safe_log_value(username)} "
                f"host={safe_log_value(host)} status={response.status_code}"
            )
            raise ValidationError(FIELD, "URL returned non-OK status")

        content_length = None
        raw_length = response.headers.get("content-length")
        if raw_length is not None:
            try:
                content_length = int(raw_length)
            except ValueError:
                content_length = None
        if content_length is not None and content_length > self.storage.max_upload_bytes:
            logger.warning(
                f"URL upload rejected (content-length too large): user={safe_log_value(username)} "
                f"host={safe_log_value(host)} len={content_length}"
            )
            self.storage.check_declared_size(content_length, username, host)

        content_type = response.headers.get("content-type", "")
        try:
            stored = self.storage.store_stream(
                response.iter_bytes(self.storage.chunk_size),
                filename_for_content_type(content_type),
                content_type,
                username,
                content_length if content_length and content_length > 0 else None,
            )
        except httpx.HTTPError as e:
            logger.warning(f"URL upload failed: user={safe_log_value(username)} host={safe_log_value(host)}: {type(e).__name__}")
            raise ValidationError(FIELD, "failed to fetch URL") from e

        logger.info(
            f"URL upload stored: user={safe_log_value(username)} "
            f"host={safe_log_value(host)} stored={stored.handle}"
        )
        return stored

    def _reject(self, reason: str, username: str) -> ValidationError:
        logger.warning(f"URL upload rejected ({reason}): user={safe_log_value(username)}")
        return ValidationError(FIELD, reason)
