"""HTTP transport shared by master and volume server calls."""

import json
import mimetypes
import time
from typing import BinaryIO, Mapping, Optional, Union
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from client.cancellation import CancelScope
from client.config import Config
from client.schemas import ErrorBody, UploadResponse
from common.exceptions import TransportError
from common.logging_config import get_logger

logger = get_logger(__name__)

DELETE_OK_STATUSES = (200, 202, 404)


def mk_url(host: str, path: str, args: Optional[Mapping[str, str]] = None) -> str:
    """
    Build a plain-HTTP URL for a host and path.

    Args:
        host: Server address in "HOST:PORT" format
        path: Request path, with or without the leading slash
        args: Optional query arguments

    Returns:
        URL string, e.g. "http://127.0.0.1:8080/3,01637037d6?ts=1700000000"
    """
    url = f"http://{host}/{path.lstrip('/')}"
    if args:
        url = f"{url}?{urlencode(args)}"
    return url


def decode_error_body(body: bytes) -> ErrorBody:
    """
    Decode an error response body.

    A JSON object with a string ``error`` field yields a structured error;
    anything else falls back to the raw body text. Never raises.
    """
    try:
        obj = json.loads(body)
    except ValueError:
        obj = None

    if isinstance(obj, dict) and isinstance(obj.get('error'), str):
        return ErrorBody(message=obj['error'], structured=True)

    return ErrorBody(message=body.decode('utf-8', errors='replace'), structured=False)


def parse_content_disposition(header: str) -> str:
    """
    Extract the suggested filename from a Content-Disposition header.

    Args:
        header: Header value, e.g. 'filename="report.pdf"' or 'inline; filename="a.txt"'

    Returns:
        Filename with surrounding quotes stripped, or "" if absent
    """
    for part in header.split(';'):
        part = part.strip()
        if part.startswith('filename='):
            return part[len('filename='):].strip('"')
    return ''


class HttpClient:
    """HTTP client over one pooled httpx session with retry logic and error mapping."""

    def __init__(self, config: Config, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize HTTP client.

        Args:
            config: Configuration instance
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.config = config
        self.timeout = config.get_timeout()
        max_connections = config.get_max_connections()
        self.session = httpx.Client(
            timeout=self.timeout,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections
            ),
            transport=transport
        )
        logger.debug(f"Initialized HttpClient [timeout={self.timeout}s, max_connections={max_connections}]")

    def _request_with_retry(
        self,
        method: str,
        url: str,
        scope: Optional[CancelScope] = None,
        retry: bool = True,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic on 5xx errors and network failures.

        Args:
            method: HTTP method (GET, POST, DELETE)
            url: Absolute URL
            scope: Optional cancel scope bounding the call
            retry: False for requests whose body cannot be replayed
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response object

        Raises:
            TransportError: If the request fails after all retries
            OperationCancelledError: If the scope is cancelled or expired
        """
        retry_config = self.config.get_retry_config()
        max_retries = retry_config['max_retries'] if retry else 0
        backoff = retry_config['retry_backoff_multiplier']

        for attempt in range(max_retries + 1):
            timeout = self.timeout
            if scope is not None:
                scope.raise_if_cancelled()
                timeout = scope.timeout_for(self.timeout)

            logger.debug(f"Making request: {method} {url} (attempt {attempt + 1}/{max_retries + 1})")

            try:
                response = self.session.request(method, url, timeout=timeout, **kwargs)
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                if attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {url} error={type(e).__name__}, retrying in {delay}s"
                    )
                    time.sleep(delay)
                    continue
                logger.error(f"Network error: {method} {url} error={e}")
                raise TransportError(f"{method} {url}: {type(e).__name__}: {e}") from e
            except httpx.HTTPError as e:
                raise TransportError(f"{method} {url}: {e}") from e

            if response.status_code >= 500 and attempt < max_retries:
                delay = backoff ** attempt
                logger.warning(
                    f"Server error (attempt {attempt + 1}/{max_retries + 1}): "
                    f"{method} {url} status={response.status_code}, retrying in {delay}s"
                )
                time.sleep(delay)
                continue

            return response

        raise TransportError(f"{method} {url}: max retries exceeded")

    def post_form(
        self,
        host: str,
        path: str,
        values: Mapping[str, str],
        scope: Optional[CancelScope] = None
    ) -> bytes:
        """
        POST form values and return the response body whatever the status.

        The master reports refusals inside the JSON body, so the caller
        decides what the content means.
        """
        response = self._request_with_retry('POST', mk_url(host, path), scope=scope, data=dict(values))
        return response.content

    def get_response(self, url: str, scope: Optional[CancelScope] = None) -> httpx.Response:
        """GET a URL and return the response whatever its status."""
        return self._request_with_retry('GET', url, scope=scope)

    def get(self, url: str, scope: Optional[CancelScope] = None) -> bytes:
        """
        GET a URL and return the body.

        Raises:
            TransportError: On network failure or non-200 status
        """
        response = self._request_with_retry('GET', url, scope=scope)
        if response.status_code != 200:
            raise TransportError(f"{url}: {response.status_code} {response.reason_phrase}", response.status_code)
        return response.content

    def delete(self, url: str, scope: Optional[CancelScope] = None) -> None:
        """
        DELETE a URL. 200, 202 and 404 all count as deleted.

        Raises:
            TransportError: With the decoded error message for any other status
        """
        response = self._request_with_retry('DELETE', url, scope=scope)
        if response.status_code in DELETE_OK_STATUSES:
            return

        error = decode_error_body(response.content)
        logger.warning(
            f"Delete failed: {url} status={response.status_code} structured={error.structured}"
        )
        raise TransportError(error.message or f"{url}: {response.status_code}", response.status_code)

    def upload(
        self,
        url: str,
        filename: str,
        content: Union[bytes, BinaryIO],
        is_gzipped: bool = False,
        mime_type: str = '',
        scope: Optional[CancelScope] = None
    ) -> UploadResponse:
        """
        Upload one blob as the multipart form part "file".

        Args:
            url: Target URL on the volume server (fid plus query arguments)
            filename: Filename sent in Content-Disposition
            content: Bytes, or a binary stream read to its end
            is_gzipped: Mark the part with Content-Encoding: gzip
            mime_type: Content type; guessed from the filename when empty
            scope: Optional cancel scope bounding the call

        Returns:
            Parsed UploadResponse

        Raises:
            TransportError: On network failure, unreadable response or a
                non-empty error field (even on HTTP 200)
        """
        content_type = mime_type or mimetypes.guess_type(filename)[0]
        part_headers = {'Content-Encoding': 'gzip'} if is_gzipped else {}
        files = {'file': (filename, content, content_type, part_headers)}

        response = self._request_with_retry(
            'POST',
            url,
            scope=scope,
            retry=isinstance(content, bytes),
            files=files
        )

        try:
            result = UploadResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise TransportError(
                f"Unexpected upload response from {url} (status {response.status_code}): "
                f"{response.text[:200]!r}",
                response.status_code
            ) from e

        if result.error:
            raise TransportError(result.error, response.status_code)
        if response.status_code >= 300:
            raise TransportError(f"{url}: {response.status_code} {response.reason_phrase}", response.status_code)

        logger.debug(f"Uploaded {filename} to {url} ({result.size} bytes)")
        return result

    def download(self, url: str, dest: BinaryIO, scope: Optional[CancelScope] = None) -> str:
        """
        Stream a blob into a writable binary file object.

        Args:
            url: Blob URL
            dest: Destination opened for binary writing
            scope: Optional cancel scope bounding the call

        Returns:
            Suggested filename from Content-Disposition, or "" if absent

        Raises:
            TransportError: On network failure or non-200 status
        """
        timeout = self.timeout
        if scope is not None:
            scope.raise_if_cancelled()
            timeout = scope.timeout_for(self.timeout)

        try:
            with self.session.stream('GET', url, timeout=timeout) as response:
                if response.status_code != 200:
                    response.read()
                    raise TransportError(
                        f"{url}: {response.status_code} {response.reason_phrase}",
                        response.status_code
                    )

                filename = parse_content_disposition(response.headers.get('Content-Disposition', ''))
                for piece in response.iter_bytes(chunk_size=64 * 1024):
                    dest.write(piece)
        except httpx.HTTPError as e:
            raise TransportError(f"GET {url}: {type(e).__name__}: {e}") from e

        return filename

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
