"""
HTTP transport with connectivity awareness, retry and error classification.

Infrastructure layer for talking to the processing service.
"""

import platform
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import requests
from requests.exceptions import RequestException

from chordispeak.domain.exceptions import ErrorKind, TransportError, classify_status
from chordispeak.domain.protocols import IConnectivity
from chordispeak.shared.logging import get_logger
from chordispeak.shared.metrics import MetricsCollector
from chordispeak.shared.retry import RetryStrategy

T = TypeVar('T')

Decoder = Callable[[requests.Response], T]

logger = get_logger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    """
    One logical HTTP request.

    Attributes:
        method: HTTP method
        path: Path relative to the client's base URL
        params: Optional query parameters
        headers: Extra headers merged over the session defaults
        body: Raw body (bytes or a readable file-like object)
        transfer: True for large body transfers, which get the longer
            resource timeout
    """
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Union[bytes, Any]] = None
    transfer: bool = False


def json_decoder(factory: Callable[[Dict[str, Any]], T]) -> Decoder:
    """Decoder that parses a JSON object and hands it to factory."""

    def decode(response: requests.Response) -> T:
        data = response.json()
        if not isinstance(data, dict):
            raise TypeError(f"Expected a JSON object, got {type(data).__name__}")
        return factory(data)

    return decode


def raw_bytes(response: requests.Response) -> bytes:
    """Decoder returning the raw response body."""
    return response.content


def ignore_body(response: requests.Response) -> None:
    """Decoder for acknowledgement responses whose body does not matter."""
    return None


def classify_request_exception(error: RequestException) -> TransportError:
    """Map a requests-level failure (no HTTP status available) to a transport error."""
    # ConnectTimeout is both a Timeout and a ConnectionError; timeouts win
    if isinstance(error, requests.exceptions.Timeout):
        return TransportError(ErrorKind.TIMEOUT)
    if isinstance(error, (requests.exceptions.ChunkedEncodingError,
                          requests.exceptions.ContentDecodingError,
                          requests.exceptions.InvalidHeader)):
        return TransportError(ErrorKind.INVALID_RESPONSE)
    if isinstance(error, requests.exceptions.ConnectionError):
        return TransportError(ErrorKind.NO_CONNECTION)
    return TransportError(ErrorKind.UNKNOWN, detail=str(error))


def default_headers(app_version: str) -> Dict[str, str]:
    """Informational headers sent with every request."""
    return {
        'User-Agent': f"ChordiSpeak/{app_version} Python",
        'Accept': 'application/json',
        'X-App-Version': app_version,
        'X-Platform-Version': f"{platform.system()} {platform.release()}".strip(),
        'X-Device-Model': platform.machine() or "unknown",
    }


class TransportClient:
    """
    Issues HTTP requests against the service base URL.

    Transient failures (no connection, timeout, 5xx, 429) are retried up to
    ``max_retry_attempts`` additional times with a fixed delay; everything
    else propagates on the first failure. Instances hold no per-request
    state and may be shared between threads.
    """

    def __init__(
        self,
        base_url: str,
        connectivity: IConnectivity,
        request_timeout: float = 30.0,
        resource_timeout: float = 120.0,
        max_retry_attempts: int = 3,
        retry_delay: float = 2.0,
        app_version: str = "1.0.0",
        session: Optional[requests.Session] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        """
        Initialize transport.

        Args:
            base_url: Service base URL
            connectivity: Reachability state consulted before each attempt
            request_timeout: Timeout for ordinary requests (seconds)
            resource_timeout: Read timeout for large body transfers (seconds)
            max_retry_attempts: Additional attempts for transient failures
            retry_delay: Fixed delay between attempts (seconds)
            app_version: Version reported in informational headers
            session: Optional preconfigured requests session
            metrics: Optional metrics collector
            sleep: Optional sleep function used between retries
        """
        self.base_url = base_url.rstrip('/')
        self.request_timeout = request_timeout
        self.resource_timeout = resource_timeout
        self._connectivity = connectivity
        self._metrics = metrics

        retry_kwargs = {'sleep': sleep} if sleep else {}
        self._retry = RetryStrategy(
            max_retries=max_retry_attempts,
            backoff_seconds=retry_delay,
            should_retry=self._is_transient,
            **retry_kwargs
        )
        self._no_retry = RetryStrategy(max_retries=0, **retry_kwargs)

        self.session = session or requests.Session()
        self.session.headers.update(default_headers(app_version))

    @property
    def max_retry_attempts(self) -> int:
        return self._retry.max_retries

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def execute(self, request: ApiRequest, decode: Decoder, retry: bool = True) -> Any:
        """
        Perform a request and decode its body.

        Args:
            request: Request to send (re-sent unchanged on retry)
            decode: Callable turning a 2xx response into the result
            retry: Set to False for non-idempotent requests

        Returns:
            Decoded result

        Raises:
            TransportError: Classified failure after retries are exhausted
        """
        strategy = self._retry if retry else self._no_retry
        try:
            return strategy.execute(
                self._attempt,
                request,
                decode,
                on_retry=self._on_retry
            )
        except TransportError as e:
            self._count('http_failures')
            logger.error(f"{request.method} {request.path} failed: {e!r} {e}")
            raise

    def _attempt(self, request: ApiRequest, decode: Decoder) -> Any:
        if not self._connectivity.is_reachable():
            raise TransportError(ErrorKind.NO_CONNECTION)

        self._count('http_requests')
        url = self.url_for(request.path)
        logger.debug(f"{request.method} {url}")

        try:
            response = self.session.request(
                request.method,
                url,
                params=request.params,
                headers=request.headers or None,
                data=request.body,
                timeout=self._timeout_for(request),
            )
        except RequestException as e:
            raise classify_request_exception(e) from e

        try:
            error = classify_status(response.status_code)
            if error is not None:
                raise error
            try:
                return decode(response)
            # Must precede RequestException: requests' JSONDecodeError is both
            except (ValueError, KeyError, TypeError) as e:
                raise TransportError(ErrorKind.DECODING_ERROR, detail=str(e)) from e
            except RequestException as e:
                raise classify_request_exception(e) from e
        finally:
            response.close()

    def _timeout_for(self, request: ApiRequest):
        if request.transfer:
            return (self.request_timeout, self.resource_timeout)
        return self.request_timeout

    def _on_retry(self, attempt: int, error: Exception) -> None:
        self._count('http_retries')

    def _count(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.increment_counter(name)

    @staticmethod
    def _is_transient(error: Exception) -> bool:
        return isinstance(error, TransportError) and error.is_transient
