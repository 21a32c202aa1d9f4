"""ACME transport errors."""
import datetime
from typing import Any
from typing import Mapping
from typing import Optional


def redact_nonce(nonce: Any) -> str:
    """Shorten a nonce so that it can be shown in messages and logs."""
    if isinstance(nonce, bytes):
        nonce = nonce.decode('ascii', 'backslashreplace')
    nonce = str(nonce)
    if len(nonce) <= 4:
        return '...'
    return nonce[:4] + '...'


class Error(Exception):
    """Generic ACME error."""


class ClientError(Error):
    """Network error."""


class TransportError(ClientError):
    """The HTTP round trip itself failed (connection, TLS, timeout).

    :ivar str method: HTTP method of the failed request
    :ivar str url: Target URL of the failed request
    :ivar Exception error: The original exception raised by the HTTP library

    """
    def __init__(self, method: str, url: str, error: Exception) -> None:
        super().__init__()
        self.method = method
        self.url = url
        self.error = error

    def __str__(self) -> str:
        return 'Requesting {0} {1} failed: {2}'.format(self.method, self.url, self.error)


class UnexpectedStatusError(ClientError):
    """Response the client does not know how to interpret.

    :ivar int status: HTTP status code of the response

    """
    def __init__(self, status: int, detail: Optional[str] = None) -> None:
        super().__init__()
        self.status = status
        self.detail = detail

    def __str__(self) -> str:
        msg = 'Unexpected HTTP status {0}'.format(self.status)
        if self.detail:
            msg += ': {0}'.format(self.detail)
        return msg


class NonceError(ClientError):
    """Server response nonce error."""


class BadNonce(NonceError):
    """Bad nonce error."""
    def __init__(self, nonce: str, error: Exception, *args: Any) -> None:
        super().__init__(*args)
        self.nonce = nonce
        self.error = error

    def __str__(self) -> str:
        return 'Invalid nonce ({0!r}): {1}'.format(redact_nonce(self.nonce), self.error)


class MissingNonce(NonceError):
    """Missing nonce error.

    RFC 8555 states that an "ACME server MUST include an
    Replay-Nonce header field in each successful response to a POST it
    provides to a client (...)".

    :ivar str method: Method of the request that was answered without nonce
    :ivar headers: Mapping of HTTP headers

    """
    def __init__(self, method: str, headers: Mapping[str, str], *args: Any) -> None:
        super().__init__(*args)
        self.method = method
        self.headers = dict(headers)

    def __str__(self) -> str:
        return ('Server {0} response did not include a replay '
                'nonce, headers: {1} (This may be a service outage)'.format(
                    self.method, self.headers))


class PendingOperation(Error):
    """The server accepted the request but has not finished processing it.

    This is a signal rather than a failure: the caller is expected to
    poll the resource again once ``retry_after`` seconds have passed.

    :ivar int retry_after: Seconds to wait before polling again
    :ivar datetime.datetime retry_at: Aware point in time of the next poll

    """
    def __init__(self, retry_after: int, message: Optional[str] = None,
                 retry_at: Optional[datetime.datetime] = None) -> None:
        super().__init__()
        self.retry_after = retry_after
        self.message = message
        if retry_at is None:
            retry_at = (datetime.datetime.now(datetime.timezone.utc)
                        + datetime.timedelta(seconds=retry_after))
        self.retry_at = retry_at

    def __str__(self) -> str:
        msg = self.message or 'Operation is still in progress'
        return '{0}, retry after {1} seconds'.format(msg, self.retry_after)


class UnsupportedKeyError(Error):
    """The account key cannot be used for signing ACME requests."""
