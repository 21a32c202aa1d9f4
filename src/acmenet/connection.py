"""Signed, replay protected exchanges with an ACME server."""
import logging
from types import TracebackType
from typing import Any
from typing import FrozenSet
from typing import Iterable
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple
from typing import Type

import josepy as jose
import requests

from acmenet import errors
from acmenet import jws
from acmenet import messages
from acmenet.nonce import NonceStore
from acmenet.response import CertificateChain
from acmenet.response import classify
from acmenet.response import JOSE_CONTENT_TYPE
from acmenet.response import JsonResult
from acmenet.response import Outcome
from acmenet.response import Pending
from acmenet.response import Problem
from acmenet.response import TrackingState
from acmenet.transport import DEFAULT_NETWORK_TIMEOUT
from acmenet.transport import HttpTransport

logger = logging.getLogger(__name__)

REPLAY_NONCE_HEADER = 'Replay-Nonce'
BAD_NONCE = messages.ERROR_PREFIX + 'badNonce'
DEFAULT_ACCEPTABLE_STATUSES: FrozenSet[int] = frozenset({200})
# One regular attempt plus one retry after a badNonce error
MAX_ATTEMPTS = 2


class Session:
    """State shared by all connections to one ACME server.

    :param str new_nonce_url: The server's ``newNonce`` resource. If not
        set, nonces are fetched with a HEAD request to the target URL.
    :param bool verify_ssl: Whether to verify certificates on SSL connections.
    :param str user_agent: String to send as User-Agent header.
    :param int timeout: Timeout for requests.
    :param HttpTransport transport: Transport to use instead of a new one
        built from ``verify_ssl``, ``user_agent`` and ``timeout``.
    :param NonceStore nonces: Nonce store to use instead of a new one.
    """

    def __init__(self, new_nonce_url: Optional[str] = None, verify_ssl: bool = True,
                 user_agent: str = 'acmenet-python', timeout: int = DEFAULT_NETWORK_TIMEOUT,
                 transport: Optional[HttpTransport] = None,
                 nonces: Optional[NonceStore] = None) -> None:
        self.new_nonce_url = new_nonce_url
        if transport is None:
            transport = HttpTransport(verify_ssl=verify_ssl, user_agent=user_agent,
                                      timeout=timeout)
        self.transport = transport
        # NonceStore is falsy while empty
        self.nonces = nonces if nonces is not None else NonceStore()

    def connect(self) -> 'Connection':
        """Open a new connection bound to this session."""
        return Connection(self)

    def close(self) -> None:
        """Forget the nonce and release the transport."""
        self.nonces.clear()
        self.transport.close()

    def __enter__(self) -> 'Session':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> None:
        self.close()


class Connection:
    """Sends requests to the ACME server and remembers what came back.

    Signed requests take the session nonce (fetching one first if
    needed), are wrapped in a JWS and POSTed; responses are classified
    into an `.Outcome`. The ``Location``, ``Link`` and ``Retry-After``
    headers of the latest exchange are kept for `get_location`,
    `get_links` and `check_pending`, replaced as a whole by each new
    exchange.

    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._state = TrackingState()

    def close(self) -> None:
        """Drop the tracking state of the last exchange."""
        self._state = TrackingState()

    def __enter__(self) -> 'Connection':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> None:
        self.close()

    def reset_nonce(self, url: Optional[str] = None) -> None:
        """Replace the session nonce with a freshly fetched one.

        :param str url: URL to fetch the nonce from when the session has no
            ``newNonce`` URL

        """
        self.session.nonces.clear()
        self.session.nonces.set(self._fetch_nonce(url))

    def send_request(self, url: str, acceptable_statuses: Optional[Iterable[int]] = None,
                     accept: Optional[str] = None) -> Outcome:
        """Send an unsigned GET request.

        :param str url: Target URL
        :param acceptable_statuses: Success statuses besides 200
        :param str accept: Value of the ``Accept`` header

        :raises .messages.ProtocolError: if the server answered with a problem
        :raises .PendingOperation: on ``202 Accepted`` unless acceptable
        :raises .UnexpectedStatusError: on any other unexpected status
        :raises .TransportError: if the server could not be reached

        """
        headers = {}
        if accept is not None:
            headers['Accept'] = accept
        response = self.session.transport.get(url, headers=headers)
        return self._conclude(self._process(url, response), acceptable_statuses)

    def send_signed_request(self, url: str, claims: Any, identity: jws.Identity,
                            acceptable_statuses: Optional[Iterable[int]] = None,
                            enforce_jwk: bool = False, accept: Optional[str] = None) -> Outcome:
        """Send a signed POST request.

        If the server rejects the nonce, the request is signed again with
        a fresh nonce and resent, once.

        :param str url: Target URL
        :param claims: Request claims, ``None`` for POST-as-GET; an empty
            mapping is sent as ``{}``
        :param .Identity identity: Signing key and key identifier
        :param acceptable_statuses: Success statuses besides 200
        :param bool enforce_jwk: Embed the public key even if the key
            identifier is known
        :param str accept: Value of the ``Accept`` header

        :raises .messages.ProtocolError: if the server answered with a problem
        :raises .PendingOperation: on ``202 Accepted`` unless acceptable
        :raises .UnexpectedStatusError: on any other unexpected status
        :raises .NonceError: if no valid nonce could be obtained
        :raises .UnsupportedKeyError: if the key cannot sign requests
        :raises .TransportError: if the server could not be reached

        """
        headers = {'Content-Type': JOSE_CONTENT_TYPE}
        if accept is not None:
            headers['Accept'] = accept
        attempt = 0
        while True:
            attempt += 1
            nonce = self._take_nonce(url)
            envelope = jws.sign_request(url, claims, identity, nonce, enforce_jwk=enforce_jwk)
            response = self.session.transport.post(
                url, data=envelope.json_dumps(indent=2), headers=dict(headers))
            outcome = self._process(url, response)
            if (isinstance(outcome, Problem) and outcome.error.typ == BAD_NONCE
                    and attempt < MAX_ATTEMPTS):
                logger.debug('Retrying request after error:\n%s', outcome.error)
                continue
            return self._conclude(outcome, acceptable_statuses)

    def send_signed_post_as_get_request(self, url: str, identity: jws.Identity,
                                        acceptable_statuses: Optional[Iterable[int]] = None,
                                        accept: Optional[str] = None) -> Outcome:
        """Fetch a resource with a signed POST-as-GET request."""
        return self.send_signed_request(url, None, identity,
                                        acceptable_statuses=acceptable_statuses,
                                        accept=accept)

    def read_json(self) -> Any:
        """JSON payload of the last response.

        :raises .ClientError: if the last response was not a JSON resource

        """
        outcome = self._state.outcome
        if not isinstance(outcome, JsonResult):
            raise errors.ClientError('Last response did not contain a JSON resource')
        return outcome.payload

    def read_certificate_chain(self) -> CertificateChain:
        """Certificate chain of the last response.

        :raises .ClientError: if the last response was not a certificate chain

        """
        outcome = self._state.outcome
        if not isinstance(outcome, CertificateChain):
            raise errors.ClientError('Last response did not contain a certificate chain')
        return outcome

    def check_pending(self, message: Optional[str] = None) -> None:
        """Raise `.PendingOperation` if the last response was ``202 Accepted``.

        :param str message: Message to pass along with the signal

        """
        outcome = self._state.outcome
        if isinstance(outcome, Pending):
            raise errors.PendingOperation(outcome.retry_after, message)

    def get_location(self) -> Optional[str]:
        """``Location`` of the last response, resolved against its URL."""
        return self._state.location

    def get_links(self, relation: str) -> List[str]:
        """All ``Link`` URLs of a relation in the last response."""
        return list(self._state.links.get(relation, ()))

    def resolve_link(self, relation: str) -> Optional[str]:
        """First ``Link`` URL of a relation in the last response, or ``None``."""
        links = self._state.links.get(relation)
        return links[0] if links else None

    @property
    def links(self) -> Mapping[str, Tuple[str, ...]]:
        """Relation name to URLs of the last response."""
        return self._state.links

    @property
    def retry_after(self) -> Optional[int]:
        """``Retry-After`` of the last response in seconds, if present."""
        return self._state.retry_after

    def _fetch_nonce(self, url: Optional[str]) -> bytes:
        nonce_url = self.session.new_nonce_url or url
        if nonce_url is None:
            raise ValueError('No URL to fetch a nonce from')
        logger.debug('Requesting fresh nonce')
        response = self.session.transport.head(nonce_url)
        nonce = self._decode_nonce(response.headers)
        if nonce is not None:
            return nonce
        if response.status_code >= 400:
            outcome = classify(response.status_code, response.headers, response.content)
            if isinstance(outcome, Problem):
                raise outcome.error
        raise errors.MissingNonce('HEAD', response.headers)

    def _take_nonce(self, url: str) -> bytes:
        nonce = self.session.nonces.pop()
        if nonce is None:
            # The fresh nonce is consumed right away, so it never enters the store
            nonce = self._fetch_nonce(url)
        return nonce

    @staticmethod
    def _decode_nonce(headers: Mapping[str, str]) -> Optional[bytes]:
        if REPLAY_NONCE_HEADER not in headers:
            return None
        nonce = headers[REPLAY_NONCE_HEADER]
        try:
            return jws.Header._fields['nonce'].decode(nonce)  # pylint: disable=protected-access
        except jose.DeserializationError as error:
            raise errors.BadNonce(nonce, error)

    def _process(self, url: str, response: requests.Response) -> Outcome:
        # Redirects change the URL relative references resolve against
        sent_url = response.url or url
        try:
            outcome = classify(response.status_code, response.headers, response.content)
        except errors.ClientError:
            self._state = TrackingState.from_response(sent_url, response.headers, None)
            self._store_nonce(url, response.headers)
            raise
        self._state = TrackingState.from_response(sent_url, response.headers, outcome)
        self._store_nonce(url, response.headers)
        return outcome

    def _store_nonce(self, url: str, headers: Mapping[str, str]) -> None:
        nonce = self._decode_nonce(headers)
        if nonce is not None:
            self.session.nonces.set(nonce)
        else:
            logger.debug('Response from %s did not include a replay nonce', url)

    @staticmethod
    def _conclude(outcome: Outcome, acceptable_statuses: Optional[Iterable[int]]) -> Outcome:
        statuses = DEFAULT_ACCEPTABLE_STATUSES
        if acceptable_statuses is not None:
            statuses = statuses | frozenset(acceptable_statuses)
        if isinstance(outcome, Problem):
            raise outcome.error
        if isinstance(outcome, Pending) and outcome.status not in statuses:
            raise errors.PendingOperation(outcome.retry_after)
        if outcome.status not in statuses:
            raise errors.UnexpectedStatusError(outcome.status)
        return outcome
