"""Classification of ACME server responses.

Every HTTP exchange with the server ends in exactly one of four outcomes:

* `JsonResult`: a JSON resource, or an empty one for bodiless success,
* `CertificateChain`: a PEM certificate chain download,
* `Problem`: an RFC 7807 problem document raised by the server,
* `Pending`: the server accepted the request but is still working on it.

`classify` maps status code, headers and body onto one of them, and
`TrackingState` captures the headers a caller may ask about later
(``Location``, ``Link`` and ``Retry-After``).
"""
from email.utils import mktime_tz
from email.utils import parsedate_tz
import http.client as http_client
import json
import logging
import re
import time
from types import MappingProxyType
from typing import Any
from typing import Dict
from typing import List
from typing import Mapping
from typing import NamedTuple
from typing import Optional
from typing import Tuple
from typing import Union
from urllib.parse import urljoin

from cryptography import x509
import josepy as jose
from requests.utils import parse_header_links

from acmenet import errors
from acmenet import messages

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = 'application/json'
JOSE_CONTENT_TYPE = 'application/jose+json'
PROBLEM_CONTENT_TYPE = 'application/problem+json'
PEM_CHAIN_CONTENT_TYPE = 'application/pem-certificate-chain'

# Seconds to wait before polling again when the server gives no usable hint
DEFAULT_RETRY_AFTER = 3

# Finds one CERTIFICATE stricttextualmsg according to rfc7468#section-3.
# Does not validate the base64text.
CERT_PEM_REGEX = re.compile(
    rb"-----BEGIN CERTIFICATE-----\r?\n.+?\r?\n-----END CERTIFICATE-----(?:\r?\n)?",
    re.DOTALL  # DOTALL (/s) because the base64text may include newlines
)


class JsonResult(NamedTuple):
    """Successful response carrying a JSON document (``{}`` if bodiless)."""
    status: int
    payload: Any


class CertificateChain(NamedTuple):
    """Successful certificate download.

    :ivar tuple certificates: PEM encoded certificates, leaf first, in the
        order the server sent them

    """
    status: int
    certificates: Tuple[bytes, ...]

    def x509_certificates(self) -> List[x509.Certificate]:
        """Load the chain with cryptography."""
        return [x509.load_pem_x509_certificate(cert) for cert in self.certificates]

    def pem(self) -> bytes:
        """The whole chain as one PEM document."""
        return b''.join(self.certificates)


class Problem(NamedTuple):
    """Error response; ``error`` is ready to be raised."""
    status: int
    error: messages.ProtocolError


class Pending(NamedTuple):
    """``202 Accepted``: poll again after ``retry_after`` seconds."""
    status: int
    retry_after: int


Outcome = Union[JsonResult, CertificateChain, Problem, Pending]


def media_type(headers: Mapping[str, str]) -> Optional[str]:
    """Content-Type without parameters (rfc2616#section-3.7), lower cased."""
    content_type = headers.get('Content-Type')
    if not content_type:
        return None
    return content_type.split(';')[0].strip().lower()


def parse_retry_after(value: Optional[str], default: int = DEFAULT_RETRY_AFTER,
                      now: Optional[float] = None) -> int:
    """Convert a ``Retry-After`` header value into seconds.

    Handles integers and the date formats of
    https://www.w3.org/Protocols/rfc2616/rfc2616-sec14.html#sec14.37.
    Dates in the past yield 0.

    :param str value: Header value, or ``None`` if absent
    :param int default: Used when the header is absent or invalid
    :param float now: Reference timestamp, defaults to the current time

    """
    if value is None:
        return default
    value = value.strip()
    try:
        seconds = int(value)
    except ValueError:
        when = parsedate_tz(value)
        if when is None:
            logger.debug('Ignoring malformed Retry-After header: %r', value)
            return default
        try:
            timestamp = mktime_tz(when)
        except (ValueError, OverflowError):
            return default
        if now is None:
            now = time.time()
        return max(0, int(timestamp - now))
    if seconds < 0:
        return default
    return seconds


def split_pem_chain(body: bytes) -> Tuple[bytes, ...]:
    """Split concatenated PEM certificates, keeping their order.

    :raises .ClientError: if the body holds no certificate

    """
    # TODO: "explanatory text" between certificates is silently skipped,
    # RFC 8555 section 7.4.2 forbids it.
    certs = tuple(CERT_PEM_REGEX.findall(body))
    if not certs:
        raise errors.ClientError('Certificate chain response did not contain a certificate')
    return certs


def _parse_problem(status: int, body: bytes, content_type: Optional[str]) -> messages.ProtocolError:
    reason = http_client.responses.get(status)
    if not body:
        return messages.ProtocolError.from_status(status, reason)
    try:
        jobj = json.loads(body)
    except ValueError:
        logger.debug('Error response body is not JSON')
        return messages.ProtocolError.from_status(status, reason)
    if content_type != PROBLEM_CONTENT_TYPE:
        logger.debug('Ignoring wrong Content-Type (%r) for JSON Error', content_type)
    if not isinstance(jobj, dict):
        return messages.ProtocolError.from_status(status, reason)
    try:
        return messages.ProtocolError.from_json(jobj)
    except jose.DeserializationError as error:
        logger.debug('Could not deserialize problem document: %s', error)
        return messages.ProtocolError.from_status(status, reason)


def classify(status: int, headers: Mapping[str, str], body: bytes) -> Outcome:
    """Map a server response onto exactly one `Outcome`.

    :param int status: HTTP status code
    :param headers: Case insensitive header mapping
    :param bytes body: Raw response body

    :raises .ClientError: if a certificate chain response holds no
        certificate
    :raises .UnexpectedStatusError: for any response not covered by the
        ACME response shapes

    """
    content_type = media_type(headers)

    if content_type == PEM_CHAIN_CONTENT_TYPE:
        return CertificateChain(status, split_pem_chain(body))

    if content_type == PROBLEM_CONTENT_TYPE or status >= 400:
        return Problem(status, _parse_problem(status, body, content_type))

    if status == http_client.ACCEPTED:
        return Pending(status, parse_retry_after(headers.get('Retry-After')))

    if status in (http_client.OK, http_client.CREATED) and body:
        try:
            payload = json.loads(body)
        except ValueError:
            raise errors.UnexpectedStatusError(
                status, 'response body is not JSON (Content-Type {0!r})'.format(content_type))
        if content_type != JSON_CONTENT_TYPE:
            logger.debug(
                'Ignoring wrong Content-Type (%r) for JSON decodable '
                'response', content_type)
        return JsonResult(status, payload)

    if status in (http_client.OK, http_client.NO_CONTENT) and not body:
        return JsonResult(status, {})

    raise errors.UnexpectedStatusError(status)


class TrackingState(NamedTuple):
    """Headers of the most recent exchange, resolved against its URL.

    :ivar str url: URL the request was sent to
    :ivar str location: Resolved ``Location`` header, or ``None``
    :ivar dict links: Relation name to resolved URLs, in header order
    :ivar int retry_after: ``Retry-After`` in seconds, ``None`` if absent
    :ivar outcome: Classified `Outcome` of the exchange

    """
    url: Optional[str] = None
    location: Optional[str] = None
    links: Mapping[str, Tuple[str, ...]] = MappingProxyType({})
    retry_after: Optional[int] = None
    outcome: Optional[Outcome] = None

    @classmethod
    def from_response(cls, url: str, headers: Mapping[str, str],
                      outcome: Optional[Outcome]) -> 'TrackingState':
        """Build the state of one exchange.

        :param str url: URL the request was actually sent to
        :param headers: Case insensitive response headers
        :param outcome: Result of `classify`, ``None`` if it failed

        """
        location = headers.get('Location')
        if location:
            location = urljoin(url, location.strip())
        retry_after = None
        if 'Retry-After' in headers:
            retry_after = parse_retry_after(headers['Retry-After'])
        return cls(url=url, location=location or None,
                   links=parse_links(url, headers.get('Link')),
                   retry_after=retry_after, outcome=outcome)


def parse_links(url: str, value: Optional[str]) -> Dict[str, Tuple[str, ...]]:
    """Collect all ``Link`` header URLs per relation.

    ``requests.Response.links`` can't be used directly because it drops
    multiple links of the same relation type, which is possible in RFC 8555
    responses.

    """
    if not value:
        return {}
    links: Dict[str, List[str]] = {}
    for link in parse_header_links(value):
        if 'rel' not in link or 'url' not in link:
            continue
        for rel in link['rel'].split():
            links.setdefault(rel, []).append(urljoin(url, link['url']))
    return {rel: tuple(urls) for rel, urls in links.items()}
