"""ACME problem documents."""
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

import josepy as jose

from acmenet import errors

ERROR_PREFIX = "urn:ietf:params:acme:error:"

ERROR_CODES = {
    'accountDoesNotExist': 'The request specified an account that does not exist',
    'alreadyRevoked': 'The request specified a certificate to be revoked that has'
    ' already been revoked',
    'badCSR': 'The CSR is unacceptable (e.g., due to a short key)',
    'badNonce': 'The client sent an unacceptable anti-replay nonce',
    'badPublicKey': 'The JWS was signed by a public key the server does not support',
    'badRevocationReason': 'The revocation reason provided is not allowed by the server',
    'badSignatureAlgorithm': 'The JWS was signed with an algorithm the server does not support',
    'caa': 'Certification Authority Authorization (CAA) records forbid the CA from issuing'
    ' a certificate',
    'compound': 'Specific error conditions are indicated in the "subproblems" array',
    'connection': ('The server could not connect to the client to verify the'
                   ' domain'),
    'dns': 'There was a problem with a DNS query during identifier validation',
    'dnssec': 'The server could not validate a DNSSEC signed domain',
    'externalAccountRequired': 'The server requires external account binding',
    'incorrectResponse': 'Response received didn\'t match the challenge\'s requirements',
    'invalidContact': 'The provided contact URI was invalid',
    'malformed': 'The request message was malformed',
    'orderNotReady': 'The request attempted to finalize an order that is not ready to be finalized',
    'rateLimited': 'There were too many requests of a given type',
    'rejectedIdentifier': 'The server will not issue certificates for the identifier',
    'serverInternal': 'The server experienced an internal error',
    'tls': 'The server experienced a TLS error during domain verification',
    'unauthorized': 'The client lacks sufficient authorization',
    'unknownHost': 'The server could not resolve a domain name',
    'unsupportedContact': 'A contact URL for an account used an unsupported protocol scheme',
    'unsupportedIdentifier': 'An identifier is of an unsupported type',
    'userActionRequired': 'Visit the "instance" URL and take actions specified there',
}

ERROR_TYPE_DESCRIPTIONS = {
    ERROR_PREFIX + name: desc for name, desc in ERROR_CODES.items()
}


def is_acme_error(err: BaseException) -> bool:
    """Check if argument is a problem document using an ACME error type."""
    if isinstance(err, ProtocolError) and (err.typ is not None):
        return ERROR_PREFIX in err.typ
    return False


class Identifier(jose.JSONObjectWithFields):
    """Identifier a subproblem refers to.

    :ivar str typ: Identifier type, e.g. ``dns`` or ``ip``
    :ivar str value:

    """
    typ: str = jose.field('type')
    value: str = jose.field('value')


class ProtocolError(jose.JSONObjectWithFields, errors.ClientError):
    """Structured error reported by the ACME server.

    https://datatracker.ietf.org/doc/html/rfc7807

    Note: Although ProtocolError inherits from JSONObjectWithFields, which
    is immutable, we add mutability to comply with the Python exception API.

    :ivar str typ: Error type URI
    :ivar str title:
    :ivar str detail:
    :ivar Identifier identifier:
    :ivar tuple subproblems: Further errors when a single request failed for
        several independent reasons, `tuple` of `ProtocolError`.

    """
    typ: str = jose.field('type', omitempty=True, default='about:blank')
    title: str = jose.field('title', omitempty=True)
    detail: str = jose.field('detail', omitempty=True)
    identifier: Optional[Identifier] = jose.field(
        'identifier', decoder=Identifier.from_json, omitempty=True)
    subproblems: Optional[Tuple['ProtocolError', ...]] = jose.field(
        'subproblems', omitempty=True)

    # josepy field decorators confuse mypy.
    @subproblems.decoder  # type: ignore
    def subproblems(value: List[Dict[str, Any]]) -> Tuple['ProtocolError', ...]:  # pylint: disable=no-self-argument,missing-function-docstring
        return tuple(ProtocolError.from_json(subproblem) for subproblem in value)

    @classmethod
    def with_code(cls, code: str, **kwargs: Any) -> 'ProtocolError':
        """Create a ProtocolError with an ACME error code.

        :str code: An ACME error code, like 'badNonce'.
        :kwargs: kwargs to pass to ProtocolError.

        """
        if code not in ERROR_CODES:
            raise ValueError("The supplied code: %s is not a known ACME error"
                             " code" % code)
        return cls(typ=ERROR_PREFIX + code, **kwargs)

    @classmethod
    def from_status(cls, status: int, reason: Optional[str] = None) -> 'ProtocolError':
        """Synthesize a problem for an error response without a usable body."""
        kwargs: Dict[str, Any] = {'detail': 'HTTP {0}'.format(status)}
        if reason:
            kwargs['title'] = reason
        return cls(**kwargs)

    @property
    def description(self) -> Optional[str]:
        """Hardcoded error description based on its type.

        :returns: Description if standard ACME error or ``None``.
        :rtype: str

        """
        return ERROR_TYPE_DESCRIPTIONS.get(self.typ)

    @property
    def code(self) -> Optional[str]:
        """ACME error code, ``self.typ`` without the ERROR_PREFIX.

        :returns: error code if standard ACME code or ``None``.
        :rtype: str

        """
        code = str(self.typ).rsplit(':', maxsplit=1)[-1]
        if code in ERROR_CODES:
            return code
        return None

    def __setattr__(self, name: str, value: Any) -> None:
        return object.__setattr__(self, name, value)

    def __str__(self) -> str:
        result = b' :: '.join(
            part.encode('ascii', 'backslashreplace') for part in
            (self.typ, self.description, self.detail, self.title)
            if part is not None).decode()
        if self.identifier:
            result = f'Problem for {self.identifier.value}: ' + result  # pylint: disable=no-member
        if self.subproblems:
            for subproblem in self.subproblems:
                result += f'\n{subproblem}'
        return result
