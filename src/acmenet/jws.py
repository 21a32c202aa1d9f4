"""ACME-specific JWS.

The JWS implementation in josepy only implements the base JOSE standard. In
order to support the new header fields defined in ACME, this module defines some
ACME-specific classes that layer on top of josepy, and the signer that turns
request claims into a signed envelope.
"""
import json
import logging
from typing import Any
from typing import NamedTuple
from typing import Optional
from urllib.parse import urlparse

import josepy as jose

from acmenet import errors

logger = logging.getLogger(__name__)

# Curve names as reported by cryptography's EllipticCurve.name
_EC_ALGORITHMS = {
    'secp256r1': jose.ES256,
    'secp384r1': jose.ES384,
    'secp521r1': jose.ES512,
}


class Header(jose.Header):
    """ACME-specific JOSE Header. Implements nonce, kid, and url.
    """
    nonce: Optional[bytes] = jose.field('nonce', omitempty=True, encoder=jose.encode_b64jose)
    kid: Optional[str] = jose.field('kid', omitempty=True)  # type: ignore[assignment]
    url: Optional[str] = jose.field('url', omitempty=True)

    # Mypy does not understand the josepy magic happening here, and falsely claims
    # that nonce is redefined. Let's ignore the type check here.
    @nonce.decoder  # type: ignore[no-redef,attr-defined,union-attr]
    def nonce(value: str) -> bytes:  # type: ignore[misc]  # pylint: disable=no-self-argument,missing-function-docstring
        try:
            return jose.decode_b64jose(value)
        except jose.DeserializationError as error:
            raise jose.DeserializationError("Invalid nonce: {0}".format(error))


class Signature(jose.Signature):
    """ACME-specific Signature. Uses ACME-specific Header for customer fields."""
    __slots__ = jose.Signature._orig_slots  # type: ignore[attr-defined]  # pylint: disable=protected-access,no-member

    header_cls = Header
    header: Header = jose.field(
        'header', omitempty=True, default=header_cls(),
        decoder=header_cls.from_json)


class JWS(jose.JWS):
    """ACME-specific JWS. Includes nonce, url, and kid in protected header."""
    signature_cls = Signature
    __slots__ = jose.JWS._orig_slots  # type: ignore[attr-defined]  # pylint: disable=protected-access

    @classmethod
    # type: ignore[override]  # pylint: disable=arguments-differ
    def sign(cls, payload: bytes, key: jose.JWK, alg: jose.JWASignature, nonce: Optional[bytes],
             url: Optional[str] = None, kid: Optional[str] = None) -> jose.JWS:
        # jwk and kid are mutually exclusive, so only include a jwk field
        # if kid is not provided.
        include_jwk = kid is None
        return super().sign(payload, key=key, alg=alg,
                            protect=frozenset(['nonce', 'url', 'kid', 'jwk', 'alg']),
                            nonce=nonce, url=url, kid=kid,
                            include_jwk=include_jwk)


class Identity(NamedTuple):
    """Account key used to sign requests.

    :ivar josepy.JWK key: Account private key
    :ivar str kid: Key identifier (account URL) assigned by the server,
        ``None`` until the account has been registered.

    """
    key: jose.JWK
    kid: Optional[str] = None


def key_algorithm(key: jose.JWK) -> jose.JWASignature:
    """Select the JWS algorithm for an account key.

    :param josepy.JWK key: Account private key

    :raises .UnsupportedKeyError: if there is no ACME algorithm for the key

    """
    if not hasattr(key.key, 'sign'):
        raise errors.UnsupportedKeyError(
            '{0} does not hold private key material'.format(type(key).__name__))
    if isinstance(key, jose.JWKRSA):
        return jose.RS256
    if isinstance(key, jose.JWKEC):
        curve = getattr(key.key, 'curve', None)
        curve_name = getattr(curve, 'name', None)
        try:
            return _EC_ALGORITHMS[curve_name]
        except KeyError:
            raise errors.UnsupportedKeyError('Unknown EC curve {0}'.format(curve_name))
    raise errors.UnsupportedKeyError('Unsupported key type {0}'.format(type(key).__name__))


def encode_claims(claims: Any) -> bytes:
    """Serialize request claims; ``None`` makes a POST-as-GET payload."""
    if claims is None:
        return b''
    if isinstance(claims, jose.JSONDeSerializable):
        return claims.json_dumps(indent=2).encode()
    return json.dumps(claims, indent=2,
                      default=jose.JSONDeSerializable.json_dump_default).encode()


def sign_request(url: str, claims: Any, identity: Identity, nonce: bytes,
                 enforce_jwk: bool = False) -> JWS:
    """Wrap request claims in a signed envelope.

    :param str url: Absolute URL the envelope will be POSTed to
    :param claims: Mapping or `josepy.JSONDeSerializable`, or ``None`` for
        POST-as-GET
    :param Identity identity: Key and optional key identifier
    :param bytes nonce: Decoded replay nonce, used only for this envelope
    :param bool enforce_jwk: Embed the public key even if a key
        identifier is known (key rollover)

    :raises ValueError: if ``url`` is not absolute
    :raises .UnsupportedKeyError: if the key cannot be used for signing

    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError('Signed requests need an absolute URL, got {0!r}'.format(url))
    alg = key_algorithm(identity.key)
    payload = encode_claims(claims)
    logger.debug('JWS payload:\n%s', payload)
    kid = None if enforce_jwk else identity.kid
    return JWS.sign(payload, key=identity.key, alg=alg, nonce=nonce, url=url, kid=kid)
