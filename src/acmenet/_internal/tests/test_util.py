"""Test utilities.

.. warning:: This module is not part of the public API.

"""
import datetime
import functools
import json
from typing import Any
from typing import Mapping
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
import josepy as jose
import requests
from requests.structures import CaseInsensitiveDict


@functools.lru_cache(maxsize=None)
def rsa_key() -> jose.JWKRSA:
    """RSA account key, generated once per test run."""
    return jose.JWKRSA(key=rsa.generate_private_key(public_exponent=65537, key_size=2048))


def ec_key(curve: ec.EllipticCurve) -> jose.JWKEC:
    """EC account key on ``curve``."""
    return jose.JWKEC(key=ec.generate_private_key(curve))


def make_response(status: int = 200, headers: Optional[Mapping[str, str]] = None,
                  body: Any = b'', url: Optional[str] = None) -> requests.Response:
    """Build a real `requests.Response`.

    ``body`` may be bytes or a JSON serializable object.
    """
    response = requests.Response()
    response.status_code = status
    response.headers = CaseInsensitiveDict(headers or {})
    if not isinstance(body, bytes):
        body = json.dumps(body).encode()
    response._content = body  # pylint: disable=protected-access
    response.url = url
    response.encoding = 'utf-8'
    return response


def make_cert_pem(common_name: str) -> bytes:
    """Self signed PEM certificate for ``common_name``."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = x509.CertificateBuilder(
        subject_name=name,
        issuer_name=name,
        public_key=key.public_key(),
        serial_number=x509.random_serial_number(),
        not_valid_before=now,
        not_valid_after=now + datetime.timedelta(days=1),
    ).sign(private_key=key, algorithm=hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM)
