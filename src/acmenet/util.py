"""ACME utilities."""
import datetime
import hashlib
from typing import Optional

import josepy as jose
import pyrfc3339


def sha256_hash(text: str) -> bytes:
    """Compute the SHA-256 digest of the UTF-8 encoding of ``text``."""
    return hashlib.sha256(text.encode('utf-8')).digest()


def hex_encode(data: bytes) -> str:
    """Hex encode ``data`` using lower case digits."""
    return data.hex()


def base64url_encode(data: bytes) -> str:
    """Base64 encode ``data`` with the URL safe alphabet and no padding."""
    return jose.b64encode(data).decode('ascii')


def base64url_decode(text: str) -> bytes:
    """Decode unpadded URL safe base64.

    :raises ValueError: if ``text`` is not valid base64url

    """
    return jose.b64decode(text)


def to_ace(domain: Optional[str]) -> Optional[str]:
    """ASCII encode a domain name (RFC 3490).

    Surrounding white space is removed and the result is lower cased.
    Names that are already ACE encoded are returned unchanged.

    """
    if domain is None:
        return None
    return domain.strip().encode('idna').decode('ascii').lower()


def parse_timestamp(text: str) -> datetime.datetime:
    """Parse an RFC 3339 timestamp into an aware `datetime.datetime`.

    :raises ValueError: if ``text`` is not RFC 3339 formatted

    """
    return pyrfc3339.parse(text)
