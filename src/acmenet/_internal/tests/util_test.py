"""Tests for acmenet.util."""
import datetime
import sys

import pytest

CORPUS = [b'', b'\x00', b'\xff\xfe\xfd', b'foo', b'ACME' * 33, bytes(range(256))]


def test_hex_encode():
    from acmenet.util import hex_encode
    assert hex_encode(b'') == ''
    assert hex_encode(b'\x00\x0f\xab\xff') == '000fabff'
    for data in CORPUS:
        assert bytes.fromhex(hex_encode(data)) == data


def test_base64url_roundtrip():
    from acmenet.util import base64url_decode
    from acmenet.util import base64url_encode
    for data in CORPUS:
        encoded = base64url_encode(data)
        assert '=' not in encoded
        assert '+' not in encoded and '/' not in encoded
        assert base64url_decode(encoded) == data


def test_base64url_decode_invalid():
    from acmenet.util import base64url_decode
    with pytest.raises(ValueError):
        base64url_decode('F')


def test_sha256_hash():
    from acmenet.util import hex_encode
    from acmenet.util import sha256_hash
    assert hex_encode(sha256_hash('abc')) == \
        'ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad'
    texts = ['', 'a', 'b', 'abc', 'acme', 'ACME', 'ümlaut']
    digests = [sha256_hash(text) for text in texts]
    assert digests == [sha256_hash(text) for text in texts]
    assert len(set(digests)) == len(texts)


def test_to_ace():
    from acmenet.util import to_ace
    assert to_ace(None) is None
    assert to_ace('  ExAmPlE.COM ') == 'example.com'
    assert to_ace('bücher.example') == 'xn--bcher-kva.example'
    assert to_ace('xn--bcher-kva.example') == 'xn--bcher-kva.example'


def test_parse_timestamp():
    from acmenet.util import parse_timestamp
    parsed = parse_timestamp('2015-12-27T22:58:35+01:00')
    assert parsed.utcoffset() == datetime.timedelta(hours=1)
    assert parsed == datetime.datetime(
        2015, 12, 27, 22, 58, 35, tzinfo=datetime.timezone(datetime.timedelta(hours=1)))
    assert parse_timestamp('2016-01-01T00:00:00Z') == datetime.datetime(
        2016, 1, 1, tzinfo=datetime.timezone.utc)


def test_parse_timestamp_invalid():
    from acmenet.util import parse_timestamp
    with pytest.raises(ValueError):
        parse_timestamp('yesterday')


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
