"""Tests for acmenet.transport."""
import sys
import unittest
from unittest import mock

import pytest
import requests

from acmenet import errors
from acmenet._internal.tests import test_util
from acmenet.transport import HttpTransport


class HttpTransportTest(unittest.TestCase):
    """Tests for acmenet.transport.HttpTransport."""

    def setUp(self):
        self.verify_ssl = mock.MagicMock()
        self.transport = HttpTransport(verify_ssl=self.verify_ssl,
                                       user_agent='acmenet-python-test')
        self.response = test_util.make_response(200, {'Replay-Nonce': 'Tm9uY2VOb25jZQ'})
        self.transport.session = mock.MagicMock()
        self.transport.session.request.return_value = self.response

    def test_init(self):
        assert self.transport.verify_ssl is self.verify_ssl

    def test_send(self):
        assert self.response == self.transport.send(
            'HEAD', 'http://example.com/', bar='baz')
        self.transport.session.request.assert_called_once_with(
            'HEAD', 'http://example.com/',
            headers=mock.ANY, verify=mock.ANY, timeout=mock.ANY, bar='baz')

    def test_post(self):
        assert self.response == self.transport.post(
            'http://example.com/', data='qux', headers={'Content-Type': 'foo'})
        self.transport.session.request.assert_called_once_with(
            'POST', 'http://example.com/', data='qux',
            headers={'Content-Type': 'foo', 'User-Agent': 'acmenet-python-test'},
            verify=mock.ANY, timeout=mock.ANY)

    def test_head_get(self):
        self.transport.head('http://example.com/nonce')
        self.transport.session.request.assert_called_with(
            'HEAD', 'http://example.com/nonce',
            headers=mock.ANY, verify=mock.ANY, timeout=mock.ANY)
        self.transport.get('http://example.com/dir')
        self.transport.session.request.assert_called_with(
            'GET', 'http://example.com/dir',
            headers=mock.ANY, verify=mock.ANY, timeout=mock.ANY)

    def test_verify_ssl(self):
        for verify in True, False:
            self.transport.session = mock.MagicMock()
            self.transport.session.request.return_value = self.response
            self.transport.verify_ssl = verify
            assert self.response == self.transport.get('http://example.com/')
            self.transport.session.request.assert_called_once_with(
                'GET', 'http://example.com/', verify=verify,
                timeout=mock.ANY, headers=mock.ANY)

    def test_user_agent(self):
        self.transport.get('http://example.com/', headers={'bar': 'baz'})
        self.transport.session.request.assert_called_once_with(
            'GET', 'http://example.com/', verify=mock.ANY,
            timeout=mock.ANY,
            headers={'User-Agent': 'acmenet-python-test', 'bar': 'baz'})

        self.transport.get('http://example.com/', headers={'User-Agent': 'foo2'})
        self.transport.session.request.assert_called_with(
            'GET', 'http://example.com/',
            verify=mock.ANY, timeout=mock.ANY, headers={'User-Agent': 'foo2'})

    def test_timeout(self):
        self.transport.get('http://example.com/')
        self.transport.session.request.assert_called_once_with(
            mock.ANY, mock.ANY, verify=mock.ANY, headers=mock.ANY,
            timeout=45)

    @mock.patch('acmenet.transport.logger')
    def test_binary_content_logged_base64(self, mock_logger):
        self.transport.session.request.return_value = test_util.make_response(200, body=b'hi')
        self.transport.get('http://example.com/',
                           headers={'Accept': 'application/pkix-cert'})
        mock_logger.debug.assert_called_with(
            'Received response:\nHTTP %d\n%s\n\n%s', 200,
            '', b'aGk=')

    @mock.patch('acmenet.transport.logger')
    def test_nonce_not_logged(self, mock_logger):
        self.transport.get('http://example.com/')
        logged_headers = mock_logger.debug.call_args[0][2]
        assert 'Replay-Nonce: Tm9u...' == logged_headers

    def test_transport_error(self):
        failure = requests.exceptions.ConnectionError('Connection refused')
        self.transport.session.request.side_effect = failure
        with pytest.raises(errors.TransportError) as excinfo:
            self.transport.get('http://example.com/')
        assert excinfo.value.error is failure
        assert excinfo.value.__cause__ is failure
        assert excinfo.value.method == 'GET'

    def test_timeout_error(self):
        self.transport.session.request.side_effect = requests.exceptions.Timeout
        with pytest.raises(errors.TransportError):
            self.transport.post('http://example.com/', data='')

    def test_close(self):
        session = self.transport.session
        self.transport.close()
        session.close.assert_called_once_with()


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
