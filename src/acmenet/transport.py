"""HTTP transport used to talk to the ACME server."""
import base64
import logging
from typing import Any
from typing import Union

import requests
from requests.adapters import HTTPAdapter

from acmenet import errors

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_TIMEOUT = 45


class HttpTransport:
    """Wrapper around requests that applies TLS verification, the user
    agent and the timeout to every request, and logs the exchange.

    :param bool verify_ssl: Whether to verify certificates on SSL connections.
    :param str user_agent: String to send as User-Agent header.
    :param int timeout: Timeout for requests.
    """

    def __init__(self, verify_ssl: bool = True, user_agent: str = 'acmenet-python',
                 timeout: int = DEFAULT_NETWORK_TIMEOUT) -> None:
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent
        self.session = requests.Session()
        self._default_timeout = timeout
        adapter = HTTPAdapter()

        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def close(self) -> None:
        """Release pooled connections."""
        self.session.close()

    def send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send HTTP request.

        For allowed parameters please see `requests.request`.

        :param str method: method for the new `requests.Request` object
        :param str url: URL for the new `requests.Request` object

        :raises .TransportError: in case of any problems reaching the server

        :returns: HTTP Response
        :rtype: `requests.Response`

        """
        if method == "POST":
            logger.debug('Sending POST request to %s:\n%s',
                         url, kwargs.get('data'))
        else:
            logger.debug('Sending %s request to %s.', method, url)
        kwargs['verify'] = self.verify_ssl
        kwargs.setdefault('headers', {})
        kwargs['headers'].setdefault('User-Agent', self.user_agent)
        kwargs.setdefault('timeout', self._default_timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as error:
            raise errors.TransportError(method, url, error) from error

        # If an Accept header was sent in the request, the response may not be
        # UTF-8 encoded. In this case, we don't set response.encoding and log
        # the base64 response instead of raw bytes to keep binary data out of the logs.
        debug_content: Union[bytes, str]
        if "Accept" in kwargs["headers"]:
            debug_content = base64.b64encode(response.content)
        else:
            response.encoding = "utf-8"
            debug_content = response.text
        logger.debug('Received response:\nHTTP %d\n%s\n\n%s',
                     response.status_code,
                     "\n".join("{0}: {1}".format(
                         k, errors.redact_nonce(v) if k.lower() == 'replay-nonce' else v)
                               for k, v in response.headers.items()),
                     debug_content)
        return response

    def head(self, url: str, **kwargs: Any) -> requests.Response:
        """Send HEAD request without checking the response."""
        return self.send('HEAD', url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        """Send GET request without checking the response."""
        return self.send('GET', url, **kwargs)

    def post(self, url: str, data: Union[str, bytes], **kwargs: Any) -> requests.Response:
        """Send POST request without checking the response."""
        return self.send('POST', url, data=data, **kwargs)
