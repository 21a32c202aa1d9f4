"""ACME transport core.

This package signs requests for an `ACME`_ server, supplies them with
replay nonces, and classifies the server's responses.

.. _`ACME`: https://datatracker.ietf.org/doc/html/rfc8555

"""
