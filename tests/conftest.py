import io
import threading

import pytest
import requests

from messente_client import MessenteClient


class CountingBytesIO(io.BytesIO):
    """BytesIO that remembers how many bytes were read before it was closed"""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.bytes_read = 0

    def read(self, size=-1):
        chunk = super().read(size)
        self.bytes_read += len(chunk)
        return chunk


def make_response(body, content_type="text/html", status_code=200):
    if isinstance(body, str):
        body = body.encode("utf-8")
    response = requests.Response()
    response.status_code = status_code
    if content_type is not None:
        response.headers["Content-Type"] = content_type
    response.raw = CountingBytesIO(body)
    response.encoding = requests.utils.get_encoding_from_headers(response.headers)
    return response


class FakeSession:
    """Stands in for requests.Session; `handler(url, data)` returns a response or raises"""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def post(self, url, data=None, timeout=None, stream=False):
        data = dict(data or {})
        with self._lock:
            self.calls.append({"url": url, "data": data, "timeout": timeout, "stream": stream})
        return self.handler(url, data)

    def close(self):
        self.closed = True

    def urls(self):
        return [call["url"] for call in self.calls]


@pytest.fixture
def make_client():
    def factory(handler, **kwargs):
        session = FakeSession(handler)
        kwargs.setdefault("username", "user")
        kwargs.setdefault("password", "secret")
        client = MessenteClient(session=session, **kwargs)
        return client, session
    return factory
