import json

import pytest
import requests
from requests.cookies import RequestsCookieJar, cookiejar_from_dict


class FakeResponse:
    def __init__(self, payload=None, *, text=None, status_code=200, reason='OK', cookies=None) -> None:
        self.payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.status_code = status_code
        self.reason = reason
        self.cookies = cookiejar_from_dict(cookies or {})

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Stands in for `requests.Session`, replaying canned responses in order."""

    def __init__(self, *responses) -> None:
        self.headers = {}
        self.cookies = RequestsCookieJar()
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        # anything the real jar would have picked up from this response
        self.cookies.set('leftover', 'x')
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def connection_error():
    return requests.ConnectionError('Name or service not known')
