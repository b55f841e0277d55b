import requests


class MockResponse:
    def __init__(self, status_code=200, reason="OK", json_data=None, text=""):
        self.status_code = status_code
        self.reason = reason
        self.text = text
        self._json = json_data
        self.closed = False
    def json(self):
        if self._json is None:
            raise ValueError("no json body")
        return self._json
    def close(self):
        self.closed = True


class MockSession:
    """Replays queued responses; an Exception in the queue is raised instead."""
    def __init__(self, *responses):
        self.responses = list(responses)
        self.headers = {}
        self.calls = []
    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        result = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(result, Exception):
            raise result
        return result
    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)
    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)


def connection_refused():
    return requests.ConnectionError("connection refused")
