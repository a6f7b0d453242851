import pytest
import requests

from filechat.core.errors import WebhookError
from filechat.core.webhook import WebhookClient


class FakeResponse:
    def __init__(self, status_code=200, body="", json_body=None, content_type="text/plain"):
        self.status_code = status_code
        self.text = body
        self._json = json_body
        self.headers = {"Content-Type": content_type}

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def client(response=None, error=None, token="secret"):
    session = FakeSession(response, error)
    return WebhookClient(url="https://n8n.example.com/webhook/chat", token=token, timeout=30, session=session), session


def test_posts_session_and_question_with_bearer_token():
    webhook, session = client(FakeResponse(body="ok"))
    assert webhook.submit("1000_u1", "Hi") == {"text": "ok"}

    sent = session.requests[0]
    assert sent["json"] == {"session_id": "1000_u1", "question": "Hi"}
    assert sent["headers"]["Authorization"] == "Bearer secret"
    assert sent["timeout"] == 30


def test_token_already_prefixed_is_not_doubled():
    webhook, session = client(FakeResponse(body="ok"), token="Bearer abc")
    webhook.submit("1000_u1", "Hi")
    assert session.requests[0]["headers"]["Authorization"] == "Bearer abc"


def test_json_response_is_returned():
    webhook, _ = client(FakeResponse(json_body={"output": "started"}, content_type="application/json"))
    assert webhook.submit("1000_u1", "Hi") == {"output": "started"}


def test_unparseable_json_falls_back_to_text():
    webhook, _ = client(FakeResponse(body="<html>", content_type="application/json"))
    assert webhook.submit("1000_u1", "Hi") == {"text": "<html>"}


def test_http_error_raises_with_status():
    webhook, _ = client(FakeResponse(status_code=500, body="boom"))
    with pytest.raises(WebhookError) as exc:
        webhook.submit("1000_u1", "Hi")
    assert exc.value.status_code == 500


def test_transport_error_raises():
    webhook, _ = client(error=requests.ConnectionError("refused"))
    with pytest.raises(WebhookError):
        webhook.submit("1000_u1", "Hi")


def test_missing_url_raises():
    with pytest.raises(WebhookError):
        WebhookClient(url="", session=FakeSession()).submit("1000_u1", "Hi")
