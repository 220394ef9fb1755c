import pytest
import requests

from hoa_portal.errors import PermanentFailure, TransientFailure
from hoa_portal.notifications.transport import EmailMessage, ResendTransport


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def make_message(to=None):
    return EmailMessage(
        to=to or ["resident@example.com"],
        subject="SPR-HOA: Your photo \"Sunset\" was approved",
        html="<p>Approved</p>",
        idempotency_key="key-1",
    )


def make_transport(response, api_key="re_test"):
    session = FakeSession(response)
    transport = ResendTransport(
        api_key=api_key,
        sender="SPR-HOA <noreply@example.com>",
        api_url="https://api.resend.example/",
        timeout=3.0,
        session=session,
    )
    return transport, session


def test_send_returns_provider_id():
    transport, session = make_transport(FakeResponse(200, {"id": "re-123"}))

    assert transport.send(make_message()) == "re-123"

    request = session.requests[0]
    assert request["url"] == "https://api.resend.example/emails"
    assert request["headers"]["Authorization"] == "Bearer re_test"
    assert request["headers"]["Idempotency-Key"] == "key-1"
    assert request["json"]["from"] == "SPR-HOA <noreply@example.com>"
    assert request["json"]["to"] == ["resident@example.com"]
    assert request["timeout"] == 3.0


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_rate_limit_and_server_errors_are_transient(status_code):
    transport, _ = make_transport(FakeResponse(status_code, text="busy"))

    with pytest.raises(TransientFailure) as exc_info:
        transport.send(make_message())
    assert exc_info.value.status_code == status_code
    assert exc_info.value.retryable


@pytest.mark.parametrize("status_code", [400, 401, 422])
def test_client_errors_are_permanent(status_code):
    transport, _ = make_transport(FakeResponse(status_code, text="invalid `to` field"))

    with pytest.raises(PermanentFailure) as exc_info:
        transport.send(make_message())
    assert exc_info.value.status_code == status_code
    assert not exc_info.value.retryable
    assert "invalid" in exc_info.value.detail


@pytest.mark.parametrize(
    "error", [requests.Timeout("slow"), requests.ConnectionError("refused")]
)
def test_network_errors_are_transient(error):
    transport, _ = make_transport(error)

    with pytest.raises(TransientFailure):
        transport.send(make_message())


@pytest.mark.parametrize("to", [["not-an-address"], [""]])
def test_malformed_recipient_is_permanent(to):
    transport, session = make_transport(FakeResponse(200, {"id": "re-1"}))

    with pytest.raises(PermanentFailure):
        transport.send(make_message(to=to))
    assert session.requests == []


def test_missing_api_key_is_permanent():
    transport, session = make_transport(FakeResponse(200, {"id": "re-1"}), api_key=None)

    with pytest.raises(PermanentFailure):
        transport.send(make_message())
    assert session.requests == []


def test_success_with_unexpected_body_still_counts_as_sent():
    transport, _ = make_transport(FakeResponse(200, ["queued"]))

    assert transport.send(make_message()) == ""
