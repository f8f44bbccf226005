import base64
import email
import email.policy

import pytest
from fastapi.testclient import TestClient

from smtp_relay.api import API_TOKEN_HEADER_NAME, create_app
from smtp_relay.errors import RecipientRefusedError
from smtp_relay.prometheus import RelayMetrics
from smtp_relay.relay import MailRelay
from smtp_relay.senders import load_sender_registry

API_TOKEN = "secret-token"
ENV = {
    "SENDER_NAMES": "compras,financeiro",
    "SERVICE_ACCOUNT_EMAIL": "relay@example.com",
    "SERVICE_ACCOUNT_PASS": "secret",
    "SENDER_PROVIDER": "office365",
    "SENDER_COMPRAS_EMAIL": "compras@example.com",
    "SENDER_FINANCEIRO_EMAIL": "financeiro@example.com",
    "SENDER_FINANCEIRO_PROVIDER": "aol",
}


class RecordingTransport:
    def __init__(self):
        self.sent = []
        self.error = None

    async def send(self, provider, sender, recipient, message):
        if self.error is not None:
            raise self.error
        self.sent.append({"provider": provider, "sender": sender, "to": recipient, "message": message})


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def metrics():
    return RelayMetrics()


@pytest.fixture
def client(transport, metrics):
    relay = MailRelay(load_sender_registry(dict(ENV, DEFAULT_SENDER="compras")), transport=transport)
    return TestClient(create_app(relay, metrics=metrics))


def _sample(metrics, sender, code):
    return metrics.registry.get_sample_value(
        "email_service_emails_processed_total", {"sender": sender, "code": str(code)}
    )


def test_send_as_named_sender_end_to_end(client, transport, metrics):
    response = client.post(
        "/send-email-compras",
        json={"to": "a@b.com", "subject": "Hi", "body": "Hello\\nWorld"},
    )

    assert response.status_code == 200
    assert "compras" in response.json()["message"]
    (sent,) = transport.sent
    assert sent["to"] == "a@b.com"
    assert sent["sender"].from_address == "compras@example.com"
    assert sent["provider"].host == "smtp.office365.com"
    parsed = email.message_from_bytes(sent["message"].as_bytes(), policy=email.policy.default)
    text = parsed.get_body(preferencelist=("plain",)).get_content()
    assert "Hello\nWorld" in text.replace("\r\n", "\n")
    assert _sample(metrics, "compras", 200) == 1.0


def test_default_routes_use_default_sender(client, transport):
    assert client.post("/send-email", json={"to": "a@b.com", "subject": "s", "body": "b"}).status_code == 200
    html = client.post("/send-email-html", json={"to": "a@b.com", "subject": "s", "body": "<b>b</b>"})

    assert html.status_code == 200
    assert [s["sender"].name for s in transport.sent] == ["compras", "compras"]
    assert transport.sent[1]["message"].get_content_type() == "text/html"


def test_named_html_route(client, transport):
    response = client.post("/send-email-html-compras", json={"to": "a@b.com", "subject": "s", "body": "<i>x</i>"})

    assert response.status_code == 200
    assert transport.sent[0]["message"].get_content_type() == "text/html"


def test_attachment_is_forwarded(client, transport):
    payload = {
        "to": "a@b.com",
        "subject": "Invoice",
        "body": "attached",
        "filename": "invoice.pdf",
        "attachment": base64.b64encode(b"%PDF-1.7 data").decode(),
    }
    assert client.post("/send-email-compras", json=payload).status_code == 200

    (att,) = list(transport.sent[0]["message"].iter_attachments())
    assert att.get_content_type() == "application/pdf"
    assert att.get_payload(decode=True) == b"%PDF-1.7 data"


@pytest.mark.parametrize("missing", ["to", "subject", "body"])
def test_missing_field_is_400_and_never_sent(client, transport, metrics, missing):
    payload = {"to": "a@b.com", "subject": "s", "body": "b"}
    del payload[missing]

    response = client.post("/send-email-compras", json=payload)

    assert response.status_code == 400
    assert missing in response.json()["error"]
    assert transport.sent == []
    assert _sample(metrics, "compras", 400) == 1.0


def test_empty_field_is_400(client, transport):
    response = client.post("/send-email-compras", json={"to": "", "subject": "s", "body": "b"})
    assert response.status_code == 400
    assert transport.sent == []


def test_malformed_json_is_400(client, transport):
    response = client.post(
        "/send-email-compras",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert "error" in response.json()
    assert transport.sent == []


def test_unknown_sender_is_500(client, transport, metrics):
    response = client.post("/send-email-vendas", json={"to": "a@b.com", "subject": "s", "body": "b"})

    assert response.status_code == 500
    assert response.json() == {"error": "unknown provider for sender: vendas"}
    assert transport.sent == []
    assert _sample(metrics, "unknown", 500) == 1.0
    assert _sample(metrics, "vendas", 500) is None


def test_unknown_provider_is_500_before_network(client, transport):
    response = client.post("/send-email-financeiro", json={"to": "a@b.com", "subject": "s", "body": "b"})

    assert response.status_code == 500
    assert response.json() == {"error": "unknown provider: aol"}
    assert transport.sent == []


def test_transport_error_text_is_returned(client, transport):
    transport.error = RecipientRefusedError("recipient setup failed: 550 no such user")

    response = client.post("/send-email-compras", json={"to": "a@b.com", "subject": "s", "body": "b"})

    assert response.status_code == 500
    assert response.json() == {"error": "recipient setup failed: 550 no such user"}


def test_bad_base64_is_500(client):
    payload = {"to": "a@b.com", "subject": "s", "body": "b", "filename": "x.pdf", "attachment": "***"}
    response = client.post("/send-email-compras", json=payload)

    assert response.status_code == 500
    assert response.json()["error"].startswith("failed to decode base64 attachment")


def test_line_wrapped_base64_attachment_is_accepted(client, transport):
    data = bytes(range(256)) * 2
    payload = {
        "to": "a@b.com",
        "subject": "s",
        "body": "b",
        "filename": "blob.bin",
        "attachment": base64.encodebytes(data).decode(),
    }

    response = client.post("/send-email-compras", json=payload)

    assert response.status_code == 200
    (att,) = list(transport.sent[0]["message"].iter_attachments())
    assert att.get_payload(decode=True) == data


@pytest.mark.parametrize("route", ["/send-email-compras", "/send-email-html-compras"])
@pytest.mark.parametrize(
    "fields",
    [
        {"subject": "Hi\nBcc: victim@example.com"},
        {"to": "a@b.com\r\nBcc: victim@example.com"},
    ],
)
def test_line_break_in_header_field_is_json_500(client, transport, metrics, route, fields):
    payload = dict({"to": "a@b.com", "subject": "s", "body": "b"}, **fields)

    response = client.post(route, json=payload)

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["error"].startswith("invalid header value")
    assert transport.sent == []
    assert _sample(metrics, "compras", 500) == 1.0


def test_unknown_sender_paths_share_one_metric_label(client, metrics):
    for i in range(5):
        response = client.post(f"/send-email-junk{i}", json={"to": "a@b.com", "subject": "s", "body": "b"})
        assert response.status_code == 500
    client.post("/send-email-junk-bad", json={"subject": "s"})

    assert _sample(metrics, "unknown", 500) == 5.0
    assert _sample(metrics, "unknown", 400) == 1.0
    exposed = client.get("/metrics").text
    assert "junk" not in exposed


def test_metric_label_normalises_known_sender_case(client, metrics):
    response = client.post("/send-email-COMPRAS", json={"to": "a@b.com", "subject": "s", "body": "b"})

    assert response.status_code == 200
    assert _sample(metrics, "compras", 200) == 1.0


def test_health_and_get_ip(client):
    assert client.get("/health").json() == {"status": "healthy"}

    info = client.get("/get-ip").json()
    assert info["hostname"]
    assert isinstance(info["ips"], list)
    assert info["client_ip"] == "testclient"


def test_metrics_endpoint(client):
    client.post("/send-email-compras", json={"to": "a@b.com", "subject": "s", "body": "b"})

    response = client.get("/metrics")
    assert response.status_code == 200
    assert b"email_service_emails_processed_total" in response.content


def test_single_sender_mode_routes(transport):
    registry = load_sender_registry({"GMAIL_USERNAME": "me@gmail.com", "GMAIL_APP_PASSWORD": "pw"})
    client = TestClient(create_app(MailRelay(registry, transport=transport)))

    response = client.post("/send-email", json={"to": "a@b.com", "subject": "s", "body": "b"})

    assert response.status_code == 200
    assert transport.sent[0]["message"]["To"] == "a@b.com"
    assert transport.sent[0]["provider"].host == "smtp.gmail.com"


def test_token_is_enforced_when_configured(transport):
    relay = MailRelay(load_sender_registry(ENV), transport=transport)
    client = TestClient(create_app(relay, api_token=API_TOKEN))
    payload = {"to": "a@b.com", "subject": "s", "body": "b"}

    assert client.get("/health").status_code == 200
    denied = client.post("/send-email-compras", json=payload)
    assert denied.status_code == 401
    assert denied.json()["detail"] == "Invalid or missing API token"
    assert transport.sent == []

    allowed = client.post("/send-email-compras", json=payload, headers={API_TOKEN_HEADER_NAME: API_TOKEN})
    assert allowed.status_code == 200
