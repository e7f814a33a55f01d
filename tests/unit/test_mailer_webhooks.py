import smtplib

import httpx
import pytest

from autoflow.config import EmailConfig
from autoflow.mailer import SmtpEmailSender
from autoflow.webhooks import WebhookCaller


class FakeSMTP:
    instances = []
    fail_login = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.messages = []
        self.tls = False
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        if FakeSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")
        self.user = user

    def send_message(self, message):
        self.messages.append(message)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_login = False
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


CONFIGURED = EmailConfig(
    host="smtp.example.com", port=587, user="bot@example.com", password="pw"
)


@pytest.mark.asyncio
async def test_send_without_credentials_is_mocked(fake_smtp):
    result = await SmtpEmailSender(EmailConfig()).send("a@example.com", "Hi", "Body")

    assert result.success
    assert result.message_id.startswith("mock-")
    assert fake_smtp.instances == []


@pytest.mark.asyncio
async def test_send_over_starttls(fake_smtp):
    result = await SmtpEmailSender(CONFIGURED).send("a@example.com", "Hi", "Body")

    assert result.success
    (smtp,) = fake_smtp.instances
    assert (smtp.host, smtp.port) == ("smtp.example.com", 587)
    assert smtp.tls
    assert smtp.user == "bot@example.com"
    (message,) = smtp.messages
    assert message["To"] == "a@example.com"
    assert message["From"] == "bot@example.com"
    assert message["Subject"] == "Hi"
    assert result.message_id == message["Message-ID"]
    assert message.get_content_type() == "text/plain"
    assert message.get_content() == "Body\n"


@pytest.mark.asyncio
async def test_send_with_html_adds_alternative(fake_smtp):
    result = await SmtpEmailSender(CONFIGURED).send(
        "a@example.com", "Hi", "Body", html="<p>Body</p>"
    )

    assert result.success
    (message,) = fake_smtp.instances[0].messages
    assert message.get_content_type() == "multipart/alternative"
    parts = [part.get_content_type() for part in message.iter_parts()]
    assert parts == ["text/plain", "text/html"]


@pytest.mark.asyncio
async def test_send_failure_is_reported(fake_smtp):
    fake_smtp.fail_login = True
    result = await SmtpEmailSender(CONFIGURED).send("a@example.com", "Hi", "Body")

    assert not result.success
    assert "bad credentials" in result.error


@pytest.mark.asyncio
async def test_verify(fake_smtp):
    assert not await SmtpEmailSender(EmailConfig()).verify()
    assert await SmtpEmailSender(CONFIGURED).verify()
    fake_smtp.fail_login = True
    assert not await SmtpEmailSender(CONFIGURED).verify()


@pytest.mark.asyncio
async def test_webhook_get_sends_no_body_and_tolerates_text():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(503, text="unavailable")

    caller = WebhookCaller(transport=httpx.MockTransport(handler))
    response = await caller.call("https://example.com/ping", method="get", body='{"a": 1}')

    assert response.status == 503
    assert response.body == {}
    assert seen[0].method == "GET"
    assert seen[0].content == b""
