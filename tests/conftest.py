"""Shared fixtures: an in-process runtime with fake side effects."""

from typing import Any, Dict, List, Optional

import httpx
import pytest

from autoflow.config import AutoflowConfig
from autoflow.contracts import Job
from autoflow.mailer import EmailResult
from autoflow.models import Workflow, WorkflowStatus, parse_step
from autoflow.persistence import InMemoryWorkflowRepository
from autoflow.providers import ProviderRegistry, StructuredResult
from autoflow.runtime import Runtime
from autoflow.transports import InMemoryTransport
from autoflow.webhooks import WebhookCaller


class FakeProvider:
    """AI provider returning canned structured data."""

    def __init__(self, name: str = "fake") -> None:
        self.name = name
        self.calls: List[Dict[str, Any]] = []
        self.responses: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    async def complete(self, prompt, system_prompt=None, options=None):
        raise NotImplementedError

    async def complete_with_schema(self, prompt, schema, system_prompt=None, options=None):
        self.calls.append({"prompt": prompt, "schema": schema, "options": options})
        if self.error is not None:
            raise self.error
        data = self.responses.pop(0) if self.responses else {"result": "ok"}
        return StructuredResult(
            data=data,
            model="fake-model",
            tokens_used=3,
            prompt_tokens=2,
            completion_tokens=1,
            latency_ms=5,
        )


class FakeMailer:
    """Records messages instead of talking to SMTP."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.success = True

    async def send(self, to, subject, body, html=None):
        self.sent.append({"to": to, "subject": subject, "body": body})
        if self.success:
            return EmailResult(success=True, message_id=f"msg-{len(self.sent)}")
        return EmailResult(success=False, error="mailbox unavailable")


class WebhookRecorder:
    """httpx mock transport handler that remembers requests."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.body: Any = {"ok": True}
        self.error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.body)


def make_workflow(*steps: Dict[str, Any], owner_id: str = "owner-1") -> Workflow:
    return Workflow(
        owner_id=owner_id,
        name="Test workflow",
        steps=[parse_step(step) for step in steps],
        status=WorkflowStatus.ACTIVE,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def webhook_recorder() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
def runtime(fake_provider, fake_mailer, webhook_recorder, tmp_path) -> Runtime:
    providers = ProviderRegistry()
    providers.register(fake_provider)
    return Runtime(
        config=AutoflowConfig(upload_dir=str(tmp_path)),
        repository=InMemoryWorkflowRepository(),
        transport=InMemoryTransport(),
        providers=providers,
        mailer=fake_mailer,
        webhooks=WebhookCaller(transport=httpx.MockTransport(webhook_recorder)),
    )


@pytest.fixture
def workflow_factory():
    return make_workflow


@pytest.fixture
def drain():
    """Process ready jobs on every queue until none are left."""

    async def _drain(runtime: Runtime, max_jobs: int = 50) -> List[Job]:
        transport = runtime.transport
        workers = runtime.workers()
        processed: List[Job] = []
        progressed = True
        while progressed and len(processed) < max_jobs:
            progressed = False
            for worker in workers:
                while transport._queues[worker.queue]:
                    _, job = transport._queues[worker.queue].popleft()
                    await worker.process(job)
                    processed.append(job)
                    progressed = True
        return processed

    return _drain
