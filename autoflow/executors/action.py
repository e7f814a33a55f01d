"""Action step executor: email, webhook and save_data."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from ..contracts import ActionJob, Job
from ..mailer import SmtpEmailSender
from ..models import EmailConfig as EmailStepConfig
from ..models import SaveDataConfig, StepType, WebhookConfig, utc_now
from ..orchestrator import RunOrchestrator
from ..templates import render_template
from ..webhooks import WebhookCaller

logger = logging.getLogger(__name__)


class ActionExecutor:
    """Performs the side effect of an action step and reports the result."""

    def __init__(
        self,
        orchestrator: RunOrchestrator,
        mailer: SmtpEmailSender,
        webhooks: WebhookCaller,
    ) -> None:
        self._orchestrator = orchestrator
        self._mailer = mailer
        self._webhooks = webhooks
        self._handlers = {
            StepType.EMAIL: self.send_email,
            StepType.WEBHOOK: self.call_webhook,
            StepType.SAVE_DATA: self.save_data,
        }

    async def handle(self, job: Job) -> None:
        payload = job.payload(ActionJob)
        if await self._orchestrator.current_run(
            payload.run_id, payload.step_id, job.epoch
        ) is None:
            logger.warning(
                f"Step {payload.step_id} of run {payload.run_id} is no longer "
                f"current; action job {job.job_id} dropped"
            )
            return

        logger.info(
            f"Executing {payload.action_type.value} action for run {payload.run_id}"
        )
        try:
            handler = self._handlers.get(payload.action_type)
            if handler is None:
                raise ValueError(f"Unknown action type: {payload.action_type.value}")
            result = await handler(payload.config, payload.data)
        except Exception as e:
            logger.error(
                f"Action {payload.step_id} of run {payload.run_id} failed: {e}"
            )
            await self._orchestrator.fail_step(
                payload.run_id, payload.step_id, str(e), epoch=job.epoch
            )
            raise

        await self._orchestrator.complete_step(
            payload.run_id, payload.step_id, {payload.step_id: result}, epoch=job.epoch
        )

    async def send_email(
        self, config: Dict[str, Any], data: Dict[str, Any]
    ) -> Dict[str, Any]:
        email = EmailStepConfig.model_validate(config)
        context = {**data, "timestamp": utc_now().strftime("%Y-%m-%d %H:%M:%S UTC")}
        to = render_template(email.to, context)
        subject = render_template(email.subject, context)
        body = render_template(email.body or email.template or "", context)

        sent = await self._mailer.send(to, subject, body)
        logger.info(f"Email action to {to}: {'sent' if sent.success else 'failed'}")
        return {
            "action": StepType.EMAIL.value,
            "to": to,
            "subject": subject,
            "status": "sent" if sent.success else "failed",
            "messageId": sent.message_id,
            "error": sent.error,
            "timestamp": utc_now().isoformat(),
        }

    async def call_webhook(
        self, config: Dict[str, Any], data: Dict[str, Any]
    ) -> Dict[str, Any]:
        webhook = WebhookConfig.model_validate(config)
        url = render_template(webhook.url, data)
        if webhook.body_template:
            body = render_template(webhook.body_template, data)
        else:
            body = json.dumps(data)

        response = await self._webhooks.call(
            url, method=webhook.method, headers=webhook.headers, body=body
        )
        return {
            "action": StepType.WEBHOOK.value,
            "url": url,
            "method": webhook.method,
            "status": response.status,
            "response": response.body,
            "timestamp": utc_now().isoformat(),
        }

    async def save_data(
        self, config: Dict[str, Any], data: Dict[str, Any]
    ) -> Dict[str, Any]:
        save = SaveDataConfig.model_validate(config)
        if save.mapping:
            saved = {target: data.get(source) for target, source in save.mapping.items()}
        else:
            saved = dict(data)

        # TODO: write ``saved`` to a storage backend keyed by collection.
        logger.info(f"Save data action for collection {save.collection}")
        return {
            "action": StepType.SAVE_DATA.value,
            "collection": save.collection,
            "savedData": saved,
            "timestamp": utc_now().isoformat(),
        }
