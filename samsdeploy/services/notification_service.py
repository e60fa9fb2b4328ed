"""Webhook notification sink for run summaries."""

from typing import Any, Dict, Optional

import requests

from samsdeploy.events import EventBus, RollbackCompleted, RunCompleted
from samsdeploy.logger import DeployLogger
from samsdeploy.utils import get_operator, utc_now_iso

WEBHOOK_TIMEOUT = 10


class WebhookNotifier:
    """
    Posts a JSON summary to a webhook. Fire-and-forget: delivery failures
    are logged as warnings and never fail the run.
    """

    def __init__(
        self,
        url: str,
        logger: Optional[DeployLogger] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.logger = logger
        self.session = session or requests.Session()

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(RunCompleted, self.on_run_completed)
        bus.subscribe(RollbackCompleted, self.on_rollback_completed)

    def on_run_completed(self, event: RunCompleted) -> None:
        report = event.report
        status = "succeeded" if report.success else "failed"
        components = ", ".join(report.options.component_names)
        self.send(
            {
                "event": "deployment.completed",
                "text": f"SAMS deploy {status}: {components} → {report.options.environment.value}",
                "summary": report.to_dict(),
            }
        )

    def on_rollback_completed(self, event: RollbackCompleted) -> None:
        result = event.result
        self.send(
            {
                "event": "rollback.completed",
                "text": (
                    f"SAMS rollback {result.state.value}: "
                    f"{result.component} → {result.environment}"
                ),
                "summary": result.to_dict(),
            }
        )

    def send(self, payload: Dict[str, Any]) -> bool:
        payload = {**payload, "timestamp": utc_now_iso(), "triggeredBy": get_operator()}
        try:
            response = self.session.post(self.url, json=payload, timeout=WEBHOOK_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            if self.logger:
                self.logger.warning(f"Notification webhook failed: {e}")
            return False
        if self.logger:
            self.logger.log(f"Notification sent to webhook ({payload['event']})")
        return True
