"""Cloud Tasks helper service for dispatching conversion jobs to the worker."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from google.cloud import tasks_v2

from ..exceptions import DispatchError

logger = logging.getLogger(__name__)


@dataclass
class TasksConfig:
    project: str
    region: str
    queue: str
    target_url: str
    service_account_email: str
    bucket: str
    callback_base_url: str = ""
    emulate: bool = True


class CloudTasksService:
    """Creates HTTP tasks that call the conversion worker.

    Invocation is fire-and-forget: the task is accepted by the queue and the
    worker later reports back through the status callback endpoint.
    """

    def __init__(self, cfg: TasksConfig) -> None:
        self.cfg = cfg
        self._client: Optional[tasks_v2.CloudTasksClient] = None

    @property
    def client(self) -> tasks_v2.CloudTasksClient:
        if self._client is None:
            self._client = tasks_v2.CloudTasksClient()
        return self._client

    def build_payload(self, job_id: str, source_ref: str, output_key: str, attempt: int) -> dict:
        payload = {
            "jobId": job_id,
            "attempt": attempt,
            "bucket": self.cfg.bucket,
            "sourceRef": source_ref,
            "outputKey": output_key,
        }
        if self.cfg.callback_base_url:
            payload["callbackUrl"] = f"{self.cfg.callback_base_url}/jobs/{job_id}/status"
        return payload

    def invoke_async(self, job_id: str, source_ref: str, output_key: str, attempt: int) -> Optional[str]:
        """Create a task to call the worker endpoint with OIDC.

        Returns the task name on success, or None if emulated/no-op.
        Raises DispatchError when the client cannot be built or the queue rejects the task.
        """
        if self.cfg.emulate or not all([
            self.cfg.project, self.cfg.region, self.cfg.queue,
            self.cfg.target_url, self.cfg.service_account_email,
        ]):
            logger.info("Tasks emulation/no-op: skipping dispatch for job %s (attempt %s)", job_id, attempt)
            return None

        payload = self.build_payload(job_id, source_ref, output_key, attempt)
        task = {
            "http_request": {
                "http_method": tasks_v2.HttpMethod.POST,
                "url": self.cfg.target_url,
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps(payload).encode(),
                "oidc_token": {
                    "service_account_email": self.cfg.service_account_email,
                    "audience": self.cfg.target_url,
                },
            }
        }
        try:
            parent = self.client.queue_path(self.cfg.project, self.cfg.region, self.cfg.queue)
            response = self.client.create_task(request={"parent": parent, "task": task})
        except Exception as exc:
            raise DispatchError(f"Task queue error while dispatching job: {exc}") from exc
        logger.info("Created task %s for job %s (attempt %s)", response.name, job_id, attempt)
        return response.name
