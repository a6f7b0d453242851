# filechat/core/webhook.py
import logging
from typing import Optional

import requests

from filechat.core import config
from filechat.core.errors import WebhookError

logger = logging.getLogger(__name__)


class WebhookClient:
    """
    Posts chat questions to the n8n workflow.

    The response is logged but never trusted: the real answer shows up later
    as rows in n8n_chat_histories.
    """

    def __init__(
        self,
        url: str = config.N8N_WEBHOOK_URL,
        token: str = config.N8N_AUTH_TOKEN,
        timeout: float = config.WEBHOOK_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            token = self.token
            if not token.lower().startswith("bearer "):
                token = f"Bearer {token}"
            headers["Authorization"] = token
        return headers

    def submit(self, session_id: str, question: str) -> dict:
        if not self.url:
            raise WebhookError("Webhook URL is not configured (N8N_WEBHOOK_URL).")

        payload = {"session_id": session_id, "question": question}
        logger.info("Sending message to n8n webhook: session_id=%s", session_id)
        try:
            r = self.session.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Webhook request failed: %s", e)
            raise WebhookError(f"Unable to reach the chat service: {e}") from e

        logger.info("Webhook response status: %s", r.status_code)
        if not r.ok:
            logger.error("HTTP error! status: %s", r.status_code)
            raise WebhookError(f"HTTP error! status: {r.status_code}", status_code=r.status_code)

        content_type = r.headers.get("Content-Type", "")
        if "application/json" in content_type:
            try:
                data = r.json()
                logger.info("Webhook response (JSON): %s", data)
                return data if isinstance(data, dict) else {"data": data}
            except ValueError as e:
                # The workflow still processed the request
                logger.error("Error parsing webhook response: %s", e)
        data = {"text": r.text}
        logger.info("Webhook response (Text): %s", r.text)
        return data
