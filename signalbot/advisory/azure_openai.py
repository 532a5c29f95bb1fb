"""Azure OpenAI chat-completions backend for the advisory client."""

import time
from typing import Any

import httpx
import structlog

from ..core.errors import AdvisoryUnreachable
from ..core.interfaces import CompletionService

logger = structlog.get_logger(__name__)


class AzureOpenAICompletionService(CompletionService):
    """Calls an Azure OpenAI deployment over its REST API."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        deployment: str,
        api_version: str = "2024-02-15-preview",
        session: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        max_completion_tokens: int = 800,
    ) -> None:
        """Initialize the completion service.

        Args:
            endpoint: Azure resource endpoint, e.g. https://x.openai.azure.com
            api_key: Azure OpenAI key
            deployment: Model deployment name
            api_version: REST API version
            session: Optional httpx client
            timeout: Request timeout in seconds
            max_completion_tokens: Response token cap
        """
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.deployment = deployment
        self.api_version = api_version
        self.max_completion_tokens = max_completion_tokens
        self.session = session or httpx.AsyncClient(timeout=timeout)
        self._owns_session = session is None

    @property
    def url(self) -> str:
        return f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"

    async def complete(self, system: str, user: str) -> str:
        """Send one chat completion and return the assistant text.

        Raises:
            AdvisoryUnreachable: On transport errors or non-2xx responses
        """
        body: dict[str, Any] = {
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "response_format": {"type": "json_object"},
            "max_completion_tokens": self.max_completion_tokens,
        }

        start_time = time.time()
        try:
            response = await self.session.post(
                self.url,
                params={"api-version": self.api_version},
                headers={"api-key": self.api_key},
                json=body,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AdvisoryUnreachable(
                f"Advisory service returned HTTP {e.response.status_code}",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise AdvisoryUnreachable(
                f"Advisory request failed: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        logger.debug(
            "Advisory completion received",
            deployment=self.deployment,
            duration=time.time() - start_time,
        )

        try:
            data = response.json()
        except ValueError:
            # Treated downstream as a malformed judgment
            return ""

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    async def close(self) -> None:
        if self._owns_session:
            await self.session.aclose()
