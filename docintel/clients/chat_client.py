"""HTTP client for the chat-completion service used by classification
and field extraction."""

from typing import Any

import httpx

from docintel.errors import MalformedResponse, TransportFailure
from docintel.utils.config import LLMConfig
from docintel.utils.logger import get_logger

logger = get_logger(__name__)


class ChatClient:
    """Synchronous OpenAI-compatible chat-completion client.

    Args:
        config: Chat service configuration.
        transport: Optional httpx transport, used to inject a mock in tests.
    """

    def __init__(
        self,
        config: LLMConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.model = config.model
        headers = {"Content-Type": "application/json"}
        api_key = config.api_key
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers=headers,
            transport=transport,
        )

    def __enter__(self) -> "ChatClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection pool, aborting in-flight calls."""
        self._client.close()

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Run one chat completion and return the assistant message content.

        Args:
            system_prompt: System role instruction.
            user_prompt: User role content.
            temperature: Sampling temperature.
            max_tokens: Completion token cap.

        Returns:
            Content of the first choice, stripped.

        Raises:
            TransportFailure: If the service is unreachable or errors out.
            MalformedResponse: If the reply lacks ``choices[0].message.content``.
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        try:
            resp = self._client.post("/chat/completions", json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportFailure(f"Chat service error: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponse(f"Chat reply is not JSON: {exc}") from exc
        return self.extract_message_content(data)

    @staticmethod
    def extract_message_content(data: Any) -> str:
        """Pull ``choices[0].message.content`` out of a completion reply.

        Raises:
            MalformedResponse: If the path is missing or the content is empty.
        """
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise MalformedResponse("Chat reply has no message content") from exc
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponse("Chat reply content is empty")
        return content.strip()

    def check_health(self) -> bool:
        """Return True if the models endpoint answers successfully."""
        try:
            resp = self._client.get("/models")
        except httpx.HTTPError as exc:
            logger.warning("Chat service health check failed: %s", exc)
            return False
        return resp.is_success
