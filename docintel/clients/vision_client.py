"""HTTP client for the vision inference service.

Talks to an Ollama-compatible server: ``/api/generate`` for image
prompts, ``/api/tags`` for listing installed models, ``/api/show`` for
model details and ``/api/pull`` for fetching a missing model.
"""

import base64
from typing import Any

import httpx

from docintel.errors import MalformedResponse, TransportFailure
from docintel.utils.config import VisionConfig
from docintel.utils.logger import get_logger

logger = get_logger(__name__)


class VisionClient:
    """Synchronous client for a vision-capable generation endpoint.

    One attempt per call, bounded by the configured timeout. Transport and
    HTTP status errors surface as :class:`TransportFailure`, undecodable
    replies as :class:`MalformedResponse`.

    Args:
        config: Vision service configuration.
        transport: Optional httpx transport, used to inject a mock in tests.
    """

    def __init__(
        self,
        config: VisionConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.model = config.model
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    def __enter__(self) -> "VisionClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection pool, aborting in-flight calls."""
        self._client.close()

    def generate(
        self,
        prompt: str,
        images: list[bytes],
        num_predict: int | None = None,
    ) -> str:
        """Send a prompt with images and return the model's reply text.

        Args:
            prompt: Instruction for the model.
            images: Raw image bytes; encoded to base64 for the request.
            num_predict: Optional cap on generated tokens.

        Returns:
            The ``response`` field of the reply, untrimmed.

        Raises:
            TransportFailure: If the service is unreachable or errors out.
            MalformedResponse: If the reply has no ``response`` text.
        """
        options: dict[str, Any] = {
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "top_k": self.config.top_k,
        }
        if num_predict is not None:
            options["num_predict"] = num_predict

        payload = {
            "model": self.model,
            "prompt": prompt,
            "images": [base64.b64encode(img).decode("ascii") for img in images],
            "stream": False,
            "options": options,
        }
        data = self._post_json("/api/generate", payload)
        text = data.get("response")
        if not isinstance(text, str) or not text:
            raise MalformedResponse("No response from vision model")
        return text

    def list_models(self) -> list[str]:
        """Return the names of the models installed on the server.

        Raises:
            TransportFailure: If the service is unreachable or errors out.
            MalformedResponse: If the reply is not JSON.
        """
        try:
            resp = self._client.get("/api/tags")
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportFailure(f"Vision service error: {exc}") from exc
        data = self._decode(resp)
        models = data.get("models") or []
        return [m["name"] for m in models if isinstance(m, dict) and m.get("name")]

    def show_model(self, name: str | None = None) -> dict[str, Any]:
        """Return the server's details for a model.

        Args:
            name: Model to describe; defaults to the configured model.

        Returns:
            The decoded ``/api/show`` reply (details, parameters, template).

        Raises:
            TransportFailure: If the service is unreachable or errors out.
            MalformedResponse: If the reply is not a JSON object.
        """
        return self._post_json("/api/show", {"model": name or self.model})

    def pull_model(self) -> bool:
        """Ask the server to pull the configured model.

        Returns:
            True if the server accepted the pull request.
        """
        try:
            resp = self._client.post(
                "/api/pull", json={"name": self.model, "stream": False}
            )
        except httpx.HTTPError as exc:
            logger.error("Model pull for %s failed: %s", self.model, exc)
            return False
        if resp.is_error:
            logger.error("Model pull for %s rejected: %d", self.model, resp.status_code)
            return False
        logger.info("Pulled vision model %s", self.model)
        return True

    def check_health(self) -> bool:
        """Return True if the server answers and has the configured model."""
        try:
            names = self.list_models()
        except (TransportFailure, MalformedResponse) as exc:
            logger.warning("Vision service health check failed: %s", exc)
            return False
        return any(self.model in name for name in names)

    def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = self._client.post(path, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportFailure(f"Vision service error: {exc}") from exc
        return self._decode(resp)

    def _decode(self, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponse(f"Vision reply is not JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise MalformedResponse("Vision reply is not a JSON object")
        return data
