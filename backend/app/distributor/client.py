"""Descriptor upload client — posts compiled descriptor sets to the validation service."""

import base64
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = structlog.get_logger()


class UploadRejected(Exception):
    """Server refused the descriptor set (4xx); retrying the same bytes will not help."""

    def __init__(self, status_code: int, message: str, problems: Optional[list[str]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.problems = problems or []


class ServerUnavailable(Exception):
    """Server answered with a 5xx; treated as transient."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Descriptor server returned {status_code}: {body}")
        self.status_code = status_code


class UploadReceipt(BaseModel):
    file_name: str
    generation: int
    fingerprint: str
    changed: bool = True
    message_types: list[str] = Field(default_factory=list)
    attempts: int = Field(default=1, description="Attempts used, including the successful one")


class DescriptorUploader:
    """Uploads serialized FileDescriptorSets to `POST /load_descriptor`."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        wait=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self._transport = transport
        self._wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=10)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/load_descriptor"

    async def upload(self, payload: bytes, file_name: str) -> UploadReceipt:
        """Upload one descriptor set, retrying transport errors and 5xx responses.

        Raises:
            UploadRejected: the server answered 4xx
            ServerUnavailable / httpx.TransportError: retries exhausted
        """
        body = {
            "file_name": file_name,
            "file_content": base64.b64encode(payload).decode("ascii"),
        }

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type((httpx.TransportError, ServerUnavailable)),
            before_sleep=lambda retry_state: logger.warning(
                "descriptor_upload_retry",
                attempt=retry_state.attempt_number,
                wait=retry_state.next_action.sleep,
                error=str(retry_state.outcome.exception()),
            ),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                receipt = await self._post(body)
                receipt.attempts = attempt.retry_state.attempt_number

        logger.info(
            "descriptor_uploaded",
            file_name=file_name,
            bytes=len(payload),
            generation=receipt.generation,
            changed=receipt.changed,
            attempts=receipt.attempts,
        )
        return receipt

    async def _post(self, body: dict) -> UploadReceipt:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(self.endpoint, json=body)

        if response.status_code >= 500:
            raise ServerUnavailable(response.status_code, response.text)
        if response.status_code >= 400:
            detail = _error_body(response)
            raise UploadRejected(
                response.status_code,
                detail.get("message") or f"Descriptor server returned {response.status_code}",
                problems=detail.get("problems"),
            )

        data = response.json()
        return UploadReceipt(
            file_name=data.get("file_name", body["file_name"]),
            generation=data["generation"],
            fingerprint=data["fingerprint"],
            changed=data.get("changed", True),
            message_types=data.get("message_types", []),
        )


def _error_body(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text}
    return data if isinstance(data, dict) else {"message": str(data)}
