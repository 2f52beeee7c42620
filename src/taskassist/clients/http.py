"""
HTTP remote agent client — JSON REST API via httpx.

Endpoints (relative to the configured endpoint):
  POST /conversations                                   → {"conversationId"}
  POST /conversations/{id}/upload-url                   → {"uploadUrl", "uploadId"}
  POST /conversations/{id}/code-generations             → {"codeGenerationId"}
  GET  /conversations/{id}/code-generations/{job}       → status document
  GET  /conversations/{id}/export                       → result archive

Error mapping:
  timeouts, connection errors, 429, 5xx         → TransientRemoteError
  402, or a body code naming a quota            → QuotaExceededError
  any other 4xx                                 → DomainRemoteError
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from taskassist.clients.base import (
    CodeGenerationStatus,
    CodeGenerationWorkflowStatus,
    RemoteAgentClient,
    UploadUrl,
)
from taskassist.core.constants import DEFAULT_REQUEST_TIMEOUT_SECONDS, RemoteOperation
from taskassist.core.exceptions import (
    DomainRemoteError,
    QuotaExceededError,
    TransientRemoteError,
)
from taskassist.session.models import (
    CodeGenerationStreamResult,
    ExportResultArchiveStreamResult,
    GetCodeGenerationResponse,
)

logger = structlog.get_logger()

_QUOTA_CODES = frozenset({"ServiceQuotaExceededException", "QuotaExceeded"})


class HttpRemoteAgentClient(RemoteAgentClient):
    """Remote agent reached over HTTPS."""

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def create_conversation(self) -> str:
        data = await self._request("POST", "/conversations", RemoteOperation.CREATE_CONVERSATION)
        return self._require(data, "conversationId", RemoteOperation.CREATE_CONVERSATION)

    async def create_upload_url(
        self,
        conversation_id: str,
        checksum: str,
        size: int,
        content_type: str,
    ) -> UploadUrl:
        data = await self._request(
            "POST",
            f"/conversations/{conversation_id}/upload-url",
            RemoteOperation.CREATE_UPLOAD_URL,
            json={
                "contentChecksum": checksum,
                "contentChecksumType": "SHA_256",
                "contentLength": size,
                "contentType": content_type,
            },
        )
        return UploadUrl(
            upload_url=self._require(data, "uploadUrl", RemoteOperation.CREATE_UPLOAD_URL),
            upload_id=self._require(data, "uploadId", RemoteOperation.CREATE_UPLOAD_URL),
        )

    async def start_code_generation(
        self,
        conversation_id: str,
        upload_id: str,
        task: str,
        msg: str,
        intent: str,
    ) -> str:
        data = await self._request(
            "POST",
            f"/conversations/{conversation_id}/code-generations",
            RemoteOperation.START_CODE_GENERATION,
            json={
                "uploadId": upload_id,
                "task": task,
                "message": msg,
                "intent": intent,
            },
        )
        return self._require(data, "codeGenerationId", RemoteOperation.START_CODE_GENERATION)

    async def get_code_generation_status(
        self,
        conversation_id: str,
        code_generation_id: str,
    ) -> CodeGenerationStatus:
        data = await self._request(
            "GET",
            f"/conversations/{conversation_id}/code-generations/{code_generation_id}",
            RemoteOperation.GET_CODE_GENERATION,
        )
        try:
            doc = GetCodeGenerationResponse.model_validate(data)
        except ValidationError as exc:
            raise DomainRemoteError(
                f"Malformed code generation status: {exc.error_count()} validation error(s)",
                operation=RemoteOperation.GET_CODE_GENERATION,
            ) from exc
        raw_status = doc.code_generation_status.status
        try:
            status = CodeGenerationWorkflowStatus(raw_status)
        except ValueError:
            raise DomainRemoteError(
                f"Unknown code generation status {raw_status!r}",
                operation=RemoteOperation.GET_CODE_GENERATION,
            ) from None
        return CodeGenerationStatus(
            status=status,
            remaining_iteration_count=doc.remaining_iteration_count,
            total_iteration_count=doc.total_iteration_count,
            failure_reason=doc.status_detail or "",
        )

    async def export_result_archive(self, conversation_id: str) -> CodeGenerationStreamResult:
        data = await self._request(
            "GET",
            f"/conversations/{conversation_id}/export",
            RemoteOperation.EXPORT_RESULT_ARCHIVE,
        )
        try:
            archive = ExportResultArchiveStreamResult.model_validate(data)
        except ValidationError as exc:
            raise DomainRemoteError(
                f"Malformed result archive: {exc.error_count()} validation error(s)",
                operation=RemoteOperation.EXPORT_RESULT_ARCHIVE,
            ) from exc
        return archive.code_generation_result

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json", "accept": "application/json"}
        if self._api_key:
            headers["authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        operation: RemoteOperation,
        *,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = self._ensure_client()
        try:
            resp = await client.request(
                method,
                f"{self._endpoint}{path}",
                json=json,
                headers=self._headers(),
            )
        except httpx.TimeoutException as exc:
            raise TransientRemoteError(
                f"{operation} timed out", operation=str(operation)
            ) from exc
        except httpx.TransportError as exc:
            raise TransientRemoteError(
                f"{operation} failed: {exc}", operation=str(operation)
            ) from exc

        if resp.is_success:
            try:
                data = resp.json()
            except ValueError as exc:
                raise DomainRemoteError(
                    f"{operation} returned a non-JSON body",
                    operation=str(operation),
                    status_code=resp.status_code,
                ) from exc
            return data if isinstance(data, dict) else {}

        raise self._error_for(resp, operation)

    @staticmethod
    def _error_for(resp: httpx.Response, operation: RemoteOperation) -> Exception:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or resp.reason_phrase or "request failed"
        code = body.get("code", "")
        text = f"{operation} failed ({resp.status_code}): {message}"

        logger.warning(
            "remote_request_failed",
            operation=str(operation),
            status_code=resp.status_code,
            code=code,
        )

        if resp.status_code == 402 or code in _QUOTA_CODES:
            return QuotaExceededError(text, operation=str(operation), status_code=resp.status_code)
        if resp.status_code == 429 or resp.status_code >= 500:
            return TransientRemoteError(
                text, operation=str(operation), status_code=resp.status_code
            )
        return DomainRemoteError(text, operation=str(operation), status_code=resp.status_code)

    @staticmethod
    def _require(data: dict[str, Any], key: str, operation: RemoteOperation) -> str:
        value = data.get(key)
        if not value:
            raise DomainRemoteError(
                f"{operation} response is missing {key!r}", operation=str(operation)
            )
        return str(value)
