"""HTTP client for the storage proxy and the SAV webhook, with retry logic."""

import asyncio
import base64
import binascii
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import httpx

from ..models.upload import (
    EncodedPayload,
    RawFile,
    UploadDescriptor,
    UploadOutcome,
    UploadPayload,
)
from ..utils.config import Config
from ..utils.errors import (
    ClientFault,
    ConfigurationFault,
    LogicalFailure,
    MalformedResponseError,
    TransientFault,
    UploadPayloadError,
)
from ..utils.retry import with_retry

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/upload-onedrive"
SHARE_LINK_PATH = "/api/folder-share-link"
PROGRESS_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int], None]


def _percent(sent: int, total: int) -> int:
    # Half-up rounding, same as the browser progress events
    return int(sent * 100 / total + 0.5)


def _error_text(response: httpx.Response) -> str:
    """Best-effort extraction of the backend error message."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or response.reason_phrase
    return response.reason_phrase


def _check_status(response: httpx.Response, operation: str) -> None:
    """
    Turn an HTTP error status into a classified SavError.

    Raises:
        ClientFault: For 4xx statuses (never retried)
        TransientFault: For 5xx statuses (retried)
    """
    status = response.status_code
    if 400 <= status < 500:
        raise ClientFault.from_response(status, _error_text(response), operation)
    if status >= 500:
        raise TransientFault.from_exception(
            Exception(f"HTTP {status}: {_error_text(response)}"),
            operation,
            status_code=status
        )


def _json_body(response: httpx.Response, operation: str) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        raise MalformedResponseError.missing_field("success", operation)
    if not isinstance(body, dict):
        raise MalformedResponseError.missing_field("success", operation)
    return body


class SavApiClient:
    """
    Client for the SAV storage proxy and webhook.

    Provides methods for:
    - Uploading one file (raw photo or base64 report) with progress
    - Uploading a batch of files concurrently with per-file outcomes
    - Requesting a folder share link
    - Posting the final claim payload to the webhook

    Every network step runs through ``with_retry``.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        """
        Initialize the API client.

        Args:
            config: Loaded configuration (default: Config.load())
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Optional backoff sleep coroutine, forwarded to with_retry
        """
        self.config = config or Config.load()
        self.api_url = self.config.api.url.rstrip("/")
        self.max_attempts = self.config.retry.max_attempts
        self.base_delay_ms = self.config.retry.base_delay_ms
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            timeout=self.config.api.timeout_seconds,
            transport=transport
        )

        logger.info(
            f"Initialized SavApiClient: api_url={self.api_url}, "
            f"max_attempts={self.max_attempts}, base_delay_ms={self.base_delay_ms}"
        )

    async def __aenter__(self) -> "SavApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        headers = {}
        if self.config.api.api_key:
            headers["X-API-Key"] = self.config.api.api_key
        return headers

    async def _retry(self, operation, description: str):
        return await with_retry(
            operation,
            max_attempts=self.max_attempts,
            base_delay_ms=self.base_delay_ms,
            sleep=self._sleep,
            description=description
        )

    async def _send(self, request: httpx.Request, operation: str) -> httpx.Response:
        try:
            response = await self._client.send(request)
        except httpx.TransportError as e:
            raise TransientFault.from_exception(e, operation)
        _check_status(response, operation)
        return response

    @staticmethod
    def _file_part(payload: UploadPayload):
        """Build the multipart ``file`` tuple for either payload variant."""
        if isinstance(payload, EncodedPayload):
            try:
                content = base64.b64decode(payload.content, validate=True)
            except (binascii.Error, ValueError) as e:
                raise UploadPayloadError.undecodable(payload.filename, e)
            return (payload.filename, content, payload.content_type)
        if isinstance(payload, RawFile):
            return (payload.filename, payload.content, payload.content_type)
        raise TypeError(f"Unsupported upload payload: {type(payload).__name__}")

    async def upload_single(
        self,
        payload: UploadPayload,
        sav_dossier: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> str:
        """
        Upload one file to the storage proxy.

        Args:
            payload: RawFile (photo) or EncodedPayload (base64 report)
            sav_dossier: Destination SAV folder name
            on_progress: Optional callback receiving integer percentages

        Returns:
            URL of the stored file

        Raises:
            UploadPayloadError: If an EncodedPayload is not valid base64
            ClientFault: On HTTP 4xx
            TransientFault: On network error or 5xx, after retries
            LogicalFailure: If the backend reports ``success: false``
            MalformedResponseError: If the response has no file URL
        """
        operation = f"upload of '{payload.filename}'"
        file_part = self._file_part(payload)
        data = {"savDossier": sav_dossier} if sav_dossier else {}

        # Encode the multipart body once; each attempt streams it again
        encoded = self._client.build_request(
            "POST",
            f"{self.api_url}{UPLOAD_PATH}",
            files={"file": file_part},
            data=data,
        )
        body = encoded.read()
        total = len(body)
        headers = {
            **self._auth_headers(),
            "Content-Type": encoded.headers["Content-Type"],
            "Content-Length": str(total),
        }

        # Highest percentage reported so far; a retry never reports lower
        reported = {"percent": -1}

        async def body_chunks():
            sent = 0
            for start in range(0, total, PROGRESS_CHUNK_SIZE):
                chunk = body[start:start + PROGRESS_CHUNK_SIZE]
                sent += len(chunk)
                if on_progress and total:
                    percent = _percent(sent, total)
                    if percent > reported["percent"]:
                        reported["percent"] = percent
                        on_progress(percent)
                yield chunk

        async def upload_fn() -> str:
            request = self._client.build_request(
                "POST",
                f"{self.api_url}{UPLOAD_PATH}",
                content=body_chunks(),
                headers=headers,
            )
            response = await self._send(request, operation)
            result = _json_body(response, operation)

            if not result.get("success"):
                raise LogicalFailure.from_backend(result.get("error"), "Upload failed", operation)

            url = (result.get("file") or {}).get("url")
            if not url:
                raise MalformedResponseError.missing_field("file.url", operation)
            return url

        url = await self._retry(upload_fn, operation)
        logger.info(f"Uploaded {payload.filename} ({total} bytes) to {sav_dossier}")
        return url

    async def upload_many(
        self,
        descriptors: Sequence[Union[UploadDescriptor, RawFile, EncodedPayload]],
        sav_dossier: str
    ) -> List[UploadOutcome]:
        """
        Upload several files concurrently.

        All uploads start together and are awaited jointly. A failure is
        recorded in its own outcome and never stops the other uploads.

        Args:
            descriptors: Files to upload (descriptors or bare payloads)
            sav_dossier: Destination SAV folder name

        Returns:
            One UploadOutcome per input, in input order
        """
        items = [d if isinstance(d, UploadDescriptor) else UploadDescriptor(d) for d in descriptors]
        if not items:
            return []

        async def upload_one(descriptor: UploadDescriptor) -> UploadOutcome:
            try:
                url = await self.upload_single(descriptor.payload, sav_dossier)
                return UploadOutcome.success(descriptor.file_name, url)
            except Exception as e:
                logger.error(f"Upload of {descriptor.file_name} failed: {str(e)}")
                return UploadOutcome.failure(descriptor.file_name, str(e) or type(e).__name__)

        results = await asyncio.gather(
            *(upload_one(item) for item in items),
            return_exceptions=True
        )

        outcomes = []
        for item, result in zip(items, results):
            if isinstance(result, UploadOutcome):
                outcomes.append(result)
            else:
                outcomes.append(UploadOutcome.failure(item.file_name, str(result) or type(result).__name__))

        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        logger.info(f"Parallel upload to {sav_dossier}: {len(outcomes) - failed} succeeded, {failed} failed")
        return outcomes

    async def get_folder_share_link(self, sav_dossier: str) -> str:
        """
        Request a read-only share link for a SAV folder.

        Args:
            sav_dossier: SAV folder name

        Returns:
            Share link URL

        Raises:
            ClientFault, TransientFault, LogicalFailure, MalformedResponseError
        """
        operation = f"share link for '{sav_dossier}'"

        async def fetch_fn() -> str:
            request = self._client.build_request(
                "POST",
                f"{self.api_url}{SHARE_LINK_PATH}",
                json={"savDossier": sav_dossier},
                headers=self._auth_headers(),
            )
            response = await self._send(request, operation)
            result = _json_body(response, operation)

            if not result.get("success"):
                raise LogicalFailure.from_backend(
                    result.get("error"),
                    "Impossible de récupérer le lien de partage du dossier.",
                    operation
                )

            share_link = result.get("shareLink")
            if not share_link:
                raise MalformedResponseError.missing_field("shareLink", operation)
            return share_link

        return await self._retry(fetch_fn, operation)

    async def submit_sav_webhook(self, payload: Dict[str, Any]) -> Any:
        """
        Post the final claim payload to the SAV webhook.

        Args:
            payload: JSON-serializable claim payload

        Returns:
            The webhook's JSON response, or its text when it is not JSON

        Raises:
            ConfigurationFault: If no webhook URL is configured (not retried)
            ClientFault, TransientFault: On HTTP/network failures
        """
        webhook_url = self.config.webhook.sav_url
        if not webhook_url:
            raise ConfigurationFault.missing("WEBHOOK_URL_DATA_SAV")

        operation = "SAV webhook submission"

        async def submit_fn() -> Any:
            request = self._client.build_request("POST", webhook_url, json=payload)
            response = await self._send(request, operation)
            try:
                return response.json()
            except ValueError:
                return response.text

        return await self._retry(submit_fn, operation)
