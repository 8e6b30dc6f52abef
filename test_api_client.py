"""Tests for the storage proxy and webhook HTTP client."""

import base64

import httpx
import pytest

from conftest import PROXY_URL, WEBHOOK_URL, json_response, request_json
from savclaims.client.api_client import SHARE_LINK_PATH, UPLOAD_PATH, SavApiClient
from savclaims.models.upload import EncodedPayload, RawFile
from savclaims.utils.config import ApiConfig, Config, WebhookConfig
from savclaims.utils.errors import (
    ClientFault,
    ConfigurationFault,
    LogicalFailure,
    MalformedResponseError,
    TransientFault,
    UploadPayloadError,
)

STORED_URL = "https://storage.test/SAV_Images/SAV_TEST/photo.png"


def make_client(config, handler, sleep):
    return SavApiClient(config=config, transport=httpx.MockTransport(handler), sleep=sleep)


def upload_ok(request):
    return json_response(200, {"success": True, "file": {"url": STORED_URL}})


class TestUploadSingle:
    @pytest.mark.asyncio
    async def test_returns_file_url(self, client_config, sleep_recorder, photo):
        seen = []

        def handler(request):
            seen.append(request)
            return upload_ok(request)

        async with make_client(client_config, handler, sleep_recorder) as client:
            url = await client.upload_single(photo, "SAV_TEST")

        assert url == STORED_URL
        assert len(seen) == 1
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{PROXY_URL}{UPLOAD_PATH}"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="savDossier"' in request.content
        assert b"SAV_TEST" in request.content
        assert b'filename="photo.png"' in request.content
        assert photo.content in request.content

    @pytest.mark.asyncio
    async def test_decodes_base64_payload(self, client_config, sleep_recorder):
        seen = []

        def handler(request):
            seen.append(request)
            return upload_ok(request)

        report = EncodedPayload(
            content=base64.b64encode(b"spreadsheet-bytes").decode("ascii"),
            filename="SAV_TEST.xlsx",
        )

        async with make_client(client_config, handler, sleep_recorder) as client:
            await client.upload_single(report, "SAV_TEST")

        body = seen[0].content
        assert b"spreadsheet-bytes" in body
        assert b'filename="SAV_TEST.xlsx"' in body
        assert b"spreadsheetml.sheet" in body

    @pytest.mark.asyncio
    async def test_invalid_base64_fails_before_any_request(self, client_config, sleep_recorder):
        calls = []

        def handler(request):
            calls.append(request)
            return upload_ok(request)

        report = EncodedPayload(content="not base64 !!", filename="broken.xlsx")

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(UploadPayloadError):
                await client.upload_single(report, "SAV_TEST")

        assert calls == []

    @pytest.mark.asyncio
    async def test_reports_progress_up_to_100(self, client_config, sleep_recorder):
        big = RawFile(content=b"x" * (300 * 1024), filename="big.jpg", content_type="image/jpeg")
        progress = []

        async with make_client(client_config, upload_ok, sleep_recorder) as client:
            await client.upload_single(big, "SAV_TEST", on_progress=progress.append)

        assert len(progress) > 1
        assert progress == sorted(progress)
        assert progress[-1] == 100
        assert all(0 <= p <= 100 for p in progress)

    @pytest.mark.asyncio
    async def test_progress_does_not_restart_after_retry(self, client_config, sleep_recorder):
        big = RawFile(content=b"x" * (300 * 1024), filename="big.jpg", content_type="image/jpeg")
        progress = []
        responses = iter([json_response(503, {"error": "busy"}), None])

        def handler(request):
            return next(responses) or upload_ok(request)

        async with make_client(client_config, handler, sleep_recorder) as client:
            url = await client.upload_single(big, "SAV_TEST", on_progress=progress.append)

        assert url == STORED_URL
        assert sleep_recorder.delays == [1.0]
        assert all(a < b for a, b in zip(progress, progress[1:]))
        assert progress[-1] == 100

    @pytest.mark.asyncio
    async def test_sends_api_key_header(self, client_config, sleep_recorder, photo):
        client_config.api.api_key = "secret-key"
        seen = []

        def handler(request):
            seen.append(request)
            return upload_ok(request)

        async with make_client(client_config, handler, sleep_recorder) as client:
            await client.upload_single(photo, "SAV_TEST")

        assert seen[0].headers["X-API-Key"] == "secret-key"

    @pytest.mark.asyncio
    async def test_success_false_is_logical_failure(self, client_config, sleep_recorder, photo):
        calls = []

        def handler(request):
            calls.append(request)
            return json_response(200, {"success": False, "error": "Quota dépassé"})

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(LogicalFailure, match="Quota dépassé"):
                await client.upload_single(photo, "SAV_TEST")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_success_false_without_message(self, client_config, sleep_recorder, photo):
        def handler(request):
            return json_response(200, {"success": False})

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(LogicalFailure, match="Upload failed"):
                await client.upload_single(photo, "SAV_TEST")

    @pytest.mark.asyncio
    async def test_missing_url_is_malformed(self, client_config, sleep_recorder, photo):
        def handler(request):
            return json_response(200, {"success": True, "file": {}})

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(MalformedResponseError):
                await client.upload_single(photo, "SAV_TEST")

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, client_config, sleep_recorder, photo):
        calls = []

        def handler(request):
            calls.append(request)
            return json_response(400, {"success": False, "error": "Aucun fichier fourni"})

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(ClientFault) as exc_info:
                await client.upload_single(photo, "SAV_TEST")

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "Aucun fichier fourni"
        assert len(calls) == 1
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_server_error_is_retried_with_same_body(self, client_config, sleep_recorder, photo):
        bodies = []

        def handler(request):
            bodies.append(request.content)
            if len(bodies) < 3:
                return json_response(503, {"success": False, "error": "Service indisponible"})
            return upload_ok(request)

        async with make_client(client_config, handler, sleep_recorder) as client:
            url = await client.upload_single(photo, "SAV_TEST")

        assert url == STORED_URL
        assert len(bodies) == 3
        assert bodies[0] == bodies[1] == bodies[2]
        assert sleep_recorder.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_network_error_exhausts_attempts(self, client_config, sleep_recorder, photo):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(TransientFault):
                await client.upload_single(photo, "SAV_TEST")

        assert len(calls) == 3
        assert sleep_recorder.delays == [1.0, 2.0]


class TestFolderShareLink:
    @pytest.mark.asyncio
    async def test_returns_share_link(self, client_config, sleep_recorder):
        seen = []

        def handler(request):
            seen.append(request)
            return json_response(200, {"success": True, "shareLink": "https://share.test/SAV_TEST"})

        async with make_client(client_config, handler, sleep_recorder) as client:
            link = await client.get_folder_share_link("SAV_TEST")

        assert link == "https://share.test/SAV_TEST"
        assert str(seen[0].url) == f"{PROXY_URL}{SHARE_LINK_PATH}"
        assert request_json(seen[0]) == {"savDossier": "SAV_TEST"}

    @pytest.mark.asyncio
    async def test_failure_without_message_uses_default(self, client_config, sleep_recorder):
        def handler(request):
            return json_response(200, {"success": False})

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(LogicalFailure) as exc_info:
                await client.get_folder_share_link("SAV_TEST")

        assert str(exc_info.value) == "Impossible de récupérer le lien de partage du dossier."

    @pytest.mark.asyncio
    async def test_missing_share_link_is_malformed(self, client_config, sleep_recorder):
        def handler(request):
            return json_response(200, {"success": True})

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(MalformedResponseError):
                await client.get_folder_share_link("SAV_TEST")

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self, client_config, sleep_recorder):
        def handler(request):
            return httpx.Response(200, text="<html>proxy error</html>")

        async with make_client(client_config, handler, sleep_recorder) as client:
            with pytest.raises(MalformedResponseError):
                await client.get_folder_share_link("SAV_TEST")


class TestSavWebhook:
    @pytest.mark.asyncio
    async def test_posts_payload_and_returns_json(self, client_config, sleep_recorder):
        seen = []

        def handler(request):
            seen.append(request)
            return json_response(200, {"received": True})

        payload = {"savDossier": "SAV_TEST", "claims": []}
        async with make_client(client_config, handler, sleep_recorder) as client:
            response = await client.submit_sav_webhook(payload)

        assert response == {"received": True}
        assert str(seen[0].url) == WEBHOOK_URL
        assert request_json(seen[0]) == payload

    @pytest.mark.asyncio
    async def test_text_response_is_returned_as_text(self, client_config, sleep_recorder):
        def handler(request):
            return httpx.Response(200, text="Accepted")

        async with make_client(client_config, handler, sleep_recorder) as client:
            assert await client.submit_sav_webhook({"savDossier": "SAV_TEST"}) == "Accepted"

    @pytest.mark.asyncio
    async def test_missing_webhook_url(self, sleep_recorder):
        calls = []

        def handler(request):
            calls.append(request)
            return json_response(200, {})

        config = Config(api=ApiConfig(url=PROXY_URL), webhook=WebhookConfig(sav_url=""))
        async with make_client(config, handler, sleep_recorder) as client:
            with pytest.raises(ConfigurationFault, match="WEBHOOK_URL_DATA_SAV"):
                await client.submit_sav_webhook({"savDossier": "SAV_TEST"})

        assert calls == []
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, client_config, sleep_recorder):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(502, text="Bad Gateway")
            return json_response(200, {"ok": True})

        async with make_client(client_config, handler, sleep_recorder) as client:
            assert await client.submit_sav_webhook({"savDossier": "SAV_TEST"}) == {"ok": True}

        assert len(calls) == 2
        assert sleep_recorder.delays == [1.0]
