"""Tests for concurrent batch uploads."""

import asyncio
import base64
import re

import httpx
import pytest

from conftest import json_response
from savclaims.client.api_client import SavApiClient
from savclaims.models.upload import EncodedPayload, RawFile, UploadDescriptor

FILENAME = re.compile(rb'filename="([^"]+)"')


def filename_of(request: httpx.Request) -> str:
    return FILENAME.search(request.content).group(1).decode("utf-8")


def make_files(*names):
    return [RawFile(content=f"data-{n}".encode(), filename=n, content_type="image/jpeg") for n in names]


@pytest.mark.asyncio
async def test_empty_batch_makes_no_request(client_config, sleep_recorder):
    calls = []

    def handler(request):
        calls.append(request)
        return json_response(200, {})

    async with SavApiClient(client_config, httpx.MockTransport(handler), sleep_recorder) as client:
        assert await client.upload_many([], "SAV_TEST") == []

    assert calls == []


@pytest.mark.asyncio
async def test_outcomes_follow_input_order(client_config, sleep_recorder):
    async def handler(request):
        name = filename_of(request)
        # Finish in reverse order of submission
        await asyncio.sleep({"a.jpg": 0.03, "b.jpg": 0.02, "c.jpg": 0.0}[name])
        return json_response(200, {"success": True, "file": {"url": f"https://storage.test/{name}"}})

    async with SavApiClient(client_config, httpx.MockTransport(handler), sleep_recorder) as client:
        outcomes = await client.upload_many(make_files("a.jpg", "b.jpg", "c.jpg"), "SAV_TEST")

    assert [o.file_name for o in outcomes] == ["a.jpg", "b.jpg", "c.jpg"]
    assert all(o.succeeded for o in outcomes)
    assert [o.url for o in outcomes] == [
        "https://storage.test/a.jpg",
        "https://storage.test/b.jpg",
        "https://storage.test/c.jpg",
    ]
    assert all(o.error_message is None for o in outcomes)


@pytest.mark.asyncio
async def test_uploads_run_concurrently(client_config, sleep_recorder):
    in_flight = {"current": 0, "max": 0}

    async def handler(request):
        in_flight["current"] += 1
        in_flight["max"] = max(in_flight["max"], in_flight["current"])
        await asyncio.sleep(0.01)
        in_flight["current"] -= 1
        return json_response(200, {"success": True, "file": {"url": "https://storage.test/x"}})

    async with SavApiClient(client_config, httpx.MockTransport(handler), sleep_recorder) as client:
        await client.upload_many(make_files("a.jpg", "b.jpg", "c.jpg"), "SAV_TEST")

    assert in_flight["max"] == 3


@pytest.mark.asyncio
async def test_partial_failure_keeps_other_uploads(client_config, sleep_recorder):
    def handler(request):
        name = filename_of(request)
        if name == "b.jpg":
            return json_response(400, {"success": False, "error": "Type de fichier non supporté"})
        return json_response(200, {"success": True, "file": {"url": f"https://storage.test/{name}"}})

    async with SavApiClient(client_config, httpx.MockTransport(handler), sleep_recorder) as client:
        outcomes = await client.upload_many(make_files("a.jpg", "b.jpg", "c.jpg"), "SAV_TEST")

    assert [o.succeeded for o in outcomes] == [True, False, True]
    failed = outcomes[1]
    assert failed.file_name == "b.jpg"
    assert failed.url is None
    assert failed.error_message == "Type de fichier non supporté"
    assert outcomes[2].url == "https://storage.test/c.jpg"


@pytest.mark.asyncio
async def test_descriptors_and_encoded_payloads(client_config, sleep_recorder):
    def handler(request):
        name = filename_of(request)
        return json_response(200, {"success": True, "file": {"url": f"https://storage.test/{name}"}})

    report = EncodedPayload(content=base64.b64encode(b"xlsx").decode("ascii"), filename="report.xlsx")
    broken = EncodedPayload(content="%%%", filename="broken.xlsx")
    items = [UploadDescriptor(make_files("a.jpg")[0]), UploadDescriptor(report), broken]

    async with SavApiClient(client_config, httpx.MockTransport(handler), sleep_recorder) as client:
        outcomes = await client.upload_many(items, "SAV_TEST")

    assert [o.file_name for o in outcomes] == ["a.jpg", "report.xlsx", "broken.xlsx"]
    assert outcomes[1].url == "https://storage.test/report.xlsx"
    assert not outcomes[2].succeeded
    assert "Invalid base64" in outcomes[2].error_message


@pytest.mark.asyncio
async def test_all_failures_are_reported(client_config, sleep_recorder):
    def handler(request):
        return json_response(200, {"success": False, "error": "Stockage indisponible"})

    async with SavApiClient(client_config, httpx.MockTransport(handler), sleep_recorder) as client:
        outcomes = await client.upload_many(make_files("a.jpg", "b.jpg"), "SAV_TEST")

    assert len(outcomes) == 2
    assert not any(o.succeeded for o in outcomes)
    assert {o.error_message for o in outcomes} == {"Stockage indisponible"}
    assert [o.to_dict()["fileName"] for o in outcomes] == ["a.jpg", "b.jpg"]
