"""Shared fixtures for the SAV claim tests."""

import io
import json

import httpx
import pytest
from PIL import Image

from savclaims.models.upload import RawFile
from savclaims.utils.config import ApiConfig, Config, RetryConfig, StorageConfig, WebhookConfig

PROXY_URL = "http://proxy.test"
WEBHOOK_URL = "http://hooks.test/sav"


class SleepRecorder:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def json_response(status_code: int, body) -> httpx.Response:
    return httpx.Response(status_code, json=body)


def png_bytes(size=(800, 600), color="red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def request_json(request: httpx.Request):
    return json.loads(request.content.decode("utf-8"))


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def client_config(tmp_path):
    return Config(
        api=ApiConfig(url=PROXY_URL, api_key="", timeout_seconds=5),
        retry=RetryConfig(max_attempts=3, base_delay_ms=1000),
        webhook=WebhookConfig(sav_url=WEBHOOK_URL),
        storage=StorageConfig(
            root_dir=str(tmp_path / "storage"),
            root_folder="SAV_Images",
            public_base_url="http://testserver/files",
        ),
    )


@pytest.fixture
def photo():
    return RawFile(content=png_bytes(), filename="photo.png", content_type="image/png")
