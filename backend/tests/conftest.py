"""
Shared fixtures for backend tests.
"""
import os
import sys

import httpx
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.fetcher import HttpDownloader


class FakeMediaServer:
    """In-process stand-in for a remote media host, served through httpx.MockTransport."""

    BASE_URL = "https://media.example.com"

    def __init__(self):
        self.assets = {}
        self.statuses = {}
        self.errors = {}
        self.requests = []

    def url(self, name: str) -> str:
        return f"{self.BASE_URL}/{name}"

    def add(self, name: str, data: bytes) -> str:
        self.assets[f"/{name}"] = data
        return self.url(name)

    def requests_for(self, name: str) -> int:
        return sum(1 for path in self.requests if path == f"/{name}")

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(path)
        if path in self.errors:
            raise self.errors[path](f"simulated failure for {path}", request=request)
        statuses = self.statuses.get(path)
        if statuses:
            return httpx.Response(statuses.pop(0))
        if path not in self.assets:
            return httpx.Response(404)
        return httpx.Response(200, content=self.assets[path], headers={"content-type": "video/mp4"})

    def downloader(self) -> HttpDownloader:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return HttpDownloader(client=client)


@pytest.fixture
def media_server():
    return FakeMediaServer()
