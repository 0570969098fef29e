"""Shared fixtures: a local docs site served by aiohttp."""

from typing import Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer


class Site:
    """Pages served by the local test server, plus a log of requests."""

    def __init__(self) -> None:
        self.server: Optional[TestServer] = None
        self.pages: dict[str, tuple[int, str]] = {}
        self.requests: list[tuple[str, str]] = []

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    def add(self, path: str, body: str, status: int = 200) -> None:
        self.pages[path] = (status, body)

    def add_sitemap(self, *paths: str, extra: str = "") -> str:
        entries = "".join(f"<url><loc>{self.url(path)}</loc></url>" for path in paths)
        self.add(
            "/sitemap.xml",
            '<?xml version="1.0" encoding="UTF-8"?>'
            f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}{extra}</urlset>',
        )
        return self.url("/sitemap.xml")

    @property
    def requested_paths(self) -> list[str]:
        return [path for path, _ in self.requests]

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append((request.path, request.headers.get("User-Agent", "")))
        page = self.pages.get(request.path)
        if page is None:
            return web.Response(status=404, text="not found")
        status, body = page
        return web.Response(status=status, text=body)


class RecordingLogger:
    def __init__(self) -> None:
        self.infos: list[str] = []
        self.errors: list[str] = []

    def info(self, message: str) -> None:
        self.infos.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def notify(self, message: str, severity: str) -> None:
        self.messages.append((message, severity))


@pytest_asyncio.fixture
async def site():
    site = Site()
    app = web.Application()
    app.router.add_get("/{tail:.*}", site.handle)
    site.server = TestServer(app)
    await site.server.start_server()
    yield site
    await site.server.close()


@pytest.fixture
def logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
