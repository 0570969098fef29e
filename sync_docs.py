#!/usr/bin/env python3
"""Sync OpenCode documentation from sitemap.

Discovers documentation pages listed in the opencode.ai sitemap, downloads the
markdown rendering of each page and stores it in a flat cache directory, then
fetches a fixed list of external reference docs into the same directory.
"""

import argparse
import asyncio
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Protocol
from urllib.parse import SplitResult, urlsplit

import aiohttp


SITEMAP_URL = "https://opencode.ai/sitemap.xml"
DOCS_PREFIX = "/docs"
MARKDOWN_SUFFIX = ".md"
INDEX_FILENAME = "index.md"
USER_AGENT = "opencode-docs-fetcher"
CONCURRENT_REQUESTS = 10
CACHE_NAMESPACE = ("opencode", "opencode-architect", "docs")

LOC_PATTERN = re.compile(r"<loc>([^<]+)</loc>")


@dataclass(frozen=True)
class ExternalDoc:
    """A doc hosted outside the sitemap, stored under a fixed filename."""

    url: str
    filename: str


EXTERNAL_DOCS = (
    ExternalDoc(
        url="https://platform.claude.com/docs/en/agents-and-tools/agent-skills/best-practices.md",
        filename="claude-skill-best-practices.md",
    ),
    ExternalDoc(
        url="https://platform.claude.com/docs/en/build-with-claude/prompt-engineering/claude-4-best-practices.md",
        filename="claude-4-best-practices.md",
    ),
)


def default_docs_dir() -> Path:
    """Return the per-user cache directory the docs are written to."""
    cache_home = os.environ.get("XDG_CACHE_HOME")
    base = Path(cache_home) if cache_home else Path.home() / ".cache"
    return base.joinpath(*CACHE_NAMESPACE)


@dataclass
class SyncConfig:
    sitemap_url: str = SITEMAP_URL
    docs_dir: Path = field(default_factory=default_docs_dir)
    docs_prefix: str = DOCS_PREFIX
    user_agent: str = USER_AGENT
    external_docs: tuple[ExternalDoc, ...] = EXTERNAL_DOCS
    concurrency: int = CONCURRENT_REQUESTS


class FetchError(Exception):
    """Raised when a GET returns a non-2xx status."""

    def __init__(self, url: str, status: int):
        super().__init__(f"Request failed ({status}) for {url}")
        self.url = url
        self.status = status


@dataclass(frozen=True)
class FetchOutcome:
    url: str
    filename: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BatchTally:
    """Success and failure counts for one batch of downloads."""

    label: str
    succeeded: int
    failed: int
    outcomes: tuple[FetchOutcome, ...] = ()

    @property
    def failed_urls(self) -> list[str]:
        return [outcome.url for outcome in self.outcomes if not outcome.ok]


@dataclass(frozen=True)
class SyncReport:
    """Result of one run. ``error`` is set only when the run itself failed."""

    docs: Optional[BatchTally] = None
    external: Optional[BatchTally] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Logger(Protocol):
    def info(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class Notifier(Protocol):
    def notify(self, message: str, severity: str) -> None: ...


def parse_absolute_url(value: str) -> Optional[SplitResult]:
    """Parse value as an absolute URL, returning None when it is not one."""
    try:
        parsed = urlsplit(value.strip())
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return parsed


def is_doc_path(path: str, prefix: str = DOCS_PREFIX) -> bool:
    return path.startswith(prefix + "/")


def extract_doc_urls(sitemap: str, prefix: str = DOCS_PREFIX) -> list[str]:
    """Extract distinct doc page URLs from the <loc> entries of a sitemap."""
    urls = []
    for match in LOC_PATTERN.finditer(sitemap):
        url = match.group(1)
        parsed = parse_absolute_url(url)
        if parsed is None:
            # Not an absolute URL: skipped, not counted.
            continue
        if is_doc_path(parsed.path, prefix):
            urls.append(url)
    return list(dict.fromkeys(urls))


def normalize_doc_path(path: str) -> str:
    if path.endswith("/"):
        return path[:-1]
    return path


def build_markdown_urls(urls: Iterable[str], prefix: str = DOCS_PREFIX) -> list[str]:
    """Map doc page URLs to the URLs of their markdown renderings."""
    markdown_urls = []
    for url in urls:
        parsed = parse_absolute_url(url)
        if parsed is None or not is_doc_path(parsed.path, prefix):
            continue
        path = normalize_doc_path(parsed.path)
        if path == prefix:
            continue
        if not path.endswith(MARKDOWN_SUFFIX):
            path += MARKDOWN_SUFFIX
        markdown_urls.append(f"{parsed.scheme}://{parsed.netloc}{path}")
    return list(dict.fromkeys(markdown_urls))


def build_filename(url: str, prefix: str = DOCS_PREFIX) -> str:
    """Derive a flat local filename from a markdown doc URL.

    ``https://opencode.ai/docs/config/agents.md`` becomes ``config-agents.md``;
    the docs root itself maps to ``index.md``.
    """
    path = urlsplit(url).path
    if path in (prefix + MARKDOWN_SUFFIX, prefix + "/" + MARKDOWN_SUFFIX):
        return INDEX_FILENAME

    relative = path
    if relative.startswith(prefix + "/"):
        relative = relative[len(prefix) + 1:]
    elif relative.startswith(prefix):
        relative = relative[len(prefix):]
    relative = relative.removeprefix("/")

    if not relative:
        return INDEX_FILENAME

    normalized = relative.replace("/", "-")
    if normalized.endswith(MARKDOWN_SUFFIX):
        return normalized
    return normalized + MARKDOWN_SUFFIX


async def fetch_text(session: aiohttp.ClientSession, url: str) -> str:
    async with session.get(url) as resp:
        if not 200 <= resp.status < 300:
            raise FetchError(url, resp.status)
        return await resp.text()


async def fetch_sitemap(
    session: aiohttp.ClientSession, sitemap_url: str, prefix: str = DOCS_PREFIX
) -> list[str]:
    """Fetch the sitemap and return the doc page URLs it lists."""
    return extract_doc_urls(await fetch_text(session, sitemap_url), prefix)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class DocsFetcher:
    """Downloads sitemap-derived and external docs into the docs directory."""

    def __init__(self, config: Optional[SyncConfig] = None, logger: Optional[Logger] = None):
        self.config = config or SyncConfig()
        self.logger = logger or logging.getLogger("sync_docs")

    def ensure_docs_dir(self) -> None:
        Path(self.config.docs_dir).mkdir(parents=True, exist_ok=True)

    async def run(self) -> SyncReport:
        """Run a full sync. Never raises; failures are reported in the result."""
        try:
            self.ensure_docs_dir()
            connector = aiohttp.TCPConnector(limit=self.config.concurrency)
            headers = {"User-Agent": self.config.user_agent}
            async with aiohttp.ClientSession(connector=connector, headers=headers) as session:
                doc_urls = await fetch_sitemap(
                    session, self.config.sitemap_url, self.config.docs_prefix
                )
                self.logger.info(f"Found {len(doc_urls)} docs in sitemap")
                markdown_urls = build_markdown_urls(doc_urls, self.config.docs_prefix)
                docs = await self.download_docs(session, markdown_urls)
                external = await self.download_external_docs(session)
        except Exception as e:
            message = _describe(e)
            self.logger.error(f"Failed to fetch OpenCode docs: {message}")
            return SyncReport(error=message)
        return SyncReport(docs=docs, external=external)

    async def download_docs(self, session: aiohttp.ClientSession, urls: Iterable[str]) -> BatchTally:
        targets = [(url, build_filename(url, self.config.docs_prefix)) for url in urls]
        return await self._download_batch(session, "OpenCode docs", targets)

    async def download_external_docs(self, session: aiohttp.ClientSession) -> BatchTally:
        targets = [(doc.url, doc.filename) for doc in self.config.external_docs]
        return await self._download_batch(session, "External docs", targets)

    async def _download_batch(
        self, session: aiohttp.ClientSession, label: str, targets: list[tuple[str, str]]
    ) -> BatchTally:
        semaphore = asyncio.Semaphore(self.config.concurrency)
        tasks = [self._download(session, semaphore, url, filename) for url, filename in targets]
        outcomes = tuple(await asyncio.gather(*tasks))

        succeeded = sum(1 for outcome in outcomes if outcome.ok)
        failed = len(outcomes) - succeeded
        self.logger.info(f"{label} fetch complete. Success: {succeeded}, Failed: {failed}.")
        return BatchTally(label, succeeded, failed, outcomes)

    async def _download(
        self,
        session: aiohttp.ClientSession,
        semaphore: asyncio.Semaphore,
        url: str,
        filename: str,
    ) -> FetchOutcome:
        """Download a single doc and write it, recording any failure."""
        async with semaphore:
            try:
                content = await fetch_text(session, url)
                filepath = Path(self.config.docs_dir) / filename
                filepath.write_text(content, encoding="utf-8")
            except Exception as e:
                message = _describe(e)
                self.logger.error(f"Failed to fetch {url}: {message}")
                return FetchOutcome(url, filename, error=message)
        return FetchOutcome(url, filename)


class ConsoleNotifier:
    """Notifier that prints to stderr, for running outside a host app."""

    def notify(self, message: str, severity: str) -> None:
        print(f"[{severity}] {message}", file=sys.stderr)


def _failure_message(report: SyncReport) -> str:
    return f"Failed to sync docs: {report.error}"


def start_background_sync(fetcher: DocsFetcher, notifier: Notifier) -> "asyncio.Task[SyncReport]":
    """Schedule a sync on the running loop without waiting for it.

    A failed run is reported through ``notifier`` once the task finishes.
    """

    async def sync() -> SyncReport:
        report = await fetcher.run()
        if not report.ok:
            notifier.notify(_failure_message(report), "error")
        return report

    return asyncio.create_task(sync())


async def sync_docs_command(fetcher: DocsFetcher, notifier: Optional[Notifier] = None) -> str:
    """Run a sync on demand and return a message for the user."""
    report = await fetcher.run()
    if report.ok:
        return "Successfully synced OpenCode documentation."
    message = _failure_message(report)
    if notifier is not None:
        notifier.notify(message, "error")
    return message


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync OpenCode docs into the local cache")
    parser.add_argument("--docs-dir", type=Path, default=None, help="Directory to write docs to")
    parser.add_argument("--sitemap-url", default=SITEMAP_URL, help="Sitemap to discover docs from")
    parser.add_argument(
        "--concurrency", type=int, default=CONCURRENT_REQUESTS, help="Parallel downloads per batch"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    config = SyncConfig(sitemap_url=args.sitemap_url, concurrency=max(1, args.concurrency))
    if args.docs_dir is not None:
        config.docs_dir = args.docs_dir

    report = asyncio.run(DocsFetcher(config).run())
    if not report.ok:
        ConsoleNotifier().notify(_failure_message(report), "error")
        return 1

    failed_urls = report.docs.failed_urls + report.external.failed_urls
    if failed_urls:
        logger = logging.getLogger("sync_docs")
        logger.info("Failed URLs:")
        for url in failed_urls:
            logger.info(f"  - {url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
