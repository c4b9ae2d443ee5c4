"""
Command-line entry points.

Examples:
  GITLAB_TOKEN=... WORKPLACE_SEARCH_ACCESS_TOKEN=... \
  gitlab-sync-index --host https://ws.example.com --content-source-id abc123 \
      --gitlab-host https://gitlab.com/api/v4 \
      --from 2024-05-01T00:00:00Z --to 2024-05-02T00:00:00Z

  gitlab-sync-bootstrap --host https://ws.example.com --username elastic --name GitLab
"""

from __future__ import annotations

import argparse
import getpass
import sys
from typing import Any, Callable, Sequence

import httpx
import structlog

from gitlab_sync.connectors.gitlab import GitLabClient
from gitlab_sync.connectors.workplace_search import WorkplaceSearchClient, create_content_source
from gitlab_sync.core.config import Settings
from gitlab_sync.core.http import HttpClient, HttpError, RateLimiter, RemoteServiceError
from gitlab_sync.core.schema import TimeWindow
from gitlab_sync.core.utils import configure_logging, parse_iso8601
from gitlab_sync.sync.engine import GitLabIndexer

logger = structlog.get_logger()

SessionFactory = Callable[..., httpx.Client]


def build_indexer(settings: Settings, session_factory: SessionFactory = httpx.Client) -> GitLabIndexer:
    settings.require(
        "gitlab_host",
        "gitlab_token",
        "workplace_search_host",
        "workplace_search_access_token",
        "content_source_id",
    )
    limiter = None
    if settings.gitlab_rps:
        limiter = RateLimiter(rate=settings.gitlab_rps, capacity=max(1, int(settings.gitlab_rps)))
    gitlab_http = HttpClient(
        settings.gitlab_host,
        token=settings.gitlab_token,
        rate_limiter=limiter,
        timeout=settings.http_timeout,
        max_attempts=settings.http_max_attempts,
        session_factory=session_factory,
    )
    store_http = HttpClient(
        settings.workplace_search_host,
        token=settings.workplace_search_access_token,
        timeout=settings.http_timeout,
        max_attempts=settings.http_max_attempts,
        session_factory=session_factory,
    )
    search_http = None
    if settings.workplace_search_search_token:
        search_http = HttpClient(
            settings.workplace_search_host,
            token=settings.workplace_search_search_token,
            timeout=settings.http_timeout,
            max_attempts=settings.http_max_attempts,
            session_factory=session_factory,
        )
    return GitLabIndexer(
        GitLabClient(
            gitlab_http,
            per_page=settings.per_page,
            readme_path=settings.readme_path,
            readme_ref=settings.readme_ref,
        ),
        WorkplaceSearchClient(store_http, search_http),
        settings.content_source_id,
        batch_size=settings.batch_size,
        probe_workers=settings.probe_workers,
        search_page_size=settings.search_page_size,
    )


def index(options: dict[str, Any], session_factory: SessionFactory = httpx.Client) -> int:
    """Index documents modified within ``options['from']`` .. ``options['to']``."""
    settings, window = _settings_and_window(options)
    indexer = build_indexer(settings, session_factory)
    try:
        return indexer.index(window)
    finally:
        indexer.gitlab.close()
        indexer.store.close()


def cleanup(options: dict[str, Any], session_factory: SessionFactory = httpx.Client) -> int:
    """Remove documents from the window that no longer exist in GitLab."""
    settings, window = _settings_and_window(options)
    indexer = build_indexer(settings, session_factory)
    try:
        return indexer.cleanup(window)
    finally:
        indexer.gitlab.close()
        indexer.store.close()


def bootstrap(options: dict[str, Any], session_factory: SessionFactory = httpx.Client) -> str:
    """Create the content source and return its id."""
    password = options.get("password") or getpass.getpass("Password: ")
    settings = Settings.from_env({"workplace_search_host": options.get("host")})
    settings.require("workplace_search_host")
    with HttpClient(
        settings.workplace_search_host,
        auth=(options["username"], password),
        timeout=settings.http_timeout,
        session_factory=session_factory,
    ) as http:
        return create_content_source(http, options["name"])


def _settings_and_window(options: dict[str, Any]) -> tuple[Settings, TimeWindow]:
    settings = Settings.from_env(
        {
            "gitlab_host": options.get("gitlab_host"),
            "gitlab_token": options.get("gitlab_token"),
            "workplace_search_host": options.get("host"),
            "workplace_search_access_token": options.get("access_token"),
            "workplace_search_search_token": options.get("search_access_token"),
            "content_source_id": options.get("content_source_id"),
        }
    )
    window = TimeWindow(start=parse_iso8601(options["from"]), end=parse_iso8601(options["to"]))
    return settings, window


def _sync_parser(description: str, with_search_token: bool) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--host", help="The Workplace Search host (env: WORKPLACE_SEARCH_HOST).")
    parser.add_argument(
        "-a",
        "--access-token",
        help="Access token for the content source (env: WORKPLACE_SEARCH_ACCESS_TOKEN).",
    )
    if with_search_token:
        parser.add_argument(
            "-s",
            "--search-access-token",
            help="Token for the search endpoint (env: WORKPLACE_SEARCH_SEARCH_TOKEN).",
        )
    parser.add_argument("-c", "--content-source-id", help="The content source to sync (env: CONTENT_SOURCE_ID).")
    parser.add_argument("--gitlab-host", help="GitLab API root, e.g. https://gitlab.com/api/v4 (env: GITLAB_HOST).")
    parser.add_argument("--gitlab-token", help="Token used to authenticate with GitLab (env: GITLAB_TOKEN).")
    parser.add_argument("-f", "--from", dest="from", required=True, help="ISO-8601 start of the window.")
    parser.add_argument("-t", "--to", dest="to", required=True, help="ISO-8601 end of the window (exclusive).")
    return parser


def _bootstrap_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create a Workplace Search content source for GitLab.")
    parser.add_argument("--host", help="The Workplace Search host (env: WORKPLACE_SEARCH_HOST).")
    parser.add_argument("-n", "--name", required=True, help="Name of the content source to create.")
    parser.add_argument("-u", "--username", required=True, help="Workplace Search user.")
    parser.add_argument("-p", "--password", help="Password; prompted for when omitted.")
    return parser


def _run(action: Callable[[dict[str, Any]], Any], options: dict[str, Any]) -> Any:
    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level, json=settings.log_json)
        return action(options)
    except (RemoteServiceError, HttpError, ValueError) as exc:
        logger.error("cli.failed", error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


def index_main(argv: Sequence[str] | None = None) -> None:
    options = vars(_sync_parser("Index GitLab documents modified in a time window.", False).parse_args(argv))
    count = _run(index, options)
    print(f"Indexed {count} documents")


def cleanup_main(argv: Sequence[str] | None = None) -> None:
    options = vars(_sync_parser("Delete documents that no longer exist in GitLab.", True).parse_args(argv))
    count = _run(cleanup, options)
    print(f"Deleted {count} documents")


def bootstrap_main(argv: Sequence[str] | None = None) -> None:
    options = vars(_bootstrap_parser().parse_args(argv))
    source_id = _run(bootstrap, options)
    print(
        f"Created ContentSource with ID {source_id}. "
        f"You may now begin indexing with '--content-source-id={source_id}'"
    )


if __name__ == "__main__":
    index_main()
