"""
GitHub repository activity adapter.

Identifier formats:
- ``owner/repo``           public events feed (pushes, PRs, issues, ...)
- ``owner/repo:releases``  published releases only

An optional ``github_token`` in the source config (or GITHUB_TOKEN in the
environment) raises the API rate limit from 60 to 5000 requests/hour.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from feedpulse.config.settings import get_settings
from feedpulse.ingestion.base_adapter import BaseAdapter, parse_iso_datetime
from feedpulse.ingestion.http_client import HTTPClient
from feedpulse.ingestion.schemas import ContentItem

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
EVENTS_PER_PAGE = 30
RELEASES_PER_PAGE = 10


def _format_push(login: str, repo: str, payload: dict[str, Any]) -> str:
    commits = len(payload.get("commits") or [])
    branch = (payload.get("ref") or "unknown").removeprefix("refs/heads/")
    return f"{login} pushed {commits} commit(s) to {repo}:{branch}"


def _format_pull_request(login: str, repo: str, payload: dict[str, Any]) -> str:
    pr = payload.get("pull_request") or {}
    return (
        f"{login} {payload.get('action')} PR #{pr.get('number')}: "
        f"\"{pr.get('title')}\" in {repo}"
    )


def _format_issue(login: str, repo: str, payload: dict[str, Any]) -> str:
    issue = payload.get("issue") or {}
    return (
        f"{login} {payload.get('action')} issue #{issue.get('number')}: "
        f"\"{issue.get('title')}\" in {repo}"
    )


def _format_issue_comment(login: str, repo: str, payload: dict[str, Any]) -> str:
    issue = payload.get("issue") or {}
    return f"{login} commented on issue #{issue.get('number')} in {repo}"


def _format_create(login: str, repo: str, payload: dict[str, Any]) -> str:
    return f"{login} created {payload.get('ref_type')} \"{payload.get('ref')}\" in {repo}"


def _format_release(login: str, repo: str, payload: dict[str, Any]) -> str:
    release = payload.get("release") or {}
    return f"{login} {payload.get('action')} release \"{release.get('tag_name')}\" in {repo}"


EVENT_FORMATTERS = {
    "PushEvent": _format_push,
    "PullRequestEvent": _format_pull_request,
    "IssuesEvent": _format_issue,
    "IssueCommentEvent": _format_issue_comment,
    "CreateEvent": _format_create,
    "ReleaseEvent": _format_release,
    "ForkEvent": lambda login, repo, payload: f"{login} forked {repo}",
    "WatchEvent": lambda login, repo, payload: f"{login} started watching {repo}",
}


class GitHubAdapter(BaseAdapter):
    """Repository events or releases from the public GitHub REST API."""

    @property
    def source_type(self) -> str:
        return "github"

    def validate_config(self, identifier: str, config: dict[str, Any]) -> list[str]:
        problems = super().validate_config(identifier, config)
        if problems:
            return problems
        repo_path, _, mode = identifier.partition(":")
        if repo_path.count("/") != 1 or not all(repo_path.split("/")):
            return [f"identifier must be owner/repo[:releases], got {identifier!r}"]
        if mode and mode != "releases":
            return [f"unsupported mode {mode!r} (only 'releases')"]
        return []

    def _default_headers(self, config: dict[str, Any]) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        token = config.get("github_token")
        if not token:
            settings_token = get_settings().github_token
            token = settings_token.get_secret_value() if settings_token else None
        if token:
            headers["Authorization"] = f"token {token}"
        return headers

    async def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[dict[str, Any]]:
        repo_path, _, mode = identifier.partition(":")

        await self._rate_limiter.acquire()
        if mode == "releases":
            releases = await client.get_json(
                f"{GITHUB_API_BASE}/repos/{repo_path}/releases",
                params={"per_page": RELEASES_PER_PAGE},
            )
            for release in releases or []:
                yield {"kind": "release", "repo": repo_path, "data": release}
        else:
            events = await client.get_json(
                f"{GITHUB_API_BASE}/repos/{repo_path}/events",
                params={"per_page": EVENTS_PER_PAGE},
            )
            for event in events or []:
                yield {"kind": "event", "repo": repo_path, "data": event}

    def _transform(
        self,
        raw: dict[str, Any],
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        if raw["kind"] == "release":
            return self._transform_release(raw["data"])
        return self._transform_event(raw["data"])

    def _transform_event(self, event: dict[str, Any]) -> ContentItem | None:
        formatter = EVENT_FORMATTERS.get(event.get("type", ""))
        if formatter is None:
            return None

        login = (event.get("actor") or {}).get("login", "unknown")
        repo = (event.get("repo") or {}).get("name", "")
        return ContentItem(
            external_id=str(event["id"]),
            raw_content=formatter(login, repo, event.get("payload") or {}),
            posted_at=parse_iso_datetime(event.get("created_at")),
            metadata={
                "type": event.get("type"),
                "actor": login,
                "repo": repo,
                "url": f"https://github.com/{repo}",
                "payload": event.get("payload") or {},
            },
        )

    def _transform_release(self, release: dict[str, Any]) -> ContentItem | None:
        if release.get("draft"):
            return None

        title = release.get("name") or release.get("tag_name") or ""
        body = release.get("body") or "No release notes"
        return ContentItem(
            external_id=f"release_{release['id']}",
            raw_content=f"{title}\n\n{body}",
            posted_at=parse_iso_datetime(release.get("published_at")),
            metadata={
                "type": "release",
                "title": title,
                "tag_name": release.get("tag_name"),
                "prerelease": bool(release.get("prerelease")),
                "author": (release.get("author") or {}).get("login"),
                "url": release.get("html_url"),
            },
        )
