r"""GitHub Issues ledger.

Reads go through the GraphQL API (one paginated query returns entries
with labels and comment threads); writes go through the REST API.

Every call has a bounded timeout and a bounded number of retries on
transient failures (connection errors, 5xx, 429, exhausted rate limit).
When retries run out :class:`~devkeyring.core.errors.LedgerUnavailable`
is raised; a read never degrades to an empty result.

REST endpoints used
-------------------
========================================  ======================
``POST   /repos/{o}/{r}/issues/{n}/comments``   post_comment
``POST   /repos/{o}/{r}/issues/{n}/labels``     add_label
``PUT    /repos/{o}/{r}/issues/{n}/labels``     set_labels
``DELETE /repos/{o}/{r}/issues/{n}/labels/{l}`` remove_label
``PATCH  /repos/{o}/{r}/issues/{n}``            close_entry
``PUT    /repos/{o}/{r}/issues/{n}/lock``       lock_entry
``PUT    /orgs/{org}/blocks/{user}``            block_identity
``GET    /orgs/{org}/memberships/{user}``       is_privileged
========================================  ======================
"""

from __future__ import annotations

import contextlib
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import TYPE_CHECKING, Any

from devkeyring.core.clock import parse_timestamp
from devkeyring.core.errors import LedgerUnavailable
from devkeyring.ledger.base import Ledger, PrivilegedRoleCheck
from devkeyring.models.ledger import LedgerComment, LedgerEntry

if TYPE_CHECKING:
    from devkeyring.config.settings import LedgerSettings, PrivilegeSettings

log = logging.getLogger(__name__)

API_VERSION = "2022-11-28"

_ISSUES_QUERY = """
query($owner: String!, $repo: String!, $labels: [String!], $author: String,
      $first: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    issues(first: $first, after: $after, states: CLOSED, labels: $labels,
           filterBy: {createdBy: $author},
           orderBy: {field: CREATED_AT, direction: DESC}) {
      pageInfo { hasNextPage endCursor }
      nodes {
        number
        title
        body
        createdAt
        closedAt
        author { login }
        labels(first: 20) { nodes { name } }
        comments(last: 100) {
          nodes { body createdAt author { login } }
        }
      }
    }
  }
}
"""


# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------


def _login(node: dict | None) -> str | None:
    return (node or {}).get("login")


def entry_from_graphql(node: dict[str, Any]) -> LedgerEntry:
    """Convert one GraphQL ``Issue`` node into a :class:`LedgerEntry`."""
    comments = tuple(
        LedgerComment(
            author=_login(c.get("author")),
            body=c.get("body") or "",
            created_at=parse_timestamp(c["createdAt"]),
        )
        for c in (node.get("comments") or {}).get("nodes") or []
    )
    closed_at = node.get("closedAt")
    return LedgerEntry(
        number=node["number"],
        title=node.get("title") or "",
        body=node.get("body") or "",
        # Deleted accounts show up as a null author
        author=_login(node.get("author")) or "ghost",
        created_at=parse_timestamp(node["createdAt"]),
        closed_at=parse_timestamp(closed_at) if closed_at else None,
        labels=tuple(lb["name"] for lb in (node.get("labels") or {}).get("nodes") or []),
        comments=comments,
    )


def entry_from_rest(
    issue: dict[str, Any],
    comments: list[dict[str, Any]] | None = None,
) -> LedgerEntry:
    """Convert a REST / webhook ``issue`` payload into a :class:`LedgerEntry`."""
    closed_at = issue.get("closed_at")
    return LedgerEntry(
        number=issue["number"],
        title=issue.get("title") or "",
        body=issue.get("body") or "",
        author=_login(issue.get("user")) or "ghost",
        created_at=parse_timestamp(issue["created_at"]),
        closed_at=parse_timestamp(closed_at) if closed_at else None,
        labels=tuple(lb["name"] for lb in issue.get("labels") or []),
        comments=tuple(
            LedgerComment(
                author=_login(c.get("user")),
                body=c.get("body") or "",
                created_at=parse_timestamp(c["created_at"]),
            )
            for c in comments or []
        ),
    )


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class GitHubClient:
    """Minimal GitHub API client with bounded timeouts and retries."""

    def __init__(self, settings: LedgerSettings) -> None:
        self._settings = settings

    def _build_request(
        self,
        method: str,
        url: str,
        payload: Any = None,  # noqa: ANN401
    ) -> urllib.request.Request:
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(  # noqa: S310
            url,
            data=data,
            method=method,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "devkeyring",
            },
        )
        if data is not None:
            req.add_header("Content-Type", "application/json")
        if self._settings.token:
            req.add_header("Authorization", f"Bearer {self._settings.token}")
        return req

    def _do_request(
        self,
        method: str,
        url: str,
        payload: Any = None,  # noqa: ANN401
    ) -> tuple[int, Any]:
        """Send a request with retry logic; return ``(status, parsed_body)``."""
        max_retries = self._settings.max_retries
        delay = self._settings.retry_delay_seconds
        last_exc = None

        for attempt in range(max_retries + 1):
            try:
                return self._do_single_request(method, url, payload)
            except LedgerUnavailable as exc:
                if not exc.retryable or attempt == max_retries:
                    raise
                last_exc = exc
                log.warning(
                    "Ledger request %s %s attempt %d/%d failed: %s",
                    method,
                    url,
                    attempt + 1,
                    max_retries + 1,
                    exc.detail,
                )
                time.sleep(delay * (2**attempt))

        raise last_exc  # type: ignore[misc]

    def _do_single_request(
        self,
        method: str,
        url: str,
        payload: Any = None,  # noqa: ANN401
    ) -> tuple[int, Any]:
        req = self._build_request(method, url, payload)
        try:
            resp = urllib.request.urlopen(req, timeout=self._settings.timeout_seconds)  # noqa: S310
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                return 404, None
            body = ""
            with contextlib.suppress(Exception):
                body = exc.read().decode("utf-8", errors="replace")[:500]
            rate_limited = exc.code == 429 or (
                exc.code == 403 and (exc.headers or {}).get("x-ratelimit-remaining") == "0"
            )
            msg = f"GitHub returned HTTP {exc.code} for {method} {url}: {body}"
            raise LedgerUnavailable(
                msg,
                retryable=exc.code >= 500 or rate_limited,
                status=exc.code,
            ) from exc
        except (urllib.error.URLError, OSError) as exc:
            msg = f"Failed to reach GitHub at {url}: {exc}"
            raise LedgerUnavailable(msg, retryable=True) from exc

        with resp:
            raw = resp.read()
            status = resp.status
        if not raw:
            return status, None
        try:
            return status, json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            msg = f"GitHub returned invalid JSON for {method} {url}: {exc}"
            raise LedgerUnavailable(msg, retryable=False, status=status) from exc

    # -- public API ---------------------------------------------------------

    def rest(
        self,
        method: str,
        path: str,
        payload: Any = None,  # noqa: ANN401
        *,
        allow_missing: bool = False,
    ) -> Any:  # noqa: ANN401
        """Call a REST endpoint relative to the API root.

        A 404 returns ``None`` when *allow_missing* is set and raises
        :class:`LedgerUnavailable` otherwise.
        """
        url = f"{self._settings.api_url}/{path.lstrip('/')}"
        status, body = self._do_request(method, url, payload)
        if status == 404:
            if allow_missing:
                return None
            msg = f"GitHub resource not found: {method} {path}"
            raise LedgerUnavailable(msg, retryable=False, status=404)
        return body

    def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data`` member."""
        _, body = self._do_request(
            "POST",
            self._settings.graphql_url,
            {"query": query, "variables": variables},
        )
        body = body or {}
        errors = body.get("errors")
        if errors:
            messages = "; ".join(e.get("message", "?") for e in errors)
            rate_limited = any(e.get("type") == "RATE_LIMITED" for e in errors)
            msg = f"GitHub GraphQL error: {messages}"
            raise LedgerUnavailable(msg, retryable=rate_limited)
        if body.get("data") is None:
            msg = "GitHub GraphQL response has no data"
            raise LedgerUnavailable(msg, retryable=False)
        return body["data"]


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class GitHubLedger(Ledger):
    """Ledger backed by the issues of one GitHub repository."""

    def __init__(self, client: GitHubClient, settings: LedgerSettings) -> None:
        self._client = client
        self._settings = settings
        self._repo_path = f"repos/{settings.owner}/{settings.repo}"

    def list_closed_entries(
        self,
        *,
        label: str,
        author: str | None = None,
    ) -> list[LedgerEntry]:
        entries: list[LedgerEntry] = []
        cursor = None
        for _ in range(self._settings.max_pages):
            data = self._client.graphql(
                _ISSUES_QUERY,
                {
                    "owner": self._settings.owner,
                    "repo": self._settings.repo,
                    "labels": [label],
                    "author": author,
                    "first": self._settings.page_size,
                    "after": cursor,
                },
            )
            repository = data.get("repository")
            if repository is None:
                msg = f"Repository {self._settings.repository} is not accessible"
                raise LedgerUnavailable(msg, retryable=False)
            issues = repository["issues"]
            entries.extend(entry_from_graphql(node) for node in issues["nodes"])
            page_info = issues["pageInfo"]
            if not page_info["hasNextPage"]:
                break
            cursor = page_info["endCursor"]
        else:
            log.error(
                "Stopped paging '%s' entries after %d pages; history is truncated",
                label,
                self._settings.max_pages,
            )
        return entries

    def get_entry(self, number: int) -> LedgerEntry:
        issue = self._client.rest("GET", f"{self._repo_path}/issues/{number}")
        comments = self._client.rest(
            "GET",
            f"{self._repo_path}/issues/{number}/comments?per_page=100",
        )
        return entry_from_rest(issue, comments or [])

    def post_comment(self, number: int, body: str) -> None:
        self._client.rest(
            "POST",
            f"{self._repo_path}/issues/{number}/comments",
            {"body": body},
        )

    def add_label(self, number: int, label: str) -> None:
        self._client.rest(
            "POST",
            f"{self._repo_path}/issues/{number}/labels",
            {"labels": [label]},
        )

    def set_labels(self, number: int, labels: list[str]) -> None:
        self._client.rest(
            "PUT",
            f"{self._repo_path}/issues/{number}/labels",
            {"labels": list(labels)},
        )

    def remove_label(self, number: int, label: str) -> None:
        quoted = urllib.parse.quote(label, safe="")
        self._client.rest(
            "DELETE",
            f"{self._repo_path}/issues/{number}/labels/{quoted}",
            allow_missing=True,
        )

    def close_entry(
        self,
        number: int,
        *,
        completed: bool,
        lock: bool = True,
    ) -> None:
        self._client.rest(
            "PATCH",
            f"{self._repo_path}/issues/{number}",
            {
                "state": "closed",
                "state_reason": "completed" if completed else "not_planned",
            },
        )
        if lock:
            self.lock_entry(number, "resolved")

    def lock_entry(self, number: int, reason: str) -> None:
        self._client.rest(
            "PUT",
            f"{self._repo_path}/issues/{number}/lock",
            {"lock_reason": reason},
        )

    def block_identity(self, identity: str) -> None:
        self._client.rest(
            "PUT",
            f"orgs/{self._settings.owner}/blocks/{urllib.parse.quote(identity, safe='')}",
        )


class GitHubOrgRoleCheck(PrivilegedRoleCheck):
    """Privileged means an active organization membership with the configured role."""

    def __init__(self, client: GitHubClient, settings: PrivilegeSettings) -> None:
        self._client = client
        self._settings = settings

    def is_privileged(self, identity: str) -> bool:
        org = self._settings.organization
        try:
            membership = self._client.rest(
                "GET",
                f"orgs/{org}/memberships/{urllib.parse.quote(identity, safe='')}",
                allow_missing=True,
            )
        except LedgerUnavailable as exc:
            log.warning(
                "Could not check %s membership of %s; treating as unprivileged: %s",
                org,
                identity,
                exc.detail,
            )
            return False
        if not membership:
            return False
        return membership.get("state") == "active" and membership.get("role") == self._settings.role
