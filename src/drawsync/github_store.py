"""GitHub-backed remote file store: list, fetch and conditionally save diagram files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

import requests

from drawsync import codec, config
from drawsync.errors import (
    ConflictError,
    InvalidUrlError,
    MissingFieldError,
    RemoteStoreError,
    RepositoryNotFoundError,
)

logger = logging.getLogger(__name__)

DIAGRAM_EXTENSIONS = (".excalidraw", ".json")
BRANCHES = ("main", "master")

_REPO_URL_RE = re.compile(r"github\.com/([^/]+)/([^/?#]+)")


@dataclass
class RemoteFile:
    path: str
    fetch_ref: str
    content_hash: str


@dataclass
class RemoteFileHandle:
    """Where the current document came from; ``content_hash`` is None for a new path."""

    repo_url: str
    path: str
    content_hash: str | None = None


@dataclass
class SaveResult:
    new_content_hash: str
    commit_sha: str


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Return (owner, repo) from a github.com URL."""
    match = _REPO_URL_RE.search(repo_url or "")
    if not match:
        raise InvalidUrlError("Invalid GitHub URL")
    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return owner, repo


def is_diagram_path(path: str) -> bool:
    return path.endswith(DIAGRAM_EXTENSIONS)


class GitHubStore:
    """Client for the GitHub trees and contents APIs."""

    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self._api_url = (api_url or config.GITHUB_API_URL).rstrip("/")
        self._token = token or ""
        self._session = session or requests.Session()
        self._timeout = timeout if timeout is not None else config.UPSTREAM_TIMEOUT

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        token = token or self._token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _contents_url(self, owner: str, repo: str, path: str) -> str:
        return f"{self._api_url}/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'))}"

    # ── Listing ──

    def list_candidate_files(self, repo_url: str) -> list[RemoteFile]:
        """List diagram files on the main branch, falling back to master.

        Raises:
            InvalidUrlError: URL is not a github.com repository URL.
            RepositoryNotFoundError: neither branch could be listed.
        """
        owner, repo = parse_repo_url(repo_url)
        data = None
        for branch in BRANCHES:
            url = f"{self._api_url}/repos/{owner}/{repo}/git/trees/{branch}"
            try:
                resp = self._session.get(
                    url, params={"recursive": "1"}, headers=self._headers(), timeout=self._timeout,
                )
            except requests.RequestException as e:
                logger.warning("Tree lookup %s/%s@%s failed: %s", owner, repo, branch, e)
                continue
            if resp.ok:
                data = _json_body(resp, "tree listing")
                logger.info("Listed %s/%s on branch %s", owner, repo, branch)
                break
            logger.info("Tree lookup %s/%s@%s returned %d", owner, repo, branch, resp.status_code)

        if data is None:
            raise RepositoryNotFoundError(
                "Failed to fetch repository files. Check URL or rate limits.", status=404,
            )

        files = [
            RemoteFile(path=entry["path"], fetch_ref=entry.get("url", ""), content_hash=entry.get("sha", ""))
            for entry in data.get("tree", [])
            if entry.get("type", "blob") == "blob" and is_diagram_path(entry.get("path", ""))
        ]
        if data.get("truncated"):
            logger.warning("Tree listing for %s/%s was truncated by the server", owner, repo)
        return files

    # ── Fetch ──

    def fetch_file(self, fetch_ref: str) -> str:
        """Fetch one file by its blob URL and decode it to text."""
        try:
            resp = self._session.get(fetch_ref, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as e:
            raise RemoteStoreError(f"Failed to load file: {e}") from e
        if not resp.ok:
            raise RemoteStoreError(
                f"Failed to fetch file content ({resp.status_code})", status=resp.status_code,
            )
        return codec.decode_content(_json_body(resp, "file content").get("content", ""))

    # ── Save ──

    def lookup_content_hash(self, owner: str, repo: str, path: str, token: str) -> str | None:
        """Best-effort lookup of the current hash at ``path``; None means a new file."""
        try:
            resp = self._session.get(
                self._contents_url(owner, repo, path), headers=self._headers(token), timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.debug("Hash lookup for %s failed, assuming new file: %s", path, e)
            return None
        if not resp.ok:
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.debug("Hash lookup for %s returned a non-JSON body, assuming new file", path)
            return None
        if isinstance(data, dict):
            return data.get("sha")
        return None

    def save_file(
        self,
        repo_url: str,
        path: str,
        raw_text: str,
        commit_message: str,
        auth_token: str,
        known_content_hash: str | None = None,
        known_path: str | None = None,
    ) -> SaveResult:
        """Create or update ``path`` with optimistic concurrency on the content hash.

        The hash lookup and the write are separate requests; a commit landing
        between them is only caught by the server-side sha check.

        Raises:
            MissingFieldError: token, path, message or repo URL is missing.
            ConflictError: the server rejected the write because the hash is stale.
            RemoteStoreError: any other failure.
        """
        if not (auth_token and path and commit_message and repo_url):
            raise MissingFieldError("Missing fields (Token, Path, Message, or Repo URL)")
        owner, repo = parse_repo_url(repo_url)

        sha = known_content_hash
        if not sha or (known_path is not None and path != known_path):
            sha = self.lookup_content_hash(owner, repo, path, auth_token)

        body = {"message": commit_message, "content": codec.encode_content(raw_text)}
        if sha:
            body["sha"] = sha

        logger.info("Saving %s/%s:%s (sha=%s)", owner, repo, path, (sha or "new")[:7])
        try:
            resp = self._session.put(
                self._contents_url(owner, repo, path),
                json=body,
                headers=self._headers(auth_token),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise RemoteStoreError(f"Failed to save: {e}") from e

        if resp.status_code == 409 or (resp.status_code == 422 and sha):
            raise ConflictError(
                f"{path} was changed remotely since it was loaded; reload before saving",
                status=resp.status_code,
            )
        if not resp.ok:
            raise RemoteStoreError(_error_message(resp) or "Failed to save", status=resp.status_code)

        data = _json_body(resp, "save response")
        result = SaveResult(
            new_content_hash=(data.get("content") or {}).get("sha", ""),
            commit_sha=(data.get("commit") or {}).get("sha", ""),
        )
        logger.info("Saved %s, commit %s", path, result.commit_sha[:7])
        return result


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    return data.get("message", "") if isinstance(data, dict) else ""


def _json_body(resp: requests.Response, what: str) -> dict:
    """Decode a JSON object body, raising RemoteStoreError for anything else."""
    try:
        data = resp.json()
    except ValueError as e:
        raise RemoteStoreError(f"Unreadable {what} from GitHub: {e}", status=resp.status_code) from e
    if not isinstance(data, dict):
        raise RemoteStoreError(f"Unexpected {what} from GitHub", status=resp.status_code)
    return data
