"""GitHub repository source.

Repositories are referenced as ``owner/repo`` with an optional ``#ref``
(branch, tag or commit), e.g. ``acme/weather-plugin#v1.2.0``. The manifest
is read through the contents API so nothing is cloned to resolve a
version.
"""

import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote
import httpx
import structlog

from liveplug.errors import SourceMaterializeError, SourceResolutionError
from liveplug.manifest import MANIFEST_FILE, PackageInfo
from liveplug.sources.base import PackageSource, SourceType
from liveplug.sources.tarball import download_and_extract

log = structlog.get_logger()

GITHUB_API_URL = "https://api.github.com"

GITHUB_REPO_PATTERN = re.compile(
    r"^(?:github:)?(?P<owner>[A-Za-z0-9][A-Za-z0-9-]*)/(?P<repo>[A-Za-z0-9_.-]+?)"
    r"(?:\.git)?(?:#(?P<ref>[^\s#]+))?$"
)


def is_github_repo(reference: Optional[str]) -> bool:
    """Check if a string is a GitHub repository reference."""
    return isinstance(reference, str) and bool(GITHUB_REPO_PATTERN.match(reference.strip()))


def parse_github_repo(reference: str) -> tuple[str, str, Optional[str]]:
    """Split a repository reference into (owner, repo, ref).

    Raises:
        SourceResolutionError: If the reference is not a GitHub repository
    """
    match = GITHUB_REPO_PATTERN.match(reference.strip()) if isinstance(reference, str) else None
    if not match:
        raise SourceResolutionError(f"Invalid GitHub repository reference '{reference}'")
    return match.group("owner"), match.group("repo"), match.group("ref")


class GithubSource(PackageSource):
    """Resolves and downloads plugins hosted on GitHub."""

    type = SourceType.GITHUB

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"User-Agent": "liveplug"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"

        return httpx.AsyncClient(
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
            follow_redirects=True,
        )

    def contents_url(self, owner: str, repo: str) -> str:
        return f"{self.api_url}/repos/{owner}/{repo}/contents/{MANIFEST_FILE}"

    def tarball_url(self, owner: str, repo: str, ref: Optional[str]) -> str:
        url = f"{self.api_url}/repos/{owner}/{repo}/tarball"
        if ref:
            url += "/" + quote(ref, safe="")
        return url

    async def resolve(self, identifier: str, version: Optional[str] = None) -> PackageInfo:
        owner, repo, ref = parse_github_repo(identifier)
        params = {"ref": ref} if ref else None

        log.debug("github_fetching_manifest", owner=owner, repo=repo, ref=ref)
        try:
            async with self._client() as client:
                response = await client.get(
                    self.contents_url(owner, repo),
                    params=params,
                    headers={"Accept": "application/vnd.github.raw+json"},
                )
        except httpx.HTTPError as e:
            raise SourceResolutionError(f"Failed to get GitHub repository '{identifier}': {e}") from e

        if response.status_code == 404:
            raise SourceResolutionError(
                f"Repository '{identifier}' not found or has no {MANIFEST_FILE}"
            )
        if response.status_code >= 400:
            raise SourceResolutionError(
                f"Failed to get GitHub repository '{identifier}': HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SourceResolutionError(f"Invalid {MANIFEST_FILE} in '{identifier}': {e}") from e

        info = PackageInfo.from_dict(data, identifier)
        info.dist = {
            "tarball": self.tarball_url(owner, repo, ref),
            "repository": f"{owner}/{repo}",
            "ref": ref,
        }
        log.debug("github_resolved", name=info.name, version=info.version, repository=identifier)
        return info

    async def materialize(self, info: PackageInfo, destination: Path) -> None:
        tarball = info.dist.get("tarball")
        if not tarball:
            raise SourceMaterializeError(f"Package {info.name} has no GitHub tarball")

        async with self._client() as client:
            await download_and_extract(client, tarball, destination)

        log.info(
            "github_materialized",
            name=info.name,
            version=info.version,
            repository=info.dist.get("repository"),
        )
