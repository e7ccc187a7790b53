"""npm-compatible package registry source."""

from pathlib import Path
from typing import Optional
from urllib.parse import quote
import httpx
import structlog

from liveplug.errors import SourceMaterializeError, SourceResolutionError
from liveplug.manifest import PackageInfo
from liveplug.sources.base import PackageSource, SourceType
from liveplug.sources.tarball import download_and_extract
from liveplug.versions import max_satisfying

log = structlog.get_logger()

LATEST_TAG = "latest"


class NpmRegistrySource(PackageSource):
    """Resolves packages against an npm-compatible JSON registry.

    The registry document of a package (``GET {url}/{name}``) lists
    ``dist-tags`` and ``versions``; each version entry is the package
    manifest plus a ``dist.tarball`` URL.
    """

    type = SourceType.REGISTRY

    def __init__(
        self,
        registry_url: str,
        token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.registry_url = registry_url.rstrip("/")
        self.token = token
        self.username = username
        self.password = password
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        auth = None
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        elif self.username and self.password:
            auth = httpx.BasicAuth(self.username, self.password)

        return httpx.AsyncClient(
            headers=headers,
            auth=auth,
            timeout=self.timeout,
            transport=self.transport,
            follow_redirects=True,
        )

    def package_url(self, name: str) -> str:
        # Scoped names are requested as @scope%2Fname
        return f"{self.registry_url}/{quote(name, safe='@')}"

    async def fetch_document(self, name: str) -> dict:
        """Fetch the registry document of a package.

        Raises:
            SourceResolutionError: On network errors or unknown packages
        """
        url = self.package_url(name)
        log.debug("registry_fetching", name=name, url=url)

        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise SourceResolutionError(f"Failed to get package '{name}': {e}") from e

        if response.status_code == 404:
            raise SourceResolutionError(f"Package '{name}' not found in {self.registry_url}")
        if response.status_code >= 400:
            raise SourceResolutionError(
                f"Failed to get package '{name}': HTTP {response.status_code}"
            )

        try:
            document = response.json()
        except ValueError as e:
            raise SourceResolutionError(f"Invalid registry response for '{name}': {e}") from e

        if not isinstance(document, dict):
            raise SourceResolutionError(f"Invalid registry response for '{name}'")
        return document

    async def resolve(self, identifier: str, version: Optional[str] = None) -> PackageInfo:
        version = version or LATEST_TAG
        document = await self.fetch_document(identifier)

        dist_tags = document.get("dist-tags") or {}
        versions = document.get("versions") or {}

        if version in dist_tags:
            concrete = dist_tags[version]
        elif version in versions:
            concrete = version
        else:
            try:
                concrete = max_satisfying(versions.keys(), version)
            except ValueError as e:
                raise SourceResolutionError(
                    f"Invalid version '{version}' for package '{identifier}'"
                ) from e

        if not concrete or concrete not in versions:
            raise SourceResolutionError(
                f"Failed to find version '{version}' of package '{identifier}'"
            )

        info = PackageInfo.from_dict(versions[concrete], f"{identifier}@{concrete}")
        log.debug("registry_resolved", name=info.name, version=info.version, requested=version)
        return info

    async def materialize(self, info: PackageInfo, destination: Path) -> None:
        tarball = info.dist.get("tarball")
        if not tarball:
            raise SourceMaterializeError(
                f"Package {info.name}@{info.version} has no tarball to download"
            )

        async with self._client() as client:
            await download_and_extract(client, tarball, destination)

        log.info("registry_materialized", name=info.name, version=info.version)
