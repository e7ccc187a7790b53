"""Archive download and extraction helpers."""

import os
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Optional
import httpx
import structlog

from liveplug.errors import SourceMaterializeError

log = structlog.get_logger()


def _strip_member(member: tarfile.TarInfo, strip: int) -> Optional[tarfile.TarInfo]:
    parts = PurePosixPath(member.name).parts
    if len(parts) <= strip:
        return None

    stripped = PurePosixPath(*parts[strip:])
    if stripped.is_absolute() or ".." in stripped.parts:
        return None

    member.name = str(stripped)
    if member.islnk():
        link_parts = PurePosixPath(member.linkname).parts
        if len(link_parts) <= strip:
            return None
        member.linkname = str(PurePosixPath(*link_parts[strip:]))

    return member


def extract_tarball(archive: Path, destination: Path, strip: int = 1) -> None:
    """Extract an archive, dropping ``strip`` leading directory levels.

    Published packages wrap their contents in one top folder
    (``package/`` for registries, ``owner-repo-sha/`` for GitHub).

    Raises:
        SourceMaterializeError: If the archive is unreadable
    """
    log.debug("tarball_extracting", archive=str(archive), destination=str(destination))
    destination.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive, "r:*") as tf:
            members = []
            for member in tf.getmembers():
                stripped = _strip_member(member, strip)
                if stripped is not None:
                    members.append(stripped)
            tf.extractall(destination, members=members, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise SourceMaterializeError(f"Failed to extract {archive}: {e}") from e


async def download_tarball(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[dict] = None,
) -> Path:
    """Download an archive to a temporary file.

    Returns:
        Path of the downloaded file; the caller removes it

    Raises:
        SourceMaterializeError: If the download fails
    """
    fd, tmp_name = tempfile.mkstemp(suffix=".tgz", prefix="liveplug-")
    tmp_path = Path(tmp_name)

    log.debug("tarball_downloading", url=url, path=tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            async with client.stream("GET", url, headers=headers) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
    except (httpx.HTTPError, OSError) as e:
        tmp_path.unlink(missing_ok=True)
        raise SourceMaterializeError(f"Failed to download {url}: {e}") from e

    return tmp_path


async def download_and_extract(
    client: httpx.AsyncClient,
    url: str,
    destination: Path,
    headers: Optional[dict] = None,
) -> None:
    """Download an archive and extract it into ``destination``."""
    archive = await download_tarball(client, url, headers=headers)
    try:
        extract_tarball(archive, destination, strip=1)
    finally:
        archive.unlink(missing_ok=True)
