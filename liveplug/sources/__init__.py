"""Package sources.

Each source resolves an identifier to a PackageInfo and materializes the
package files into the store:

- NpmRegistrySource: npm-compatible registry (name + version/range/tag)
- GithubSource: ``owner/repo[#ref]`` references
- LocalPathSource: a directory on disk
- CodeSource: inline source text
"""

from liveplug.sources.base import PackageSource, SourceType
from liveplug.sources.code import CodeSource, NO_VERSION
from liveplug.sources.github import (
    GITHUB_API_URL,
    GithubSource,
    is_github_repo,
    parse_github_repo,
)
from liveplug.sources.local import LocalPathSource
from liveplug.sources.npm import LATEST_TAG, NpmRegistrySource

__all__ = [
    "PackageSource",
    "SourceType",
    "CodeSource",
    "NO_VERSION",
    "GITHUB_API_URL",
    "GithubSource",
    "is_github_repo",
    "parse_github_repo",
    "LocalPathSource",
    "LATEST_TAG",
    "NpmRegistrySource",
]
