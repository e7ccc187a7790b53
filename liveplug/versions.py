"""Semantic version helpers.

Plugin manifests declare dependency ranges with the usual package-registry
syntax (``^1.2.0``, ``~1.2``, ``1.x``, ``>=1.0 <2``, ``a || b``, hyphen
ranges) as well as PEP 440 specifiers (``~=1.2``, ``==1.2.3``). Ranges are
translated into ``packaging`` specifier sets so comparisons follow a single,
well-tested implementation.
"""

import re
from typing import Iterable, Optional

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

SEMVER_PATTERN = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

_PARTIAL_PATTERN = re.compile(
    r"^v?(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?P<rest>[-+][0-9A-Za-z.+-]+)?$"
)

_OPERATOR_PATTERN = re.compile(r"^(\^|~=|~>|~|>=|<=|>|<|==|=|!=)?(.*)$")
_HYPHEN_PATTERN = re.compile(r"^(\S+)\s+-\s+(\S+)$")


def is_valid_version(version: str) -> bool:
    """Check if a string is a syntactically valid semantic version."""
    return isinstance(version, str) and bool(SEMVER_PATTERN.match(version))


def parse_version(version: str) -> Optional[Version]:
    """Parse a version string, returning None when it cannot be compared."""
    try:
        return Version(version)
    except (InvalidVersion, TypeError):
        return None


def semver_identity(version: str) -> Optional[str]:
    """Return a semantic version without its ``v`` prefix and build metadata.

    Two versions with the same identity have equal precedence.
    """
    if not is_valid_version(version):
        return None
    return version.lstrip("v").split("+", 1)[0]


def precedence_key(version: str) -> Optional[tuple]:
    """Sort key ordering versions by semantic version precedence.

    Releases sort above their prereleases; prerelease identifiers compare
    numerically when numeric and lexically otherwise, numeric first.
    Returns None for strings that are not versions.
    """
    match = SEMVER_PATTERN.match(version) if isinstance(version, str) else None
    if match:
        major, minor, patch, prerelease, _ = match.groups()
        if prerelease is None:
            return (int(major), int(minor), int(patch), True, ())
        identifiers = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in prerelease.split(".")
        )
        return (int(major), int(minor), int(patch), False, identifiers)

    parsed = parse_version(version)
    if parsed is None:
        return None
    release = (parsed.release + (0, 0))[:3]
    return (*release, not parsed.is_prerelease, ())


def _part(value: Optional[str]) -> Optional[int]:
    if value is None or value in ("x", "X", "*"):
        return None
    return int(value)


def _split_partial(text: str) -> tuple:
    match = _PARTIAL_PATTERN.match(text)
    if not match:
        raise ValueError(f"Invalid version in range: {text}")

    major = _part(match.group("major"))
    minor = _part(match.group("minor")) if major is not None else None
    patch = _part(match.group("patch")) if minor is not None else None
    return major, minor, patch, match.group("rest") or ""


def _floor(major, minor, patch, rest) -> str:
    return f"{major}.{minor or 0}.{patch or 0}{rest if patch is not None else ''}"


def _bump(major, minor) -> str:
    if minor is None:
        return f"{major + 1}.0.0"
    return f"{major}.{minor + 1}.0"


def _comparator_specs(token: str) -> list[str]:
    """Translate a single range comparator into PEP 440 specifiers."""
    operator, body = _OPERATOR_PATTERN.match(token).groups()
    operator = operator or ""

    if operator == "~=":
        return [f"~={body}"]

    major, minor, patch, rest = _split_partial(body)

    if major is None:
        # "*", "x" and friends match everything; other operators make no sense
        if operator in ("", "=", "==", ">="):
            return []
        raise ValueError(f"Invalid range comparator: {token}")

    floor = _floor(major, minor, patch, rest)
    exact = patch is not None

    if operator == "^":
        if major > 0 or minor is None:
            upper = f"{major + 1}.0.0"
        elif minor > 0 or patch is None:
            upper = f"0.{minor + 1}.0"
        else:
            upper = f"0.0.{patch + 1}"
        return [f">={floor}", f"<{upper}"]

    if operator in ("~", "~>"):
        upper = _bump(major, minor)
        return [f">={floor}", f"<{upper}"]

    if operator in ("", "=", "=="):
        if exact:
            return [f"=={floor}"]
        return [f">={floor}", f"<{_bump(major, minor)}"]

    if operator == "!=":
        if not exact:
            raise ValueError(f"Partial versions are not supported with '!=': {token}")
        return [f"!={floor}"]

    if exact:
        return [f"{operator}{floor}"]

    # Partial versions with comparison operators
    if operator == ">=":
        return [f">={floor}"]
    if operator == "<":
        return [f"<{floor}"]
    if operator == ">":
        return [f">={_bump(major, minor)}"]
    return [f"<{_bump(major, minor)}"]


class _Alternative:
    """One ``||`` branch: PEP 440 specifiers plus exact semver pins.

    Prerelease labels outside PEP 440 (``1.0.0-foo``, ``2.0.0-next.3``) have
    no ``packaging`` equivalent, so exact comparators on them are kept as
    pins and matched by semver identity.
    """

    def __init__(self, specifiers: SpecifierSet, pins: list[str]):
        self.specifiers = specifiers
        self.pins = pins

    def contains(self, version: str) -> bool:
        if self.pins:
            identity = semver_identity(version)
            if identity is None or any(pin != identity for pin in self.pins):
                return False
            if not self.specifiers:
                return True

        parsed = parse_version(version)
        return parsed is not None and self.specifiers.contains(parsed)


def _alternative_specs(alternative: str) -> _Alternative:
    alternative = re.sub(r"(\^|~=|~>|~|>=|<=|>|<|==|=|!=)\s+", r"\1", alternative.strip())

    hyphen = _HYPHEN_PATTERN.match(alternative)
    if hyphen:
        low, high = hyphen.groups()
        specs = _comparator_specs(f">={low}")
        high_major, high_minor, high_patch, high_rest = _split_partial(high)
        if high_major is None:
            pass
        elif high_patch is not None:
            specs.append(f"<={_floor(high_major, high_minor, high_patch, high_rest)}")
        else:
            specs.append(f"<{_bump(high_major, high_minor)}")
    else:
        specs = []
        for token in re.split(r"[\s,]+", alternative):
            if token:
                specs.extend(_comparator_specs(token))

    pins = []
    for spec in list(specs):
        pinned = spec[2:] if spec.startswith("==") else None
        if pinned and parse_version(pinned) is None and is_valid_version(pinned):
            pins.append(semver_identity(pinned))
            specs.remove(spec)

    try:
        return _Alternative(SpecifierSet(",".join(specs)), pins)
    except InvalidSpecifier as e:
        raise ValueError(f"Invalid version range: {alternative}") from e


class VersionRange:
    """A parsed version range.

    A range is a set of alternatives separated by ``||``; a version satisfies
    the range when it satisfies any alternative.

    Example:
        VersionRange("^1.2.0").contains("1.4.0")   # True
        VersionRange("1.x || >=3").contains("2.0.0")  # False
    """

    def __init__(self, text: str):
        if not isinstance(text, str):
            raise ValueError(f"Invalid version range: {text!r}")

        self.text = text.strip()
        self.alternatives = [
            _alternative_specs(alternative)
            for alternative in (self.text.split("||") if self.text else [""])
        ]

    def contains(self, version: str) -> bool:
        if not isinstance(version, str):
            return False
        return any(alternative.contains(version) for alternative in self.alternatives)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"VersionRange({self.text!r})"


def parse_range(text: str) -> VersionRange:
    """Parse a range string.

    Raises:
        ValueError: If the string is not a version range
    """
    return VersionRange(text)


def is_valid_range(text: str) -> bool:
    """Check if a string can be parsed as a version range."""
    try:
        parse_range(text)
    except ValueError:
        return False
    return True


def satisfies(version: str, requirement: str) -> bool:
    """Check if a version satisfies a range.

    Unparseable ranges (dist-tags, repository references) are never
    satisfied.
    """
    try:
        return parse_range(requirement).contains(version)
    except ValueError:
        return False


def max_satisfying(versions: Iterable[str], requirement: str) -> Optional[str]:
    """Return the highest version satisfying a range, or None."""
    version_range = parse_range(requirement)

    candidates = []
    for version in versions:
        key = precedence_key(version)
        if key is not None and version_range.contains(version):
            candidates.append((key, version))

    if not candidates:
        return None

    return max(candidates)[1]
