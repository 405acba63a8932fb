"""
Minimal semantic versioning for model releases.

Only MAJOR.MINOR.PATCH is supported; prerelease and build metadata are not.
Parsing failures are reported as ``None`` rather than exceptions because
version parsing sits on sorting and comparison hot paths.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

# Shown by the tooling when the installed version of a model cannot be determined.
UNKNOWN_VERSION = "(unknown)"


class SemVer(NamedTuple):
    major: int
    minor: int
    patch: int

    @classmethod
    def try_parse(cls, text: Optional[str]) -> Optional["SemVer"]:
        """
        Parse "MAJOR.MINOR.PATCH".

        Exactly three dot-separated components made of ASCII digits are
        required; anything else returns None.
        """
        if not text:
            return None
        parts = text.split(".")
        if len(parts) != 3:
            return None
        if not all(part.isascii() and part.isdigit() for part in parts):
            return None
        return cls(int(parts[0]), int(parts[1]), int(parts[2]))

    def bump_major(self) -> "SemVer":
        return SemVer(self.major + 1, 0, 0)

    def bump_minor(self) -> "SemVer":
        return SemVer(self.major, self.minor + 1, 0)

    def bump_patch(self) -> "SemVer":
        return SemVer(self.major, self.minor, self.patch + 1)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def is_valid_version(text: Optional[str]) -> bool:
    return SemVer.try_parse(text) is not None


def needs_upgrade(local_version: Optional[str], remote_version: Optional[str]) -> bool:
    """
    Return True if the remote version is newer than the local one.

    An unknown local version never reports an upgrade: a false "update
    available" is worse than a missed one.
    """
    if not remote_version:
        return False
    if not local_version or local_version == UNKNOWN_VERSION:
        return False

    local = SemVer.try_parse(local_version)
    remote = SemVer.try_parse(remote_version)
    if local is not None and remote is not None:
        return remote > local

    return local_version.casefold() != remote_version.casefold()


def sort_versions_descending(versions) -> list:
    """
    Sort version strings newest first. Unparseable versions go last, ordered
    case-insensitively descending among themselves.
    """
    valid = [v for v in versions if SemVer.try_parse(v) is not None]
    invalid = [v for v in versions if SemVer.try_parse(v) is None]
    valid.sort(key=SemVer.try_parse, reverse=True)
    invalid.sort(key=lambda v: (v or "").casefold(), reverse=True)
    return valid + invalid


def describe_update(local_version: str, remote_version: str) -> str:
    """Human-readable description of the step between two versions."""
    local = SemVer.try_parse(local_version)
    remote = SemVer.try_parse(remote_version)
    if local is not None and remote is not None:
        if remote.major > local.major:
            return f"Major update available: {local_version} → {remote_version}"
        if remote.minor > local.minor:
            return f"Minor update available: {local_version} → {remote_version}"
        if remote.patch > local.patch:
            return f"Patch update available: {local_version} → {remote_version}"
    return f"Update available: {local_version} → {remote_version}"
