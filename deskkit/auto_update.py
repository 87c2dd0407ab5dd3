"""Check a repository's published releases for a newer version, then download and launch it."""

from __future__ import annotations

import logging
import os
import re
import stat
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

import httpx

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
_NUMBER = re.compile(r"\+?[0-9]+")
_U32_MAX = 2**32 - 1

ProgressCallback = Callable[[int, int], None]


class UpdateError(Exception):
    """Base class for errors raised while checking for or installing updates."""


class NoUpdateAvailableError(UpdateError):
    """There is no newer release to report or install."""

    def __init__(self) -> None:
        super().__init__("No update available")


class InvalidVersionError(UpdateError):
    """A version string is not a dotted list of numbers."""

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(f"Invalid version: {version}")


class NoPlatformDownloadError(UpdateError):
    """The release has no downloadable asset."""

    def __init__(self) -> None:
        super().__init__("No download available for current platform")


class DownloadFailedError(UpdateError):
    """The installer could not be downloaded."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Download failed: {detail}")


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string or null")
    return value


def _required(data: Mapping[str, Any], key: str, kind: type) -> Any:
    if key not in data:
        raise ValueError(f"missing '{key}'")
    value = data[key]
    if not isinstance(value, kind):
        raise ValueError(f"'{key}' has the wrong type")
    return value


@dataclass(frozen=True)
class ReleaseAsset:
    """A file attached to a release."""

    name: str
    browser_download_url: str


@dataclass(frozen=True)
class Release:
    """A published release and its assets."""

    tag_name: str
    html_url: str
    assets: tuple[ReleaseAsset, ...]
    prerelease: bool
    name: str | None = None
    body: str | None = None
    published_at: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Release:
        """Build from the decoded JSON of a release; raise ValueError if it is malformed."""
        if not isinstance(data, Mapping):
            raise ValueError("release must be a JSON object")
        assets = []
        for item in _required(data, "assets", list):
            if not isinstance(item, Mapping):
                raise ValueError("asset must be a JSON object")
            assets.append(
                ReleaseAsset(
                    name=_required(item, "name", str),
                    browser_download_url=_required(item, "browser_download_url", str),
                )
            )
        return cls(
            tag_name=_required(data, "tag_name", str),
            html_url=_required(data, "html_url", str),
            assets=tuple(assets),
            prerelease=_required(data, "prerelease", bool),
            name=_optional_str(data, "name"),
            body=_optional_str(data, "body"),
            published_at=_optional_str(data, "published_at"),
        )


@dataclass(frozen=True)
class ReleaseInfo:
    """What a caller needs to present and install an update."""

    version: str
    release_notes: str
    download_url: str
    published_at: str | None
    html_url: str


def _parse_version(version: str) -> tuple[int, ...]:
    parts = []
    for piece in version.split("."):
        if not _NUMBER.fullmatch(piece):
            raise InvalidVersionError(version)
        number = int(piece)
        if number > _U32_MAX:
            raise InvalidVersionError(version)
        parts.append(number)
    return tuple(parts)


def compare_versions(newer: str, older: str) -> bool:
    """Return whether ``newer`` is a strictly higher dotted version than ``older``."""
    return _parse_version(newer) > _parse_version(older)


def _current_platform() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def platform_patterns(platform: str | None = None) -> list[str]:
    """Return lower-case name fragments that mark an asset as built for a platform."""
    platform = platform or _current_platform()
    if platform == "windows":
        return [".exe", "windows", "win64", "win32"]
    if platform == "macos":
        return [".dmg", ".app", "macos", "darwin", "osx"]
    return [".appimage", "linux", ".deb", ".rpm"]


def select_download_url(release: Release, patterns: Iterable[str] | None = None) -> str:
    """Pick the asset matching a platform pattern, falling back to the first asset."""
    wanted: Sequence[str] = list(patterns) if patterns is not None else platform_patterns()
    for asset in release.assets:
        name = asset.name.lower()
        if any(pattern in name for pattern in wanted):
            return asset.browser_download_url
    if release.assets:
        return release.assets[0].browser_download_url
    raise NoPlatformDownloadError()


class AutoUpdater:
    """Finds, downloads and launches newer releases of an application."""

    def __init__(
        self,
        current_version: str,
        github_repo: str,
        prerelease: bool = False,
        github_token: str | None = None,
        api_base: str = GITHUB_API,
    ) -> None:
        self.current_version = current_version
        self.github_repo = github_repo
        self.prerelease = prerelease
        self.github_token = github_token
        self.api_base = api_base.rstrip("/")
        self.platform = _current_platform()
        self.latest_release: Release | None = None

    def __repr__(self) -> str:
        return f"AutoUpdater(current_version={self.current_version!r}, github_repo={self.github_repo!r})"

    async def _fetch_latest_release(self) -> Release:
        suffix = "releases" if self.prerelease else "releases/latest"
        url = f"{self.api_base}/repos/{self.github_repo}/{suffix}"
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.github_token is not None:
            headers["Authorization"] = f"token {self.github_token}"
        try:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.get(url, headers=headers)
            data = response.json()
        except httpx.HTTPError as exc:
            raise UpdateError(f"Release request failed: {exc}") from exc
        except ValueError as exc:
            raise UpdateError(f"Release response is not JSON: {exc}") from exc
        try:
            if self.prerelease:
                if not isinstance(data, list):
                    raise ValueError("release list must be a JSON array")
                if not data:
                    raise NoUpdateAvailableError()
                return Release.from_dict(data[0])
            return Release.from_dict(data)
        except ValueError as exc:
            raise UpdateError(f"Invalid release data: {exc}") from exc

    async def check_for_update(self) -> bool:
        """Fetch the latest release; return True and remember it if it is newer."""
        release = await self._fetch_latest_release()
        latest = release.tag_name.lstrip("v")
        current = self.current_version.lstrip("v")
        if compare_versions(latest, current):
            self.latest_release = release
            logger.info("Update available: %s -> %s", current, latest)
            return True
        logger.info("Current version %s is up to date", current)
        return False

    def _require_release(self) -> Release:
        if self.latest_release is None:
            raise NoUpdateAvailableError()
        return self.latest_release

    def get_update_info(self) -> ReleaseInfo:
        """Describe the update found by the last successful check."""
        release = self._require_release()
        return ReleaseInfo(
            version=release.tag_name.lstrip("v"),
            release_notes=release.body or "",
            download_url=select_download_url(release, platform_patterns(self.platform)),
            published_at=release.published_at,
            html_url=release.html_url,
        )

    async def download(
        self,
        on_progress: ProgressCallback | None = None,
        directory: str | os.PathLike[str] | None = None,
    ) -> Path:
        """Download the update's installer and return where it was saved."""
        release = self._require_release()
        url = select_download_url(release, platform_patterns(self.platform))
        target_dir = Path(directory) if directory is not None else Path(tempfile.gettempdir())
        path = target_dir / (url.rsplit("/", 1)[-1] or "update")
        logger.info("Downloading update from %s", url)
        try:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise DownloadFailedError(f"HTTP {response.status_code}")
                    total = int(response.headers.get("content-length", 0) or 0)
                    downloaded = 0
                    with path.open("wb") as handle:
                        async for chunk in response.aiter_bytes():
                            handle.write(chunk)
                            downloaded += len(chunk)
                            if on_progress is not None:
                                on_progress(downloaded, total)
        except httpx.HTTPError as exc:
            raise DownloadFailedError(str(exc)) from exc
        logger.info("Downloaded to: %s", path)
        return path

    def _launch_installer(self, path: Path) -> None:
        if self.platform == "windows":
            subprocess.Popen([str(path)])
        elif self.platform == "macos":
            subprocess.Popen(["open", str(path)])
        elif self.platform == "linux":
            mode = path.stat().st_mode
            path.chmod(mode | stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH)
            subprocess.Popen([str(path)])

    async def download_and_install(self, on_progress: ProgressCallback | None = None) -> None:
        """Download the installer, start it and exit the application."""
        path = await self.download(on_progress)
        logger.info("Launching installer...")
        self._launch_installer(path)
        logger.info("Exiting for update installation")
        sys.exit(0)