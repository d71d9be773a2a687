"""Dotted app-version comparison for update gating."""

from fieldsync.config import settings


def _segments(version: str) -> list[int]:
    parts = []
    for raw in (version or "").strip().split("."):
        try:
            parts.append(int(raw))
        except ValueError:
            parts.append(0)
    return parts


def compare_versions(version1: str, version2: str) -> int:
    """Compare two dotted versions numerically per segment.

    Missing segments count as 0, so ``"2.1"`` equals ``"2.1.0"``. Returns a
    negative number, zero or a positive number like ``cmp``.
    """
    v1 = _segments(version1)
    v2 = _segments(version2)
    for i in range(max(len(v1), len(v2))):
        a = v1[i] if i < len(v1) else 0
        b = v2[i] if i < len(v2) else 0
        if a < b:
            return -1
        if a > b:
            return 1
    return 0


def should_force_update(current_version: str) -> bool:
    return compare_versions(current_version, settings.force_update_version) < 0


def should_update(current_version: str) -> bool:
    return compare_versions(current_version, settings.min_supported_version) < 0


def download_url(platform: str | None) -> str:
    if (platform or "").upper() == "IOS":
        return settings.ios_download_url
    return settings.android_download_url
