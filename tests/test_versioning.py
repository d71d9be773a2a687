from fieldsync.config import settings
from fieldsync.utils.versioning import (
    compare_versions,
    download_url,
    should_force_update,
    should_update,
)


def test_compare_versions_is_numeric_per_segment():
    assert compare_versions("2.9.0", "2.10.0") < 0
    assert compare_versions("2.10.0", "2.9.0") > 0


def test_compare_versions_pads_missing_segments():
    assert compare_versions("2.1", "2.1.0") == 0
    assert compare_versions("3", "2.99.99") > 0


def test_compare_versions_treats_garbage_segments_as_zero():
    assert compare_versions("1.x.3", "1.0.3") == 0


def test_update_flags_follow_configured_floors():
    assert settings.force_update_version == "2.0.0"
    assert settings.min_supported_version == "3.0.0"

    assert should_force_update("1.9.9") is True
    assert should_force_update("2.0.0") is False
    assert should_update("2.5.0") is True
    assert should_update("3.0.0") is False


def test_download_url_by_platform():
    assert download_url("IOS") == settings.ios_download_url
    assert download_url("ios") == settings.ios_download_url
    assert download_url("ANDROID") == settings.android_download_url
    assert download_url(None) == settings.android_download_url
