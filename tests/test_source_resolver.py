from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest

from streamverse_ingest.domain.errors import TransferValidationError
from streamverse_ingest.domain.source_resolver import (
    DEFAULT_OBJECT_NAME,
    build_request,
    derive_destination_name,
    ensure_video_extension,
    parse_content_disposition_filename,
    requires_credential,
    resolve,
    resolve_content_type,
    sanitize_object_name,
    validate_source_url,
)
from streamverse_ingest.domain.sources import (
    SourceCredential,
    SourceKind,
    SourceProbe,
    TransferSource,
)


@pytest.mark.parametrize("url", ["ftp://example.com/a.mp4", "file:///etc/passwd", "not a url", ""])
def test_validate_rejects_non_http_urls(url: str) -> None:
    with pytest.raises(TransferValidationError, match="Only HTTP and HTTPS"):
        validate_source_url(url)


def test_validate_strips_whitespace() -> None:
    url = validate_source_url("  https://cdn.example.com/a.mp4 ")

    assert url == "https://cdn.example.com/a.mp4"


def test_google_drive_file_link_becomes_direct_download() -> None:
    resolved = resolve("https://drive.google.com/file/d/AbC_123-x/view?usp=sharing")

    assert resolved.direct_url == (
        "https://drive.google.com/uc?export=download&id=AbC_123-x&confirm=t"
    )
    assert resolved.service_label == "Google Drive"
    assert resolved.requires_credential is True


def test_google_drive_open_id_link_becomes_direct_download() -> None:
    resolved = resolve("https://drive.google.com/open?id=FILE42")

    assert "id=FILE42" in resolved.direct_url
    assert resolved.direct_url.startswith("https://drive.google.com/uc?export=download")


def test_dropbox_link_forces_download() -> None:
    resolved = resolve("https://www.dropbox.com/s/abc/clip.mp4?dl=0")

    assert parse_qs(urlparse(resolved.direct_url).query)["dl"] == ["1"]
    assert resolved.service_label == "Dropbox"
    assert resolved.requires_credential is False


def test_onedrive_short_link_forces_download() -> None:
    resolved = resolve("https://1drv.ms/v/s!Abc123")

    assert urlparse(resolved.direct_url).query == "download=1"
    assert resolved.service_label == "OneDrive"


def test_github_blob_link_uses_raw_host() -> None:
    resolved = resolve("https://github.com/org/repo/blob/main/media/clip.mp4")

    assert resolved.direct_url == "https://raw.githubusercontent.com/org/repo/main/media/clip.mp4"


def test_box_shared_link_uses_static_path() -> None:
    resolved = resolve("https://app.box.com/s/xyz789")

    assert resolved.direct_url == "https://app.box.com/shared/static/xyz789"


@pytest.mark.parametrize(
    "url",
    [
        "https://evildropbox.com/s/abc/clip.mp4",
        "https://notbox.com/s/xyz789",
        "https://fakemediafire.com/file/abc/clip.mp4",
    ],
)
def test_lookalike_hosts_are_not_rewritten(url: str) -> None:
    resolved = resolve(url)

    assert resolved.direct_url == url
    assert resolved.service_label is None


def test_plain_url_is_unchanged() -> None:
    resolved = resolve("https://cdn.example.com/videos/clip.webm")

    assert resolved.direct_url == "https://cdn.example.com/videos/clip.webm"
    assert resolved.service_label is None
    assert resolved.requires_credential is False


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://lh3.googleusercontent.com/v/x", True),
        ("https://rr1---sn-abc.googlevideo.com/videoplayback", True),
        ("https://www.youtube.com/watch?v=1", True),
        ("https://docs.google.com/uc?id=1", True),
        ("https://notyoutube.com/video.mp4", False),
        ("https://cdn.example.com/video.mp4", False),
    ],
)
def test_credential_gated_hosts(url: str, expected: bool) -> None:
    assert requires_credential(url) is expected


def test_bearer_token_on_drive_file_uses_drive_api() -> None:
    resolved = resolve("https://drive.google.com/file/d/FILE1/view")
    url, headers = build_request(resolved, SourceCredential(bearer_token="tok"))

    assert url == "https://www.googleapis.com/drive/v3/files/FILE1?alt=media"
    assert headers["Authorization"] == "Bearer tok"


def test_cookies_are_forwarded_as_cookie_header() -> None:
    resolved = resolve("https://www.youtube.com/watch?v=1")
    url, headers = build_request(resolved, SourceCredential(cookies="SID=abc"))

    assert url == resolved.direct_url
    assert headers == {"Cookie": "SID=abc"}


def test_no_credential_means_no_extra_headers() -> None:
    resolved = resolve("https://cdn.example.com/a.mp4")

    assert build_request(resolved, None) == ("https://cdn.example.com/a.mp4", {})


def test_transfer_source_capabilities_follow_resolution() -> None:
    gated = TransferSource.for_resolved(resolve("https://drive.google.com/file/d/X/view"))
    direct = TransferSource.for_resolved(
        resolve("https://cdn.example.com/a.mp4"),
        SourceProbe(reachable=True, total_bytes=10),
    )

    assert gated.kind is SourceKind.CREDENTIALED_HTTP
    assert gated.requires_credential is True
    assert gated.supports_server_side_fetch is False
    assert direct.kind is SourceKind.DIRECT_HTTP
    assert direct.supports_server_side_fetch is True
    assert direct.has_known_length is True


def test_destination_name_prefers_custom_name_and_adds_type_extension() -> None:
    name = derive_destination_name(
        url="https://cdn.example.com/ignored.mp4",
        custom_name="My Holiday",
        content_disposition_filename="other.mov",
        content_type="video/webm",
    )

    assert name == "My_Holiday.webm"


def test_destination_name_falls_back_to_content_disposition_then_path() -> None:
    from_header = derive_destination_name(
        url="https://cdn.example.com/download",
        content_disposition_filename="talk.mkv",
    )
    from_path = derive_destination_name(url="https://cdn.example.com/media/talk.mov?x=1")

    assert from_header == "talk.mkv"
    assert from_path == "talk.mov"


def test_destination_name_defaults_when_nothing_usable() -> None:
    assert derive_destination_name(url="https://cdn.example.com/") == DEFAULT_OBJECT_NAME
    assert derive_destination_name(url="https://cdn.example.com/...") == DEFAULT_OBJECT_NAME


def test_sanitize_replaces_unsafe_characters_and_leading_dots() -> None:
    assert sanitize_object_name("../etc/pass wd.mp4") == "_etc_pass_wd.mp4"
    assert sanitize_object_name(".hidden.mp4") == "hidden.mp4"


def test_unrecognized_extension_gets_mp4() -> None:
    assert ensure_video_extension("clip.bin") == "clip.bin.mp4"
    assert ensure_video_extension("clip.MOV") == "clip.MOV"


def test_content_type_resolution() -> None:
    assert resolve_content_type("video/webm; codecs=vp9", "a.mp4") == "video/webm"
    assert resolve_content_type("application/octet-stream", "a.mov") == "video/quicktime"
    assert resolve_content_type(None, "a.unknown") == "video/mp4"


def test_content_disposition_parsing() -> None:
    header = 'attachment; filename="clip one.mp4"'
    assert parse_content_disposition_filename(header) == "clip one.mp4"
    assert (
        parse_content_disposition_filename("attachment; filename*=UTF-8''caf%C3%A9.mp4")
        == "café.mp4"
    )
    assert parse_content_disposition_filename("inline") is None
    assert parse_content_disposition_filename(None) is None
