"""Share-link normalization, credential classification, and object naming.

Every entry point (URL imports, browser uploads, remote agents) goes through
these functions so that link rewriting and filename sanitation stay in one
place. Nothing here performs I/O.
"""

from __future__ import annotations

import mimetypes
import re
from urllib.parse import parse_qs, unquote, urlencode, urlparse, urlunparse

from streamverse_ingest.domain.errors import TransferValidationError
from streamverse_ingest.domain.sources import ResolvedSource, SourceCredential

DEFAULT_VIDEO_EXTENSION = "mp4"
DEFAULT_VIDEO_CONTENT_TYPE = "video/mp4"
DEFAULT_OBJECT_NAME = "imported-video.mp4"

VIDEO_EXTENSIONS = frozenset(
    {
        "3gp",
        "avi",
        "flv",
        "m2ts",
        "m4v",
        "mkv",
        "mov",
        "mp4",
        "mpeg",
        "mpg",
        "ogv",
        "ts",
        "webm",
        "wmv",
    }
)

_CONTENT_TYPE_EXTENSIONS = {
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
    "video/x-matroska": "mkv",
    "video/x-msvideo": "avi",
    "video/x-flv": "flv",
    "video/x-ms-wmv": "wmv",
    "video/mpeg": "mpg",
    "video/ogg": "ogv",
    "video/3gpp": "3gp",
    "video/mp2t": "ts",
}

CREDENTIAL_GATED_DOMAINS = (
    "googleusercontent.com",
    "googlevideo.com",
    "youtube.com",
    "drive.google.com",
    "docs.google.com",
)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_DRIVE_FILE_PATH = re.compile(r"/file/d/([A-Za-z0-9_-]+)")
_DRIVE_ID_SEGMENT = re.compile(r"/d/([A-Za-z0-9_-]+)")
_DRIVE_ID_VALUE = re.compile(r"^[A-Za-z0-9_-]+$")
_CONTENT_DISPOSITION_FILENAME_STAR = re.compile(r"filename\*\s*=\s*[^']*'[^']*'([^;]+)", re.I)
_CONTENT_DISPOSITION_FILENAME = re.compile(r'filename\s*=\s*"?([^";]+)"?', re.I)


def validate_source_url(url: str) -> str:
    """Return a stripped http(s) URL or raise a validation error."""

    candidate = url.strip()
    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise TransferValidationError("Only HTTP and HTTPS URLs are supported.")
    return candidate


def resolve(url: str) -> ResolvedSource:
    """Normalize known share links into directly fetchable URLs."""

    source_url = validate_source_url(url)
    direct_url, service_label = _rewrite_share_link(source_url)
    return ResolvedSource(
        original_url=source_url,
        direct_url=direct_url,
        service_label=service_label,
        requires_credential=requires_credential(direct_url) or requires_credential(source_url),
    )


def requires_credential(url: str) -> bool:
    """Return whether the URL host gates content behind caller session material."""

    host = (urlparse(url).hostname or "").lower()
    return _host_matches(host, *CREDENTIAL_GATED_DOMAINS)


def _host_matches(host: str, *domains: str) -> bool:
    """True when `host` is one of `domains` or a subdomain of one."""

    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


def build_request(
    resolved: ResolvedSource,
    credential: SourceCredential | None = None,
) -> tuple[str, dict[str, str]]:
    """Return the fetch URL and extra headers for a resolved source."""

    headers: dict[str, str] = {}
    url = resolved.direct_url
    if credential is None or credential.is_empty:
        return url, headers

    headers.update(credential.headers)
    if credential.bearer_token:
        drive_file_id = _drive_file_id(resolved.original_url)
        if drive_file_id is not None:
            url = f"https://www.googleapis.com/drive/v3/files/{drive_file_id}?alt=media"
        headers["Authorization"] = f"Bearer {credential.bearer_token}"
    elif credential.cookies:
        headers["Cookie"] = credential.cookies
    return url, headers


def sanitize_object_name(name: str) -> str:
    """Restrict a name to letters, digits, dot, dash, underscore."""

    sanitized = _UNSAFE_NAME_CHARS.sub("_", name.strip()).lstrip(".")
    return sanitized


def derive_destination_name(
    *,
    url: str,
    custom_name: str | None = None,
    content_disposition_filename: str | None = None,
    content_type: str | None = None,
) -> str:
    """Pick, sanitize, and extension-fix the destination object name."""

    custom = (custom_name or "").strip()
    if custom:
        if "." not in custom:
            custom = f"{custom}.{_extension_for_content_type(content_type)}"
        candidate = custom
    elif content_disposition_filename:
        candidate = content_disposition_filename
    else:
        candidate = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]

    sanitized = sanitize_object_name(candidate)
    if not sanitized or not sanitized.strip("._-"):
        return DEFAULT_OBJECT_NAME
    return ensure_video_extension(sanitized)


def ensure_video_extension(name: str) -> str:
    """Append the default extension unless the name ends in a known one."""

    _, dot, extension = name.rpartition(".")
    if dot and extension.lower() in VIDEO_EXTENSIONS:
        return name
    return f"{name}.{DEFAULT_VIDEO_EXTENSION}"


def resolve_content_type(content_type: str | None, object_name: str) -> str:
    """Return the content type used when committing a video object."""

    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type.startswith("video/"):
        return media_type
    guessed, _ = mimetypes.guess_type(object_name)
    if guessed is not None and guessed.startswith("video/"):
        return guessed
    return DEFAULT_VIDEO_CONTENT_TYPE


def parse_content_disposition_filename(header: str | None) -> str | None:
    """Extract the filename parameter from a Content-Disposition header."""

    if not header:
        return None
    match = _CONTENT_DISPOSITION_FILENAME_STAR.search(header)
    if match is not None:
        return unquote(match.group(1).strip()) or None
    match = _CONTENT_DISPOSITION_FILENAME.search(header)
    if match is not None:
        return match.group(1).strip() or None
    return None


def _extension_for_content_type(content_type: str | None) -> str:
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    return _CONTENT_TYPE_EXTENSIONS.get(media_type, DEFAULT_VIDEO_EXTENSION)


def _drive_file_id(url: str) -> str | None:
    parsed = urlparse(url)
    if (parsed.hostname or "").lower() != "drive.google.com":
        return None
    match = _DRIVE_FILE_PATH.search(parsed.path) or _DRIVE_ID_SEGMENT.search(parsed.path)
    if match is not None:
        return match.group(1)
    ids = parse_qs(parsed.query).get("id")
    if ids and _DRIVE_ID_VALUE.match(ids[0]):
        return ids[0]
    return None


def _with_query_param(url: str, key: str, value: str) -> str:
    parsed = urlparse(url)
    query = [
        (existing_key, existing_value)
        for existing_key, values in parse_qs(parsed.query, keep_blank_values=True).items()
        for existing_value in values
        if existing_key != key
    ]
    query.append((key, value))
    return urlunparse(parsed._replace(query=urlencode(query)))


def _rewrite_share_link(url: str) -> tuple[str, str | None]:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()

    if host == "drive.google.com":
        file_id = _drive_file_id(url)
        if file_id is None:
            return url, "Google Drive"
        return (
            f"https://drive.google.com/uc?export=download&id={file_id}&confirm=t",
            "Google Drive",
        )

    if host == "1drv.ms":
        return urlunparse(parsed._replace(query="download=1", fragment="")), "OneDrive"
    if _host_matches(host, "onedrive.live.com", "sharepoint.com"):
        return _with_query_param(url, "download", "1"), "OneDrive"

    if _host_matches(host, "dropbox.com"):
        return _with_query_param(url, "dl", "1"), "Dropbox"

    if _host_matches(host, "pcloud.com", "pcloud.link"):
        return _with_query_param(url, "forcedownload", "1"), "pCloud"

    if host in {"github.com", "www.github.com"} and "/blob/" in parsed.path:
        raw_path = parsed.path.replace("/blob/", "/", 1)
        return (
            urlunparse(parsed._replace(netloc="raw.githubusercontent.com", path=raw_path)),
            "GitHub",
        )

    if _host_matches(host, "box.com") and parsed.path.startswith("/s/"):
        static_path = "/shared/static/" + parsed.path[len("/s/") :]
        return urlunparse(parsed._replace(path=static_path)), "Box"

    if _host_matches(host, "mega.nz", "mega.co.nz"):
        return url, "Mega"

    if _host_matches(host, "mediafire.com") and parsed.path.startswith("/file/"):
        return url, "MediaFire"

    return url, None


__all__ = [
    "CREDENTIAL_GATED_DOMAINS",
    "DEFAULT_OBJECT_NAME",
    "DEFAULT_VIDEO_CONTENT_TYPE",
    "VIDEO_EXTENSIONS",
    "build_request",
    "derive_destination_name",
    "ensure_video_extension",
    "parse_content_disposition_filename",
    "requires_credential",
    "resolve",
    "resolve_content_type",
    "sanitize_object_name",
    "validate_source_url",
]
