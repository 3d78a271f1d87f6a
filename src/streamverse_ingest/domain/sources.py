"""Transfer source models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class SourceKind(StrEnum):
    """Supported transfer source variants."""

    DIRECT_HTTP = "direct_http"
    CREDENTIALED_HTTP = "credentialed_http"
    LOCAL_STREAM = "local_stream"


@dataclass(slots=True, frozen=True)
class ResolvedSource:
    """A user-supplied URL after share-link normalization."""

    original_url: str
    direct_url: str
    service_label: str | None = None
    requires_credential: bool = False


@dataclass(slots=True, frozen=True)
class SourceCredential:
    """Caller-held session material forwarded to credentialed fetches."""

    cookies: str | None = None
    bearer_token: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.cookies or self.bearer_token or self.headers)


@dataclass(slots=True, frozen=True)
class SourceProbe:
    """Best-effort preflight result for an HTTP source."""

    reachable: bool
    final_url: str | None = None
    total_bytes: int | None = None
    content_type: str | None = None
    content_disposition_filename: str | None = None


@dataclass(slots=True, frozen=True)
class TransferSource:
    """Capability view of a source used by strategy selection."""

    kind: SourceKind
    has_known_length: bool = False

    @property
    def requires_credential(self) -> bool:
        return self.kind is SourceKind.CREDENTIALED_HTTP

    @property
    def supports_server_side_fetch(self) -> bool:
        return self.kind is SourceKind.DIRECT_HTTP

    @classmethod
    def for_resolved(
        cls,
        resolved: ResolvedSource,
        probe: SourceProbe | None = None,
    ) -> TransferSource:
        kind = (
            SourceKind.CREDENTIALED_HTTP
            if resolved.requires_credential
            else SourceKind.DIRECT_HTTP
        )
        known_length = probe is not None and bool(probe.total_bytes)
        return cls(kind=kind, has_known_length=known_length)


__all__ = [
    "ResolvedSource",
    "SourceCredential",
    "SourceKind",
    "SourceProbe",
    "TransferSource",
]
