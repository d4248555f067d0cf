"""
Models for the s3uploader package.

Dataclasses describing one inbound transfer, its outcome and the progress
notifications emitted while it is in flight.
"""
import os
import posixpath
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .exceptions import ConfigError
from .utils.files import iter_file


DEFAULT_DIGEST_ALGORITHM = "md5"
DEFAULT_SIGNED_URL_EXPIRY = 900  # seconds


@dataclass
class UploadRequest:
    """
    One inbound file transfer.

    Only ``headers["content-type"]`` and ``result`` are changed by the
    pipeline; ``source`` is consumed exactly once.
    """
    source: Any
    path: Optional[str] = None
    descriptor: Optional[str] = None
    key: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    size: Optional[int] = None
    result: Optional["UploadResult"] = None

    @property
    def name(self) -> Optional[str]:
        """Human readable file name (basename of path or descriptor)."""
        for candidate in (self.path, self.descriptor):
            if candidate and candidate.strip():
                base = posixpath.basename(candidate.strip().replace("\\", "/"))
                if base:
                    return base
        return None

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        chunk_size: int = 65536,
    ) -> "UploadRequest":
        """Build a request streaming a local file."""
        file_path = Path(path)
        return cls(
            source=iter_file(file_path, chunk_size),
            path=str(file_path),
            key=key,
            headers=headers,
            size=file_path.stat().st_size,
        )


@dataclass(frozen=True)
class UploadResult:
    """Immutable result of a successful upload."""
    key: str
    content_type: str
    digest: str
    etag: str
    raw: Dict[str, Any] = field(default_factory=dict)
    size: int = 0
    algorithm: str = DEFAULT_DIGEST_ALGORITHM

    @property
    def version_id(self) -> Optional[str]:
        return self.raw.get("VersionId")

    @classmethod
    def from_completion(
        cls,
        key: str,
        content_type: str,
        digest: str,
        completion: Mapping[str, Any],
        size: int = 0,
        algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    ) -> "UploadResult":
        """Assemble the result from the storage client's completion payload."""
        etag = strip_etag(completion.get("ETag"))
        raw = dict(completion)
        raw["ETag"] = etag
        return cls(
            key=key,
            content_type=content_type,
            digest=digest,
            etag=etag,
            raw=raw,
            size=size,
            algorithm=algorithm,
        )


def strip_etag(etag: Optional[str]) -> str:
    """Remove the double quotes S3 wraps around ETag values."""
    if not etag:
        return ""
    return etag.strip('"')


@dataclass(frozen=True)
class TransferProgress:
    """Raw transfer-progress notification from the storage client."""
    loaded: int
    total: Optional[int] = None


@dataclass(frozen=True)
class ProgressEvent:
    """Normalized progress information for one in-flight upload."""
    request_id: str
    bytes_written: int
    bytes_total: Optional[int]
    percent: int
    key: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class AdapterConfig:
    """Immutable configuration for the storage adapter."""
    bucket: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    directory_prefix: Optional[str] = None
    request_overrides: Dict[str, Any] = field(default_factory=dict)
    client_options: Dict[str, Any] = field(default_factory=dict)
    service_overrides: Dict[str, Any] = field(default_factory=dict)
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
    signed_url_expiry: int = DEFAULT_SIGNED_URL_EXPIRY

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "AdapterConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)
            **overrides: Values taking precedence over the environment
                (``None`` values are ignored)

        Returns:
            AdapterConfig
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {
            "bucket": env.get("S3_BUCKET"),
            "access_key": env.get("S3_ACCESS_KEY"),
            "secret_key": env.get("S3_SECRET_KEY"),
            "region": env.get("S3_REGION"),
            "endpoint_url": env.get("S3_ENDPOINT_URL"),
            "directory_prefix": env.get("S3_DIRECTORY_PREFIX"),
        }
        if env.get("S3_DIGEST_ALGORITHM"):
            values["digest_algorithm"] = env["S3_DIGEST_ALGORITHM"]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def merged(
        self,
        bucket: Optional[str] = None,
        directory_prefix: Optional[str] = None,
        request_overrides: Optional[Mapping[str, Any]] = None,
        client_options: Optional[Mapping[str, Any]] = None,
    ) -> "AdapterConfig":
        """Per-call configuration: given values win, dict options are merged shallowly."""
        changes: Dict[str, Any] = {}
        if bucket:
            changes["bucket"] = bucket
        if directory_prefix is not None:
            changes["directory_prefix"] = directory_prefix
        if request_overrides:
            changes["request_overrides"] = {**self.request_overrides, **request_overrides}
        if client_options:
            changes["client_options"] = {**self.client_options, **client_options}
        return replace(self, **changes) if changes else self

    def validate(self) -> "AdapterConfig":
        """Raise ConfigError if the configuration cannot be used for requests."""
        from .services.digest import new_hasher

        if not self.bucket:
            raise ConfigError("bucket is required (set S3_BUCKET or pass bucket=...)")
        try:
            new_hasher(self.digest_algorithm)
        except ValueError as exc:
            raise ConfigError(f"unsupported digest algorithm: {self.digest_algorithm}") from exc
        return self

    def service_params(self) -> Dict[str, Any]:
        """Keyword arguments for ``aioboto3.Session().client("s3", ...)``."""
        params: Dict[str, Any] = {}
        if self.access_key:
            params["aws_access_key_id"] = self.access_key
        if self.secret_key:
            params["aws_secret_access_key"] = self.secret_key
        if self.region:
            params["region_name"] = self.region
        if self.endpoint_url:
            params["endpoint_url"] = self.endpoint_url
        params.update(self.service_overrides)
        return params

    def request_params(self) -> Dict[str, Any]:
        """Base request parameters shared by every S3 call."""
        params = dict(self.request_overrides)
        if self.bucket:
            params["Bucket"] = self.bucket
        return params
