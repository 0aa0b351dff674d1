"""Image manifest schema and input helpers."""

from __future__ import annotations

import json
import re
import sys
from pathlib import Path
from typing import IO, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from imgapi_cli.errors import InvalidManifestDataError, InvalidUUIDError

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)

COMPRESSIONS = ("gzip", "bzip2", "xz", "none")
COMPRESSION_EXTENSIONS = {"gzip": "gz", "bzip2": "bz2", "xz": "xz", "none": "file"}


class ImageFile(BaseModel):
    model_config = ConfigDict(extra="allow")

    sha1: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)
    compression: Optional[str] = None


class ImageManifest(BaseModel):
    model_config = ConfigDict(extra="allow")

    v: Optional[int] = None
    uuid: Optional[str] = None
    owner: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    state: Optional[str] = None
    disabled: Optional[bool] = None
    public: Optional[bool] = None
    published_at: Optional[str] = None
    type: Optional[str] = None
    os: Optional[str] = None
    files: List[ImageFile] = Field(default_factory=list)
    acl: Optional[List[str]] = None
    channels: Optional[List[str]] = None
    tags: Optional[Dict[str, Any]] = None
    requirements: Optional[Dict[str, Any]] = None
    icon: Optional[bool] = None

    @property
    def file(self) -> ImageFile | None:
        return self.files[0] if self.files else None


def validate_uuid(value: str) -> str:
    if not isinstance(value, str) or not UUID_RE.match(value):
        raise InvalidUUIDError(str(value))
    return value


def parse_manifest(data: object) -> ImageManifest:
    if not isinstance(data, dict):
        raise InvalidManifestDataError("manifest data must be a JSON object")
    try:
        manifest = ImageManifest.model_validate(data)
    except ValidationError as exc:
        raise InvalidManifestDataError(f"invalid manifest data: {exc}") from exc
    if manifest.uuid is not None:
        validate_uuid(manifest.uuid)
    return manifest


def read_manifest_data(path: str, *, stdin: IO[str] | None = None) -> dict:
    """Load a JSON manifest from a file, or from stdin when ``path`` is ``-``."""
    if path == "-":
        source = "<stdin>"
        raw = (stdin or sys.stdin).read()
    else:
        source = path
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise InvalidManifestDataError(f"cannot read manifest file {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise InvalidManifestDataError(f"invalid JSON in {source}: {exc}") from exc
    parse_manifest(data)
    return data


def compression_from_path(path: str) -> str:
    suffix = Path(path).suffix.lower()
    for compression, ext in COMPRESSION_EXTENSIONS.items():
        if compression != "none" and suffix == f".{ext}":
            return compression
    if suffix == ".tgz":
        return "gzip"
    return "none"


def file_name_for(manifest: ImageManifest) -> str:
    """``NAME-VERSION.EXT`` for the image's first file."""
    compression = manifest.file.compression if manifest.file else None
    ext = COMPRESSION_EXTENSIONS.get(compression or "none", "file")
    return f"{manifest.name}-{manifest.version}.{ext}"
