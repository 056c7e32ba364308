"""Turn heterogeneous call parameters into wire-ready form fields and uploads."""

from __future__ import annotations

import dataclasses
import enum
import mimetypes
import os
from collections.abc import Iterator, Mapping
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import msgspec

from .errors import ValidationError

_MAX_PATH_LENGTH = 4096
_DEFAULT_MIME = "application/octet-stream"

FileTuple = tuple[str, Any, str]


@dataclass(frozen=True, slots=True)
class InputFile:
    """A file to upload: a filesystem path, an open binary handle or raw bytes."""

    source: str | Path | IO[bytes] | bytes
    filename: str | None = None
    mime_type: str | None = None

    @property
    def path(self) -> Path | None:
        if isinstance(self.source, (str, Path)):
            return Path(self.source)
        return None

    def resolved_filename(self, fallback: str) -> str:
        if self.filename:
            return self.filename
        path = self.path
        if path is not None:
            return path.name
        name = getattr(self.source, "name", None)
        if isinstance(name, str) and name:
            return os.path.basename(name)
        return fallback

    def resolved_mime_type(self, filename: str) -> str:
        if self.mime_type:
            return self.mime_type
        guessed, _ = mimetypes.guess_type(filename)
        return guessed or _DEFAULT_MIME


@dataclass(frozen=True, slots=True)
class PreparedParams:
    fields: dict[str, str] = field(default_factory=dict)
    files: dict[str, InputFile] = field(default_factory=dict)

    @property
    def is_multipart(self) -> bool:
        return bool(self.files)


def is_readable_path(value: str) -> bool:
    if not value or len(value) > _MAX_PATH_LENGTH or "\x00" in value or "\n" in value:
        return False
    try:
        return os.path.isfile(value) and os.access(value, os.R_OK)
    except (OSError, ValueError):
        return False


def _is_file_handle(value: Any) -> bool:
    return hasattr(value, "read") and callable(value.read)


def encode_json(value: Any) -> str:
    try:
        return msgspec.json.encode(value, enc_hook=_enc_hook).decode("utf-8")
    except (TypeError, msgspec.EncodeError) as e:
        raise ValidationError(f"Cannot JSON-encode parameter value: {e}") from e


def _enc_hook(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Unsupported type {type(value).__name__}")


def _as_input_file(key: str, value: Any, *, upload_local_paths: bool) -> InputFile | None:
    if isinstance(value, InputFile):
        path = value.path
        if path is not None and not is_readable_path(str(path)):
            raise ValidationError(f"File is not accessible: {path}", parameter=key)
        return value
    if isinstance(value, Path):
        if not is_readable_path(str(value)):
            raise ValidationError(f"File is not accessible: {value}", parameter=key)
        return InputFile(value)
    if isinstance(value, (bytes, bytearray)):
        return InputFile(bytes(value), filename=key)
    if _is_file_handle(value):
        return InputFile(value)
    if upload_local_paths and isinstance(value, str) and is_readable_path(value):
        return InputFile(value)
    return None


def normalize_value(value: Any) -> str:
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (Mapping, list, tuple, set, frozenset, msgspec.Struct)):
        if isinstance(value, (set, frozenset)):
            value = sorted(value)
        return encode_json(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return encode_json(dataclasses.asdict(value))
    return str(value)


def normalize_params(
    params: Mapping[str, Any] | None, *, upload_local_paths: bool = True
) -> PreparedParams:
    """Split ``params`` into string form fields and file uploads.

    ``None`` values are dropped. Nested structures are JSON-encoded, scalars are
    stringified, and any file reference moves the whole request to multipart.
    """
    prepared = PreparedParams()
    if not params:
        return prepared
    for key, value in params.items():
        if not isinstance(key, str) or not key:
            raise ValidationError(f"Invalid parameter name: {key!r}")
        if value is None:
            continue
        upload = _as_input_file(key, value, upload_local_paths=upload_local_paths)
        if upload is not None:
            prepared.files[key] = upload
            continue
        prepared.fields[key] = normalize_value(value)
    return prepared


@contextmanager
def open_uploads(files: Mapping[str, InputFile]) -> Iterator[dict[str, FileTuple]]:
    """Open every upload for the duration of one request attempt.

    Paths are opened and closed here; caller-owned handles are rewound to
    where they were on entry so a retried attempt resends the same bytes.
    """
    with ExitStack() as stack:
        opened: dict[str, FileTuple] = {}
        for name, upload in files.items():
            filename = upload.resolved_filename(name)
            mime_type = upload.resolved_mime_type(filename)
            source = upload.source
            if isinstance(source, (str, Path)):
                try:
                    handle = stack.enter_context(open(source, "rb"))
                except OSError as e:
                    raise ValidationError(
                        f"File is not accessible: {source}", parameter=name
                    ) from e
                opened[name] = (filename, handle, mime_type)
            elif isinstance(source, bytes):
                opened[name] = (filename, source, mime_type)
            else:
                _remember_position(stack, source)
                opened[name] = (filename, source, mime_type)
        yield opened


def _remember_position(stack: ExitStack, handle: IO[bytes]) -> None:
    seekable = getattr(handle, "seekable", None)
    if seekable is None or not seekable():
        return
    position = handle.tell()
    stack.callback(handle.seek, position)
