"""
Upload admission and stored-file access.

Key Features:
- Admission pipeline: size, filename, declared content type, user
  segment, per-user quota, free disk space, then a streamed write with
  magic-byte detection
- Every write goes through the PathSandbox with an exclusive create of
  ``<user-segment>/<uuid><ext>``
- Any failure after the file exists removes the partial file before the
  error propagates

Rejections raise UploadRejected carrying the HTTP status; clients only
ever see ``upload: rejected``, the reason goes to the log.
"""

import errno
import mimetypes
import re
import uuid
from collections.abc import Iterable, Iterator
from enum import Enum
from pathlib import PurePosixPath
from typing import BinaryIO, NamedTuple

from busybee.errors import ResourceNotFound, SandboxEscape, UploadRejected
from busybee.safety.sandbox import PathSandbox
from busybee.utils.logger import safe_log_value, setup_logger

logger = setup_logger("storage.files")

SAFE_FILENAME = re.compile(r"[A-Za-z0-9._-]+")
SAFE_USER_SEGMENT = re.compile(r"[A-Za-z0-9_-]+")
UNSAFE_USER_SEGMENT_CHARS = re.compile(r"[^A-Za-z0-9_-]")

MAGIC_READ_LIMIT = 16

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
ALLOWED_EXTENSIONS = IMAGE_EXTENSIONS | {".pdf"}

FALLBACK_CONTENT_TYPES = {
    ".png": "image/png",
    ".gif": "image/gif",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}


class FileType(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    OTHER = "other"


class MagicType(str, Enum):
    JPG = "jpg"
    PNG = "png"
    GIF = "gif"
    WEBP = "webp"
    PDF = "pdf"
    UNKNOWN = "unknown"


# magic -> (allowed extensions, content type predicate)
_MAGIC_RULES = {
    MagicType.JPG: ({".jpg", ".jpeg"}, lambda ct: ct.startswith("image/")),
    MagicType.PNG: ({".png"}, lambda ct: ct.startswith("image/")),
    MagicType.GIF: ({".gif"}, lambda ct: ct.startswith("image/")),
    MagicType.WEBP: ({".webp"}, lambda ct: ct.startswith("image/")),
    MagicType.PDF: ({".pdf"}, lambda ct: "pdf" in ct),
}


class StoredUpload(NamedTuple):
    handle: str
    file_type: FileType


def detect_magic(header: bytes) -> MagicType:
    if header[:3] == b"\xff\xd8\xff":
        return MagicType.JPG
    if header[:8] == b"\x89PNG\r\n\x1a\n":
        return MagicType.PNG
    if header[:6] in (b"GIF87a", b"GIF89a"):
        return MagicType.GIF
    if len(header) >= 12 and header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return MagicType.WEBP
    if header[:5] == b"%PDF-":
        return MagicType.PDF
    return MagicType.UNKNOWN


def normalize_content_type(content_type: str | None) -> str:
    """Lower-cased media type without parameters; empty when missing."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def identify_type(content_type: str | None) -> FileType:
    normalized = normalize_content_type(content_type)
    if normalized.startswith("image/"):
        return FileType.IMAGE
    if "pdf" in normalized:
        return FileType.PDF
    return FileType.OTHER


def lower_extension(filename: str) -> str:
    index = filename.rfind(".")
    if index <= 0 or index == len(filename) - 1:
        return ""
    return filename[index:].lower()


def sanitize_user_segment(username: str | None) -> str:
    if username is None:
        return "user"
    trimmed = username.strip()
    if SAFE_USER_SEGMENT.fullmatch(trimmed):
        return trimmed
    sanitized = UNSAFE_USER_SEGMENT_CHARS.sub("_", trimmed)
    return sanitized if sanitized.strip() else "user"


def _basename(filename: str | None) -> str:
    if not filename:
        return ""
    return PurePosixPath(filename.replace("\\", "/")).name


def _iter_file(fileobj: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    while True:
        chunk = fileobj.read(chunk_size)
        if not chunk:
            return
        yield chunk


class FileStorage:
    """Stores uploads under a sandboxed root, one directory per user."""

    def __init__(
        self,
        root,
        *,
        max_upload_bytes: int = 5 * 1024 * 1024,
        min_free_bytes: int = 10 * 1024 * 1024,
        max_files_per_user: int = 50,
        max_filename_length: int = 80,
        chunk_size: int = 8192,
    ):
        self._sandbox = PathSandbox(root)
        self._sandbox.root.mkdir(parents=True, exist_ok=True)
        self.max_upload_bytes = max_upload_bytes
        self.min_free_bytes = min_free_bytes
        self.max_files_per_user = max_files_per_user
        self.max_filename_length = max_filename_length
        self.chunk_size = chunk_size

    @classmethod
    def from_settings(cls, settings) -> "FileStorage":
        return cls(
            settings.uploads_dir,
            max_upload_bytes=settings.max_upload_bytes,
            min_free_bytes=settings.min_free_bytes,
            max_files_per_user=settings.max_files_per_user,
            max_filename_length=settings.max_filename_length,
            chunk_size=settings.upload_chunk_size,
        )

    @property
    def sandbox(self) -> PathSandbox:
        return self._sandbox

    def store_upload(
        self,
        fileobj: BinaryIO,
        filename: str | None,
        content_type: str | None,
        username: str,
        size: int | None,
    ) -> StoredUpload:
        """Admit a client-supplied file (e.g. a multipart part)."""
        if size is not None and size <= 0:
            raise self._reject(400, "Empty file", username, filename, size)
        return self.store_stream(
            _iter_file(fileobj, self.chunk_size), filename, content_type, username, size
        )

    def store_stream(
        self,
        chunks: Iterable[bytes],
        filename: str | None,
        content_type: str | None,
        username: str,
        size: int | None = None,
    ) -> StoredUpload:
        """
        Run the admission pipeline over a stream of byte chunks.

        ``size`` is the declared size when known. The streamed byte count is
        enforced independently, so a lying declaration cannot bypass the cap.
        """
        self.check_declared_size(size, username, filename)

        base_name = _basename(filename)
        if (
            not base_name.strip()
            or len(base_name) > self.max_filename_length
            or not SAFE_FILENAME.fullmatch(base_name)
        ):
            raise self._reject(400, "Invalid filename", username, base_name, size)

        ext = lower_extension(base_name)
        if not ext:
            raise self._reject(400, "Missing file extension", username, base_name, size)
        if ext not in ALLOWED_EXTENSIONS:
            raise self._reject(415, "Unsupported file extension", username, base_name, size)

        normalized_type = normalize_content_type(content_type)
        if not normalized_type:
            raise self._reject(415, "Missing content type", username, base_name, size)
        if ext in IMAGE_EXTENSIONS and not normalized_type.startswith("image/"):
            raise self._reject(415, "Content type does not match image extension", username, base_name, size)
        if ext == ".pdf" and "pdf" not in normalized_type:
            raise self._reject(415, "Content type does not match PDF extension", username, base_name, size)

        segment = sanitize_user_segment(username)
        self._sandbox.makedirs(segment)

        if self._sandbox.count_regular_files(segment) >= self.max_files_per_user:
            raise self._reject(429, "Too many files for user", username, base_name, size)

        expected = size if size is not None else self.max_upload_bytes
        if self._sandbox.usable_bytes(segment) < expected + self.min_free_bytes:
            raise self._reject(400, "Insufficient disk space", username, base_name, size)

        handle = f"{segment}/{uuid.uuid4()}{ext}"
        out = self._sandbox.create_exclusive(handle)
        try:
            with out:
                self._write_checked(out, iter(chunks), ext, normalized_type, username, base_name, size)
        except BaseException:
            self._sandbox.unlink(handle)
            raise

        logger.info(
            f"Upload stored: user={safe_log_value(username)} "
            f"filename={safe_log_value(base_name)} stored={handle}"
        )
        return StoredUpload(handle, identify_type(normalized_type))

    def check_declared_size(self, size: int | None, username: str, filename: str | None) -> None:
        if size is not None and size > self.max_upload_bytes:
            raise self._reject(413, "File too large", username, filename, size)

    def _write_checked(
        self,
        out: BinaryIO,
        chunks: Iterator[bytes],
        ext: str,
        content_type: str,
        username: str,
        base_name: str,
        size: int | None,
    ) -> None:
        header = b""
        for chunk in chunks:
            header += chunk
            if len(header) >= MAGIC_READ_LIMIT:
                break
        if not header:
            raise self._reject(400, "Empty file", username, base_name, size)

        self._validate_type(detect_magic(header[:MAGIC_READ_LIMIT]), ext, content_type, username, base_name, size)

        written = len(header)
        if written > self.max_upload_bytes:
            raise self._reject(413, "File too large", username, base_name, size)
        out.write(header)

        for chunk in chunks:
            written += len(chunk)
            if written > self.max_upload_bytes:
                raise self._reject(413, "File too large", username, base_name, size)
            out.write(chunk)

    def _validate_type(self, magic, ext, content_type, username, base_name, size) -> None:
        rule = _MAGIC_RULES.get(magic)
        if rule is None:
            raise self._reject(415, "Unsupported file type", username, base_name, size)
        allowed_exts, type_ok = rule
        if not type_ok(content_type):
            raise self._reject(415, f"Invalid {magic.value} content type", username, base_name, size)
        if ext not in allowed_exts:
            raise self._reject(415, f"Invalid {magic.value} extension", username, base_name, size)

    def _reject(self, status_code, reason, username, filename, size) -> UploadRejected:
        logger.warning(
            f"Upload rejected: status={status_code} reason={reason} "
            f"user={safe_log_value(username)} filename={safe_log_value(filename)} size={size}"
        )
        return UploadRejected(status_code, reason)

    def get_bytes(self, relative: str) -> bytes:
        """Bytes of a stored file; ResourceNotFound when it is missing or not a regular file."""
        try:
            return self._sandbox.read_bytes(relative)
        except OSError as e:
            if e.errno in (errno.ENOENT, errno.ENOTDIR, errno.EISDIR, errno.ELOOP) or isinstance(
                e, FileNotFoundError
            ):
                raise ResourceNotFound("resource: not found") from e
            raise

    def exists(self, relative: str) -> bool:
        return self._sandbox.is_file(relative)

    @staticmethod
    def probe_content_type(relative: str) -> str:
        name = PurePosixPath(relative).name.lower()
        guessed, _ = mimetypes.guess_type(name)
        if guessed:
            return guessed
        return FALLBACK_CONTENT_TYPES.get(lower_extension(name), "application/octet-stream")

    def cleanup_stored_upload(self, handle: str | None) -> None:
        """Remove a stored upload; never raises so it cannot mask the original error."""
        if not handle or not handle.strip():
            return
        try:
            self._sandbox.unlink(handle)
        except (OSError, SandboxEscape) as e:
            logger.warning(f"Upload cleanup failed: stored={safe_log_value(handle)}: {e}")
