"""
Drop Service - the create / retrieve / sweep operations used by the web layer.

Wires the Drop Store and the Retrieval Guard together and applies payload
validation before anything is stored.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from codedrop.config import Settings
from codedrop.drop_store import Drop, DropFile, DropKind, DropStore, Payload
from codedrop.errors import (
    AllocationExhausted,
    CodeConflict,
    DropNotFound,
    InvalidCodeFormat,
    PayloadTooLarge,
    RateLimited,
    ValidationFailed,
)
from codedrop.retrieval_guard import Deny, RetrievalGuard
from codedrop.security import (
    deduplicate_filenames,
    is_executable,
    log_security_event,
    mask_code,
    sanitize_filename,
    validate_content_type,
    validate_file_extension,
)

logger = logging.getLogger(__name__)

MAX_CREATE_ATTEMPTS = 3
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class SweepResult:
    drops: int
    identities: int


class DropService:
    def __init__(self, store: DropStore, guard: RetrievalGuard, settings: Settings):
        self.store = store
        self.guard = guard
        self.settings = settings
        self._code_pattern = re.compile(rf"[0-9]{{{settings.code_length}}}")

    # ============ CREATE ============

    def validate_text(self, text) -> str:
        if not isinstance(text, str) or not text.strip():
            raise ValidationFailed("Text content is required.")
        if len(text) > self.settings.max_text_length:
            raise ValidationFailed(
                f"Text exceeds {self.settings.max_text_length} character limit."
            )
        if len(text.encode("utf-8")) > self.settings.max_payload_bytes:
            raise PayloadTooLarge("Text exceeds the maximum payload size.")
        return text

    def validate_files(self, files: Sequence[DropFile]) -> Sequence[DropFile]:
        """
        Check a file set and return it with sanitized, unique names.
        """
        if not files:
            raise ValidationFailed("At least one file is required.")
        if len(files) > self.settings.max_files:
            raise ValidationFailed(f"Too many files. Maximum is {self.settings.max_files}.")

        total = sum(f.size for f in files)
        if total > self.settings.max_payload_bytes:
            raise PayloadTooLarge(
                f"Files too large. Maximum total size is {self.settings.max_payload_bytes} bytes."
            )

        names = []
        for f in files:
            safe_name = sanitize_filename(f.name)
            if not validate_file_extension(safe_name):
                log_security_event("blocked_file_type", {"filename": f.name})
                raise ValidationFailed(f'File type of "{safe_name}" is not allowed.')
            if not validate_content_type(f.mime_type or DEFAULT_MIME_TYPE):
                log_security_event("blocked_content_type", {"mime_type": f.mime_type})
                raise ValidationFailed(f'File type "{f.mime_type}" is not allowed.')
            if is_executable(f.data):
                log_security_event("blocked_executable", {"filename": f.name, "mime_type": f.mime_type})
                raise ValidationFailed("Executable files are not allowed.")
            names.append(safe_name)

        return [
            DropFile(name=name, mime_type=f.mime_type or DEFAULT_MIME_TYPE, data=f.data)
            for name, f in zip(deduplicate_filenames(names), files)
        ]

    async def create(self, kind: DropKind, payload: Payload) -> Drop:
        """
        Validate and store a drop.

        Raises:
            ValidationFailed: payload rejected
            AllocationExhausted: no free code could be found
        """
        kind = DropKind(kind)
        if kind is DropKind.TEXT:
            payload = self.validate_text(payload)
        else:
            payload = self.validate_files(payload)

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            try:
                drop = await self.store.create(kind, payload, self.settings.ttl_seconds)
            except CodeConflict as e:
                logger.info(f"Code conflict on {mask_code(e.code)} (attempt {attempt}), retrying")
                continue
            logger.info(f"Created {kind.value} drop {mask_code(drop.code)}")
            return drop

        raise AllocationExhausted(MAX_CREATE_ATTEMPTS)

    async def create_text(self, text: str) -> Drop:
        return await self.create(DropKind.TEXT, text)

    async def create_files(self, files: Sequence[DropFile]) -> Drop:
        return await self.create(DropKind.FILE_SET, files)

    # ============ RETRIEVE ============

    def is_valid_code(self, code) -> bool:
        return isinstance(code, str) and bool(self._code_pattern.fullmatch(code))

    async def retrieve(self, code: str, identity: str) -> Drop:
        """
        Take the drop for `code` on behalf of `identity`.

        The code format is checked before the guard so malformed input
        does not count as an attempt.

        Raises:
            InvalidCodeFormat, RateLimited, DropNotFound
        """
        if not self.is_valid_code(code):
            raise InvalidCodeFormat(self.settings.code_length)

        decision = self.guard.check(identity)
        if isinstance(decision, Deny):
            raise RateLimited(decision.cooldown_remaining_seconds, self.guard.max_attempts)

        drop = await self.store.take(code)
        if drop is None:
            log_security_event("invalid_access_code", {"code": mask_code(code)})
            raise DropNotFound(attempts_remaining=decision.attempts_remaining)

        self.guard.record_success(identity)
        logger.info(f"Drop {mask_code(code)} retrieved and destroyed")
        return drop

    # ============ MAINTENANCE ============

    async def sweep(self) -> SweepResult:
        """Reclaim expired drops and idle attempt records."""
        drops = await self.store.sweep()
        identities = self.guard.sweep()
        return SweepResult(drops=drops, identities=identities)


def build_service(settings: Settings, clock: Callable[[], float] = time.time) -> DropService:
    """Construct a service with its own store and guard. The store still needs open()."""
    store = DropStore(
        database_path=settings.database_path,
        code_length=settings.code_length,
        clock=clock,
    )
    guard = RetrievalGuard(
        max_attempts=settings.max_attempts,
        cooldown_seconds=settings.cooldown_seconds,
        stale_after_seconds=settings.stale_identity_seconds,
        clock=clock,
    )
    return DropService(store, guard, settings)
