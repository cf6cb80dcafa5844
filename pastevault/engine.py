"""
Paste engine: create pastes and consume views under their expiry constraints.
"""
import logging
import secrets
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from pastevault.database import PasteBackend, Write
from pastevault.errors import PasteNotFound, StorageError, ValidationError
from pastevault.models import FetchedPaste, PasteRecord, as_positive_count

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_paste_id() -> str:
    """URL-safe random id, 128 bits of entropy."""
    return secrets.token_urlsafe(16)


def _positive_count(name: str, value) -> Optional[int]:
    try:
        return as_positive_count(value)
    except ValueError as e:
        raise ValidationError(f"{name} {e}") from e


class PasteStore:
    """
    Owns all paste records through an injected backend.

    Every read goes through ``fetch_and_consume``, which checks expiry,
    counts the view and deletes spent pastes in one atomic step per id.
    ``reap`` is a best-effort sweep that only reclaims storage.
    """

    def __init__(
        self,
        backend: PasteBackend,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = generate_paste_id,
        id_max_attempts: int = 5,
        reap_batch_size: int = 500,
    ):
        self.backend = backend
        self.clock = clock
        self.id_factory = id_factory
        self.id_max_attempts = id_max_attempts
        self.reap_batch_size = reap_batch_size

    def create(
        self,
        content: str,
        ttl_seconds: Optional[int] = None,
        max_views: Optional[int] = None,
    ) -> str:
        """
        Save a new paste.

        Args:
            content: Text content of the paste
            ttl_seconds: Optional time-to-live in seconds
            max_views: Optional maximum view count

        Returns:
            The new paste id

        Raises:
            ValidationError: If content is empty or a constraint is not a positive integer
            StorageError: If the backend fails or no free id was found
        """
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("content is required and must be non-empty")
        ttl_seconds = _positive_count("ttl_seconds", ttl_seconds)
        max_views = _positive_count("max_views", max_views)

        created_at = self.clock()
        for attempt in range(1, self.id_max_attempts + 1):
            record = PasteRecord(
                id=self.id_factory(),
                content=content,
                created_at=created_at,
                ttl_seconds=ttl_seconds,
                max_views=max_views,
            )
            if self.backend.insert(record):
                logger.info(f"Paste {record.id} saved successfully")
                return record.id
            logger.warning(f"Paste id collision on attempt {attempt}")

        raise StorageError(f"Could not allocate a unique paste id after {self.id_max_attempts} attempts")

    def fetch_and_consume(self, paste_id: str, now: Optional[datetime] = None) -> FetchedPaste:
        """
        Fetch a paste and count one view against it.

        The fetch that uses up the last view still returns the content with
        ``remaining_views == 0``; the paste is gone for everyone after it.

        Raises:
            PasteNotFound: If the paste is unknown, expired or out of views
        """
        now = now or self.clock()

        def consume(record: Optional[PasteRecord]) -> Tuple[Write, Optional[FetchedPaste]]:
            if record is None:
                return Write.KEEP, None
            if record.is_time_expired(now) or record.is_view_exhausted():
                return Write.DELETE, None

            record.current_views += 1
            fetched = FetchedPaste(
                content=record.content,
                remaining_views=record.remaining_views,
                expires_at=record.expires_at,
            )
            if record.is_view_exhausted():
                return Write.DELETE, fetched
            return Write.UPDATE, fetched

        fetched = self.backend.apply(paste_id, consume)
        if fetched is None:
            logger.debug(f"Paste {paste_id} not found")
            raise PasteNotFound()
        if fetched.remaining_views == 0:
            logger.info(f"Paste {paste_id} served its last view and was deleted")
        return fetched

    def reap(self, now: Optional[datetime] = None) -> int:
        """
        Delete pastes that are dead as of ``now``.

        Each candidate is re-checked under the same per-id atomicity as
        fetches, so racing a fetch is harmless.

        Returns:
            Number of pastes deleted
        """
        now = now or self.clock()

        def reap_one(record: Optional[PasteRecord]) -> Tuple[Write, bool]:
            if record is None:
                # Drops any index entry left behind
                return Write.DELETE, False
            if record.is_dead(now):
                return Write.DELETE, True
            return Write.KEEP, False

        removed = 0
        for batch in self.backend.iter_expiry_candidates(now, self.reap_batch_size):
            for paste_id in batch:
                if self.backend.apply(paste_id, reap_one):
                    removed += 1
        if removed:
            logger.info(f"Reaped {removed} expired paste(s)")
        return removed

    def is_healthy(self) -> bool:
        """Check if the backing store is alive."""
        try:
            return self.backend.ping()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
        return False
