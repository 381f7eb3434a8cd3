"""
Post lifecycle controller: drafts, scheduling, publishing, edits, deletes.

``PostLifecycle`` applies the post state machine and reconciles the local
row with the remote outcome.  Rules it enforces:

* The row exists in the database before X is called, so a failed call
  degrades the post to ``failed`` and never loses its content.
* A post becomes ``published`` in one write that also stores
  ``remote_id``; nothing else ever writes ``published``.
* Publishing requires the post's lease, taken by a conditional update
  (see :meth:`~xpublisher.database.SupabaseDB.claim_post`).  Two triggers
  racing for the same due post cannot both reach X.
* The remote call runs under a deadline shorter than the lease, and any
  lease left behind by a crash is resolved to ``failed`` by
  :meth:`PostLifecycle.recover_expired_leases`.

All database interactions go through the ``db`` parameter (a
:class:`~xpublisher.database.SupabaseDB` instance).
"""

import asyncio
import json
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from xpublisher.config import Settings, get_settings
from xpublisher.credentials import CredentialResolver
from xpublisher.exceptions import (
    CredentialsError,
    DatabaseError,
    InvalidTransitionError,
    PostNotFoundError,
    RemoteError,
    RemoteRejected,
    TransportError,
)
from xpublisher.logging import PublishEventKind, PublishEventLogger, get_event_logger
from xpublisher.models import DueRunSummary, PublishOutcome, XCredentials
from xpublisher.scheduling.models import Post, PostStatus
from xpublisher.scheduling.validation import validate_content, validate_schedule_time
from xpublisher.tools.x_client import XClient
from xpublisher.utils import ensure_utc, generate_id, utc_now

logger = logging.getLogger(__name__)

# Longest error text stored on a failed post.
MAX_ERROR_LENGTH = 1000


class PostLifecycle:
    """Orchestrates the post state machine against storage and X.

    Args:
        db: Database client (:class:`~xpublisher.database.SupabaseDB`).
        x_client: Remote client used to publish.
        credentials: Resolver for the owners' X API credentials.
        settings: Optional settings; defaults to :func:`get_settings`.
        event_logger: Optional audit logger; defaults to the global one.
        max_concurrency: Due posts published in parallel per scan.
    """

    # Seconds of lease left after the publish deadline for the final write.
    LEASE_MARGIN_SECONDS: int = 10

    def __init__(
        self,
        db: "SupabaseDB",  # noqa: F821
        x_client: XClient,
        credentials: CredentialResolver,
        settings: Optional[Settings] = None,
        event_logger: Optional[PublishEventLogger] = None,
        max_concurrency: int = 4,
    ) -> None:
        self.db = db
        self.x_client = x_client
        self.credentials = credentials
        self.settings = settings or get_settings()
        self.events = event_logger or get_event_logger()
        self.max_concurrency = max_concurrency

    @property
    def lease_duration(self) -> timedelta:
        return timedelta(seconds=self.settings.lease_seconds)

    @property
    def lease_margin(self) -> float:
        """Seconds of lease reserved for the final write, at most a quarter of it."""
        return min(self.LEASE_MARGIN_SECONDS, self.settings.lease_seconds / 4)

    def publish_deadline(self, lease_expires_at: datetime) -> float:
        """Seconds the remote call may take under the lease held until *lease_expires_at*.

        Measured from now, so time spent between the claim and the call
        (credential lookups, retries) is already deducted.  Not positive
        when the lease is too close to expiry to publish safely.
        """
        remaining = (lease_expires_at - utc_now()).total_seconds()
        return remaining - self.lease_margin

    # ================================================================
    # CREATE
    # ================================================================

    async def create_draft(
        self,
        user_id: str,
        content: str,
        scheduled_for: Optional[datetime] = None,
    ) -> Post:
        """Save a draft.  Never calls X.

        Raises:
            ValidationError: On empty or over-long content.
        """
        content = validate_content(content, self.settings.max_post_length)
        post = Post(
            id=generate_id(),
            user_id=user_id,
            content=content,
            scheduled_for=ensure_utc(scheduled_for) if scheduled_for else utc_now(),
            status=PostStatus.DRAFT,
        )
        row = await self.db.insert_post(post.to_row())
        logger.info("[LIFECYCLE] Draft %s saved for user %s", post.id, user_id)
        return Post.from_row(row)

    async def schedule_post(
        self,
        user_id: str,
        content: str,
        scheduled_for: datetime,
        now: Optional[datetime] = None,
    ) -> Post:
        """Create a post to be published at or after *scheduled_for*.

        Raises:
            ValidationError: On bad content or a time not in the future.
            CredentialsError: If the user's X API is not connected.
        """
        content = validate_content(content, self.settings.max_post_length)
        scheduled_for = validate_schedule_time(scheduled_for, now)
        await self.credentials.resolve(user_id, require_connected=True)

        post = Post(
            id=generate_id(),
            user_id=user_id,
            content=content,
            scheduled_for=scheduled_for,
            status=PostStatus.SCHEDULED,
        )
        row = await self.db.insert_post(post.to_row())
        logger.info(
            "[LIFECYCLE] Post %s scheduled for %s (user=%s)",
            post.id,
            scheduled_for.isoformat(),
            user_id,
        )
        return Post.from_row(row)

    async def publish_now(self, user_id: str, content: str) -> PublishOutcome:
        """Record a post and publish it immediately.

        The row is inserted as ``scheduled`` for *now* with the lease
        already held, so the due-post scan never picks it up while this
        call is publishing.

        Raises:
            ValidationError: On bad content (nothing is stored).
            CredentialsError: On missing or unconnected credentials
                (nothing is stored).
        """
        content = validate_content(content, self.settings.max_post_length)
        credentials = await self.credentials.resolve(user_id, require_connected=True)

        now = utc_now()
        token = generate_id()
        post = Post(
            id=generate_id(),
            user_id=user_id,
            content=content,
            scheduled_for=now,
            status=PostStatus.SCHEDULED,
            lease_token=token,
            lease_expires_at=now + self.lease_duration,
        )
        await self.db.insert_post(post.to_row())
        logger.info("[LIFECYCLE] Post %s recorded, publishing now", post.id)

        return await self._publish_claimed(post, token, credentials)

    # ================================================================
    # PUBLISH
    # ================================================================

    async def publish_post(
        self,
        post_id: str,
        user_id: Optional[str] = None,
    ) -> PublishOutcome:
        """Publish one stored post, at most once.

        Idempotent per post: a post that already has a ``remote_id`` is
        returned as-is, and a post whose lease another worker holds is
        skipped.

        Args:
            post_id: Post to publish.
            user_id: Owner scope; ``None`` for the background trigger.

        Raises:
            PostNotFoundError: If the post does not exist for this owner.
            InvalidTransitionError: If the post is a draft.
        """
        row = await self.db.get_post(post_id, user_id)
        if row is None:
            raise PostNotFoundError(post_id)
        post = Post.from_row(row)

        if post.status is PostStatus.DRAFT:
            raise InvalidTransitionError(post.id, post.status.value, "published")

        return await self._claim_and_publish(post)

    async def retry_post(self, post_id: str, user_id: str) -> PublishOutcome:
        """Re-attempt a failed post with its stored content.

        Raises:
            PostNotFoundError: If the post does not exist for this owner.
            InvalidTransitionError: If the post is not ``failed``.
        """
        row = await self.db.get_post(post_id, user_id)
        if row is None:
            raise PostNotFoundError(post_id)
        post = Post.from_row(row)

        if post.status is not PostStatus.FAILED:
            raise InvalidTransitionError(post.id, post.status.value, "retry")

        logger.info("[LIFECYCLE] Retrying failed post %s", post.id)
        return await self._claim_and_publish(post)

    async def process_due_posts(self, now: Optional[datetime] = None) -> DueRunSummary:
        """Publish every due scheduled post once.

        Safe to call repeatedly and from several processes: each post is
        guarded by its lease.  A failure on one post never stops the scan.
        *now* only selects which posts are due; every lease is timed from
        the moment it is claimed.

        Returns:
            Counts of due, claimed, succeeded, failed and skipped posts.
        """
        now = now or utc_now()
        rows = await self.db.get_due_posts(now)
        summary = DueRunSummary(due=len(rows))
        if not rows:
            return summary

        logger.info("[LIFECYCLE] Found %d posts due for publishing", len(rows))
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(row: Dict[str, Any]) -> None:
            async with semaphore:
                try:
                    outcome = await self._claim_and_publish(Post.from_row(row))
                except Exception:
                    logger.exception(
                        "[LIFECYCLE] Unexpected error publishing due post %s",
                        row.get("id"),
                    )
                    outcome = PublishOutcome(
                        success=False, post_id=row.get("id"), error="internal error"
                    )
                summary.record(outcome)

        await asyncio.gather(*(run_one(row) for row in rows))

        logger.info(
            "[LIFECYCLE] Due scan complete: %s",
            summary.to_dict(),
        )
        return summary

    async def _claim_and_publish(self, post: Post) -> PublishOutcome:
        """Take the lease on *post*, resolve credentials, and publish."""
        if post.remote_id:
            await self.events.record(
                PublishEventKind.ALREADY_PUBLISHED,
                post.id,
                "Post already has a remote id; nothing to do",
                user_id=post.user_id,
                remote_id=post.remote_id,
            )
            return PublishOutcome(
                success=True, post_id=post.id, remote_id=post.remote_id, skipped=True
            )

        if not post.status.is_publishable:
            raise InvalidTransitionError(post.id, post.status.value, "published")

        token = generate_id()
        claimed = None
        claim_now = utc_now()
        if not post.lease_is_active(claim_now):
            claimed = await self.db.claim_post(
                post.id,
                token,
                expires_at=claim_now + self.lease_duration,
                now=claim_now,
                user_id=post.user_id,
            )
        if claimed is None:
            await self.events.record(
                PublishEventKind.SKIPPED,
                post.id,
                "Lease held by another worker or post no longer publishable",
                user_id=post.user_id,
            )
            return PublishOutcome(
                success=False,
                post_id=post.id,
                error="Post is already being published",
                skipped=True,
            )

        post = Post.from_row(claimed)
        try:
            credentials = await self.credentials.resolve(
                post.user_id, require_connected=True
            )
        except CredentialsError as exc:
            await self._finalize_failure(post, token, str(exc))
            await self.events.record(
                PublishEventKind.CREDENTIALS_ERROR,
                post.id,
                str(exc),
                user_id=post.user_id,
            )
            return PublishOutcome(success=False, post_id=post.id, error=str(exc))

        return await self._publish_claimed(post, token, credentials)

    async def _publish_claimed(
        self, post: Post, token: str, credentials: XCredentials
    ) -> PublishOutcome:
        """Call X for a post whose lease *token* we hold, then finalize."""
        deadline = self.publish_deadline(post.lease_expires_at)
        if deadline <= 0:
            message = (
                "Lease ran out before publishing started; the post was not "
                "sent to X"
            )
            await self._finalize_failure(post, token, message)
            await self.events.record(
                PublishEventKind.LEASE_EXPIRED,
                post.id,
                message,
                user_id=post.user_id,
                retriable=True,
            )
            return PublishOutcome(
                success=False, post_id=post.id, error=message, retriable=True
            )

        started = time.monotonic()
        try:
            tweet = await asyncio.wait_for(
                self.x_client.publish(post.content, credentials),
                timeout=deadline,
            )
        except asyncio.TimeoutError as exc:
            return await self._handle_remote_failure(
                post, token, TransportError("publish", exc), started
            )
        except RemoteError as exc:
            return await self._handle_remote_failure(post, token, exc, started)

        duration_ms = int((time.monotonic() - started) * 1000)
        published_fields = {
            "status": PostStatus.PUBLISHED.value,
            "published": True,
            "remote_id": tweet.remote_id,
            "error": None,
        }

        if not await self.db.finalize_post(post.id, token, published_fields):
            # Lease expired and was recovered meanwhile; the tweet exists,
            # so its id still has to be recorded.
            await self.events.record(
                PublishEventKind.LEASE_LOST,
                post.id,
                "Lease lost before the result was stored; recording remote id",
                user_id=post.user_id,
                remote_id=tweet.remote_id,
            )
            stored = await self.db.update_post(
                post.id,
                post.user_id,
                {**published_fields, "lease_token": None, "lease_expires_at": None},
            )
            if stored is None:
                logger.warning(
                    "[LIFECYCLE] Post %s was deleted while publishing (remote_id=%s)",
                    post.id,
                    tweet.remote_id,
                )

        await self.events.record(
            PublishEventKind.PUBLISHED,
            post.id,
            "Published to X",
            user_id=post.user_id,
            remote_id=tweet.remote_id,
            duration_ms=duration_ms,
        )
        logger.info(
            "[LIFECYCLE] Post %s published (remote_id=%s)", post.id, tweet.remote_id
        )
        return PublishOutcome(success=True, post_id=post.id, remote_id=tweet.remote_id)

    async def _handle_remote_failure(
        self, post: Post, token: str, exc: RemoteError, started: float
    ) -> PublishOutcome:
        """Persist ``failed`` for a rejected or unreachable publish."""
        duration_ms = int((time.monotonic() - started) * 1000)
        http_status: Optional[int] = None
        details: Any = None
        message = str(exc)

        if isinstance(exc, RemoteRejected):
            http_status = exc.status_code
            details = exc.details
            message = f"{exc}: {json.dumps(details, ensure_ascii=False, default=str)}"
            kind = PublishEventKind.REJECTED
        else:
            kind = PublishEventKind.TRANSPORT_ERROR

        await self._finalize_failure(post, token, message)
        await self.events.record(
            kind,
            post.id,
            str(exc),
            user_id=post.user_id,
            http_status=http_status,
            retriable=exc.retriable,
            data={"details": details} if details is not None else None,
            duration_ms=duration_ms,
        )
        return PublishOutcome(
            success=False,
            post_id=post.id,
            error=str(exc),
            http_status=http_status,
            details=details,
            retriable=exc.retriable,
        )

    async def _finalize_failure(self, post: Post, token: str, message: str) -> None:
        """Mark the post ``failed`` and release our lease.  Content is untouched."""
        updated = await self.db.finalize_post(
            post.id,
            token,
            {
                "status": PostStatus.FAILED.value,
                "published": False,
                "error": message[:MAX_ERROR_LENGTH],
            },
        )
        if not updated:
            logger.warning(
                "[LIFECYCLE] Lease on post %s was lost before marking it failed",
                post.id,
            )
        else:
            logger.error("[LIFECYCLE] Post %s failed: %s", post.id, message)

    # ================================================================
    # EDIT / DELETE
    # ================================================================

    async def update_post(
        self,
        post_id: str,
        user_id: str,
        content: Optional[str] = None,
        scheduled_for: Optional[datetime] = None,
        status: Optional[PostStatus] = None,
        now: Optional[datetime] = None,
    ) -> Post:
        """Edit an unpublished post's content, schedule, or status.

        *status* may be ``DRAFT`` or ``SCHEDULED``; a failed post may also
        keep ``FAILED`` while its content is fixed before a retry.
        Choosing ``SCHEDULED`` re-checks that the time is in the future and
        that the user's X API is connected.

        Raises:
            PostNotFoundError: If the post does not exist for this owner.
            InvalidTransitionError: For published posts, posts being
                published, or an unsupported target status.
            ValidationError: On bad content or a past schedule time.
            CredentialsError: When scheduling without a connected X API.
        """
        row = await self.db.get_post(post_id, user_id)
        if row is None:
            raise PostNotFoundError(post_id)
        post = Post.from_row(row)

        target = status or post.status
        if not post.status.is_editable or post.remote_id:
            raise InvalidTransitionError(post.id, post.status.value, target.value)
        if post.lease_token is not None:
            raise InvalidTransitionError(
                post.id, post.status.value, "edit while publishing"
            )
        allowed = {PostStatus.DRAFT, PostStatus.SCHEDULED}
        if post.status is PostStatus.FAILED:
            allowed.add(PostStatus.FAILED)
        if target not in allowed:
            raise InvalidTransitionError(post.id, post.status.value, target.value)

        new_content = (
            validate_content(content, self.settings.max_post_length)
            if content is not None
            else post.content
        )
        new_time = ensure_utc(scheduled_for) if scheduled_for else post.scheduled_for
        if target is PostStatus.SCHEDULED:
            new_time = validate_schedule_time(new_time, now)
            await self.credentials.resolve(user_id, require_connected=True)

        fields: Dict[str, Any] = {
            "content": new_content,
            "scheduled_for": new_time.isoformat(),
            "status": target.value,
            "published": False,
        }
        if target is not PostStatus.FAILED:
            fields["error"] = None

        updated = await self.db.update_post(
            post.id,
            user_id,
            fields,
            statuses=[s.value for s in (PostStatus.DRAFT, PostStatus.SCHEDULED, PostStatus.FAILED)],
            unleased=True,
        )
        if updated is None:
            # Claimed or published between our read and write.
            raise InvalidTransitionError(post.id, post.status.value, target.value)

        logger.info(
            "[LIFECYCLE] Post %s updated (%s -> %s)",
            post.id,
            post.status.value,
            target.value,
        )
        return Post.from_row(updated)

    async def delete_post(self, post_id: str, user_id: str) -> None:
        """Delete one of the user's posts, whatever its status.

        Raises:
            PostNotFoundError: If the post does not exist for this owner.
        """
        if not await self.db.delete_post(post_id, user_id):
            raise PostNotFoundError(post_id)
        logger.info("[LIFECYCLE] Post %s deleted by user %s", post_id, user_id)

    # ================================================================
    # READS
    # ================================================================

    async def get_post(self, post_id: str, user_id: str) -> Post:
        """Load one of the user's posts.

        Raises:
            PostNotFoundError: If it does not exist for this owner.
        """
        row = await self.db.get_post(post_id, user_id)
        if row is None:
            raise PostNotFoundError(post_id)
        return Post.from_row(row)

    async def list_posts(
        self,
        user_id: str,
        status: Optional[PostStatus] = None,
        limit: int = 50,
    ) -> List[Post]:
        """List the user's posts, optionally filtered by status."""
        rows = await self.db.list_posts(
            user_id, status.value if status else None, limit
        )
        return [Post.from_row(row) for row in rows]

    async def post_stats(self, user_id: str) -> Dict[str, int]:
        """Count the user's posts per status, plus ``total``."""
        counts = await self.db.count_posts_by_status(user_id)
        stats = {status.value: int(counts.get(status.value, 0)) for status in PostStatus}
        stats["total"] = sum(stats.values())
        return stats

    # ================================================================
    # RECOVERY
    # ================================================================

    async def recover_expired_leases(self, now: Optional[datetime] = None) -> int:
        """Resolve abandoned publish leases to ``failed``.

        A lease that outlived its expiry without a stored ``remote_id``
        means the publishing process crashed or hung.  The post becomes
        ``failed`` with its content intact, ready for an explicit retry.

        Returns:
            Number of posts recovered.
        """
        now = now or utc_now()
        rows = await self.db.get_expired_leases(now)
        recovered = 0

        for row in rows:
            message = (
                f"Publishing did not finish within {self.settings.lease_seconds} "
                "seconds. Check X before retrying."
            )
            if not await self.db.finalize_post(
                row["id"],
                row["lease_token"],
                {
                    "status": PostStatus.FAILED.value,
                    "published": False,
                    "error": message,
                },
            ):
                continue
            recovered += 1
            await self.events.record(
                PublishEventKind.LEASE_EXPIRED,
                row["id"],
                message,
                user_id=row.get("user_id"),
                retriable=True,
            )

        if recovered:
            logger.warning(
                "[LIFECYCLE] Recovery complete: %d expired leases marked as failed",
                recovered,
            )
        return recovered


__all__ = [
    "PostLifecycle",
    "MAX_ERROR_LENGTH",
]
