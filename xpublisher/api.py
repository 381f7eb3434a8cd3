"""
HTTP entry points for the X post publisher (FastAPI).

Routes:
    POST /api/twitter/post              publish now
    POST /api/twitter/verify            connection test
    POST /api/trigger-scheduled-posts   publish everything that is due
    GET  /api/trigger-scheduled-posts   usage description
    PUT  /api/x-settings                save credentials (+ auto-verify)
    GET  /api/posts                     list a user's posts
    GET  /api/posts/stats               per-status counts
    POST /api/posts                     save a draft or schedule a post
    PATCH /api/posts/{post_id}          edit an unpublished post
    DELETE /api/posts/{post_id}         delete a post
    POST /api/posts/{post_id}/retry     retry a failed post
    GET  /api/health

Errors are answered as ``{"success": false, "error": ...}``.  A rejection
by X mirrors the platform's HTTP status and carries its error body under
``details``.

The lifecycle is built lazily by :func:`get_lifecycle`; tests override it
through ``app.dependency_overrides``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from xpublisher.config import get_settings
from xpublisher.credentials import CredentialResolver
from xpublisher.database import get_db
from xpublisher.exceptions import (
    CredentialsError,
    CredentialsNotFound,
    InvalidTransitionError,
    PostNotFoundError,
    PublisherBaseError,
    RemoteRejected,
    TransportError,
    ValidationError,
    error_payload,
)
from xpublisher.models import PublishOutcome
from xpublisher.scheduling.lifecycle import PostLifecycle
from xpublisher.scheduling.models import Post, PostStatus
from xpublisher.tools.x_client import XClient

logger = logging.getLogger(__name__)

app = FastAPI(title="X Post Publisher")


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)


class PublishRequest(_Request):
    content: str


class UserRequest(_Request):
    pass


class CredentialsRequest(_Request):
    api_key: Optional[str] = None
    api_key_secret: Optional[str] = None
    access_token: Optional[str] = None
    access_token_secret: Optional[str] = None
    bearer_token: Optional[str] = None
    verify: bool = True


class PostCreateRequest(_Request):
    content: str
    scheduled_for: Optional[datetime] = Field(default=None, alias="scheduledFor")
    status: PostStatus = PostStatus.DRAFT


class PostUpdateRequest(_Request):
    content: Optional[str] = None
    scheduled_for: Optional[datetime] = Field(default=None, alias="scheduledFor")
    status: Optional[PostStatus] = None


# =============================================================================
# DEPENDENCIES
# =============================================================================

_lifecycle: Optional[PostLifecycle] = None


async def get_lifecycle() -> PostLifecycle:
    """Build the process-wide lifecycle on first use."""
    global _lifecycle

    if _lifecycle is None:
        settings = get_settings()
        db = await get_db()
        x_client = XClient(
            base_url=settings.api_base_url,
            timeout=settings.request_timeout_seconds,
        )
        _lifecycle = PostLifecycle(
            db, x_client, CredentialResolver(db, x_client), settings=settings
        )
    return _lifecycle


async def get_resolver(
    lifecycle: PostLifecycle = Depends(get_lifecycle),
) -> CredentialResolver:
    return lifecycle.credentials


# =============================================================================
# ERROR MAPPING
# =============================================================================


def status_for(error: Exception) -> int:
    """HTTP status for an error raised by the lifecycle."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, (CredentialsNotFound, PostNotFoundError)):
        return 404
    if isinstance(error, CredentialsError):
        return 400
    if isinstance(error, InvalidTransitionError):
        return 409
    if isinstance(error, RemoteRejected) and error.status_code >= 400:
        return error.status_code
    if isinstance(error, (RemoteRejected, TransportError)):
        return 502
    return 500


def outcome_response(outcome: PublishOutcome) -> JSONResponse:
    """Render a publish outcome; failures mirror the platform's status."""
    if outcome.success:
        return JSONResponse(outcome.to_dict())
    if outcome.skipped:
        status_code = 409
    elif outcome.http_status and outcome.http_status >= 400:
        status_code = outcome.http_status
    elif outcome.retriable or outcome.http_status:
        status_code = 502
    else:
        status_code = 400
    return JSONResponse(outcome.to_dict(), status_code=status_code)


def post_to_dict(post: Post) -> Dict[str, Any]:
    return {
        "id": post.id,
        "userId": post.user_id,
        "content": post.content,
        "scheduledFor": post.scheduled_for.isoformat(),
        "status": post.status.value,
        "published": post.published,
        "remoteId": post.remote_id,
        "error": post.error,
        "createdAt": post.created_at.isoformat(),
        "updatedAt": post.updated_at.isoformat(),
    }


@app.exception_handler(PublisherBaseError)
async def _publisher_error_handler(request: Request, exc: PublisherBaseError):
    return JSONResponse(error_payload(exc), status_code=status_for(exc))


@app.exception_handler(ValidationError)
async def _validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(error_payload(exc), status_code=400)


# =============================================================================
# X API ROUTES
# =============================================================================


@app.post("/api/twitter/post")
async def publish_tweet(
    body: PublishRequest,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    """Record the post, publish it to X, and return the outcome."""
    outcome = await lifecycle.publish_now(body.user_id, body.content)
    return outcome_response(outcome)


@app.post("/api/twitter/verify")
async def verify_credentials(
    body: UserRequest,
    resolver: CredentialResolver = Depends(get_resolver),
):
    result = await resolver.verify_connection(body.user_id)
    if result.get("success"):
        return result
    status_code = result.get("httpStatus") or (502 if result.get("retriable") else 400)
    return JSONResponse(result, status_code=status_code)


@app.put("/api/x-settings")
async def save_x_settings(
    body: CredentialsRequest,
    resolver: CredentialResolver = Depends(get_resolver),
):
    fields = body.model_dump(
        include={
            "api_key",
            "api_key_secret",
            "access_token",
            "access_token_secret",
            "bearer_token",
        }
    )
    return await resolver.save_credentials(body.user_id, fields, verify=body.verify)


# =============================================================================
# TRIGGER
# =============================================================================


@app.post("/api/trigger-scheduled-posts")
async def trigger_scheduled_posts(
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    logger.info("[API] Triggering scheduled post processing")
    summary = await lifecycle.process_due_posts()
    return {"success": True, **summary.to_dict()}


@app.get("/api/trigger-scheduled-posts")
async def trigger_usage():
    return {
        "message": "Scheduled post processor API endpoint",
        "usage": "Send POST request to trigger the processor",
    }


# =============================================================================
# POSTS
# =============================================================================


@app.get("/api/posts")
async def list_posts(
    user_id: str = Query(..., alias="userId", min_length=1),
    status: Optional[PostStatus] = None,
    limit: int = Query(50, ge=1, le=500),
    lifecycle: PostLifecycle = Depends(get_lifecycle),
) -> List[Dict[str, Any]]:
    posts = await lifecycle.list_posts(user_id, status, limit)
    return [post_to_dict(post) for post in posts]


@app.get("/api/posts/stats")
async def post_stats(
    user_id: str = Query(..., alias="userId", min_length=1),
    lifecycle: PostLifecycle = Depends(get_lifecycle),
) -> Dict[str, int]:
    return await lifecycle.post_stats(user_id)


@app.post("/api/posts", status_code=201)
async def create_post(
    body: PostCreateRequest,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    """Save a draft, or schedule a post when ``status`` is ``scheduled``."""
    if body.status is PostStatus.SCHEDULED:
        post = await lifecycle.schedule_post(
            body.user_id, body.content, body.scheduled_for
        )
    elif body.status is PostStatus.DRAFT:
        post = await lifecycle.create_draft(
            body.user_id, body.content, body.scheduled_for
        )
    else:
        raise ValidationError(
            f"New posts must be 'draft' or 'scheduled', got '{body.status.value}'"
        )
    return post_to_dict(post)


@app.patch("/api/posts/{post_id}")
async def update_post(
    post_id: str,
    body: PostUpdateRequest,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    post = await lifecycle.update_post(
        post_id,
        body.user_id,
        content=body.content,
        scheduled_for=body.scheduled_for,
        status=body.status,
    )
    return post_to_dict(post)


@app.delete("/api/posts/{post_id}")
async def delete_post(
    post_id: str,
    user_id: str = Query(..., alias="userId", min_length=1),
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    await lifecycle.delete_post(post_id, user_id)
    return {"success": True, "postId": post_id}


@app.post("/api/posts/{post_id}/retry")
async def retry_post(
    post_id: str,
    body: UserRequest,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    outcome = await lifecycle.retry_post(post_id, body.user_id)
    return outcome_response(outcome)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


__all__ = [
    "app",
    "get_lifecycle",
    "get_resolver",
    "status_for",
]
