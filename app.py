"""
ReviewFlow FastAPI Application

A REST API server for the ReviewFlow review pipeline.
Provides endpoints for proposals, watchlists, notifications and discussions.

The acting user is identified by the ``X-Actor-Id`` header; authentication
is left to whatever sits in front of this service.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from reviewflow.config import Config
from reviewflow.models import (
    ChangeType,
    Decision,
    DiscussionThreadDoc,
    NotificationDoc,
    ProposalDoc,
    ProposalStatus,
    WatchlistItemDoc,
)
from reviewflow.services.pipeline import CommentResult, ResolutionResult, ReviewPipeline
from reviewflow.utils.exceptions import (
    ConflictError,
    NotFoundError,
    ReviewFlowError,
    TransientStorageError,
    ValidationError,
)
from reviewflow.utils.logger import get_logger, setup_logging

# Global pipeline instance
pipeline: ReviewPipeline | None = None
logger = get_logger(__name__)

ERROR_STATUS_CODES: dict[type[ReviewFlowError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    TransientStorageError: 503,
}


# Pydantic models for API
class SubmitProposalRequest(BaseModel):
    """Request model for submitting a proposal."""

    target_path: str = Field(..., description="ContentAddress the change applies to")
    change_type: ChangeType
    payload: Any = None
    reason: str = ""


class ResolveProposalRequest(BaseModel):
    """Request model for resolving a proposal."""

    decision: Decision
    note: str | None = Field(default=None, description="Reviewer note (kept on rejects)")


class WatchRequest(BaseModel):
    """Request model for watching or unwatching an address."""

    target_path: str


class CreateThreadRequest(BaseModel):
    """Request model for opening a discussion thread."""

    subject_id: str
    type_id: str | None = None
    content_id: str | None = None
    title: str | None = None


class PostCommentRequest(BaseModel):
    """Request model for posting a comment."""

    text: str
    parent_id: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    pipeline_initialized: bool
    store_backend: str
    notification_fanout: str
    watch_match: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global pipeline

    # Load configuration from environment or use defaults
    config = Config.from_env()

    # Initialize logging with config
    setup_logging(
        level=config.logging.level,
        log_to_file=config.logging.log_to_file,
        log_dir=config.logging.log_dir,
        file_rotation=config.logging.file_rotation,
        file_retention=config.logging.file_retention,
        compression=config.logging.compression,
        serialize=config.logging.serialize,
    )

    logger.info("Starting ReviewFlow server")
    logger.info(
        f"Configuration: Store={config.store.backend}, "
        f"Fanout={config.flags.notification_fanout}, WatchMatch={config.flags.watch_match}"
    )

    pipeline = ReviewPipeline(config)
    await pipeline.initialize()
    await pipeline.start()
    logger.info("ReviewFlow pipeline initialized")

    yield

    # Cleanup
    logger.info("Shutting down ReviewFlow server")
    await pipeline.close()
    pipeline = None
    logger.info("Cleanup complete")


# Create FastAPI app
app = FastAPI(
    title="ReviewFlow API",
    description="Collaborative content review with watchlist notifications",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReviewFlowError)
async def review_flow_error_handler(request: Request, exc: ReviewFlowError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "context": jsonable_encoder(exc.context),
        },
    )


def get_pipeline() -> ReviewPipeline:
    if not pipeline:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline


# Health check endpoint
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    config = pipeline.config if pipeline else Config()
    return HealthResponse(
        status="healthy" if pipeline else "initializing",
        pipeline_initialized=pipeline is not None,
        store_backend=config.store.backend,
        notification_fanout=config.flags.notification_fanout,
        watch_match=config.flags.watch_match,
    )


# Proposal endpoints
@app.post("/proposals", response_model=ProposalDoc, status_code=201)
async def submit_proposal(
    request: SubmitProposalRequest, actor: str = Header(..., alias="X-Actor-Id")
):
    """Submit a change proposal against a content address."""
    return await get_pipeline().submit(
        target_path=request.target_path,
        change_type=request.change_type,
        payload=request.payload,
        reason=request.reason,
        actor=actor,
    )


@app.get("/proposals", response_model=list[ProposalDoc])
async def list_proposals(
    created_by: str | None = Query(default=None),
    status: ProposalStatus | None = Query(default=None),
):
    """List proposals, newest first. Filter by author and/or status."""
    return await get_pipeline().proposals.list_proposals(created_by=created_by, status=status)


@app.get("/proposals/{proposal_id}", response_model=ProposalDoc)
async def get_proposal(proposal_id: str):
    """Retrieve a proposal by ID."""
    return await get_pipeline().proposals.get(proposal_id)


@app.post("/proposals/{proposal_id}/resolve", response_model=ResolutionResult)
async def resolve_proposal(
    proposal_id: str,
    request: ResolveProposalRequest,
    actor: str = Header(..., alias="X-Actor-Id"),
):
    """
    Approve or reject a pending proposal.

    Returns 409 if the proposal was already resolved. The response carries the
    dispatch report: in client mode the fan-out result, in server mode only
    ``queued: true``.
    """
    return await get_pipeline().resolve(
        proposal_id, request.decision, actor=actor, note=request.note
    )


# Watchlist endpoints
@app.put("/watchlist", response_model=WatchlistItemDoc)
async def watch(request: WatchRequest, actor: str = Header(..., alias="X-Actor-Id")):
    """Watch a content address (idempotent)."""
    return await get_pipeline().watch(actor, request.target_path)


@app.delete("/watchlist")
async def unwatch(
    target_path: str = Query(...), actor: str = Header(..., alias="X-Actor-Id")
):
    """Stop watching a content address."""
    await get_pipeline().unwatch(actor, target_path)
    return {"target_path": target_path, "watching": False}


@app.get("/watchlist", response_model=list[WatchlistItemDoc])
async def list_watchlist(actor: str = Header(..., alias="X-Actor-Id")):
    """The acting user's watched addresses."""
    return await get_pipeline().watchlist.watched_by(actor)


# Notification endpoints
@app.get("/notifications", response_model=list[NotificationDoc])
async def list_notifications(
    limit: int = Query(default=10, ge=1, le=100),
    unread_only: bool = Query(default=False),
    actor: str = Header(..., alias="X-Actor-Id"),
):
    """The acting user's latest notifications, newest first."""
    return await get_pipeline().inbox.list_notifications(
        actor, limit=limit, unread_only=unread_only
    )


@app.post("/notifications/read-all")
async def mark_all_notifications_read(actor: str = Header(..., alias="X-Actor-Id")):
    """Mark every notification of the acting user as read."""
    changed = await get_pipeline().inbox.mark_all_read(actor)
    return {"marked_read": changed}


@app.post("/notifications/{notification_id}/read", response_model=NotificationDoc)
async def mark_notification_read(
    notification_id: str,
    read: bool = Query(default=True),
    actor: str = Header(..., alias="X-Actor-Id"),
):
    """Set the read flag of one notification."""
    return await get_pipeline().inbox.mark_read(actor, notification_id, read=read)


# Discussion endpoints
@app.post("/discussions", response_model=DiscussionThreadDoc, status_code=201)
async def create_thread(
    request: CreateThreadRequest, actor: str = Header(..., alias="X-Actor-Id")
):
    """Open a discussion thread on a subject, type or content node."""
    return await get_pipeline().discussions.create_thread(
        subject_id=request.subject_id,
        created_by=actor,
        type_id=request.type_id,
        content_id=request.content_id,
        title=request.title,
    )


@app.post("/discussions/{thread_id}/comments", response_model=CommentResult, status_code=201)
async def post_comment(
    thread_id: str,
    request: PostCommentRequest,
    actor: str = Header(..., alias="X-Actor-Id"),
):
    """Post a comment; watchers of the thread's address and participants are notified."""
    return await get_pipeline().post_comment(
        thread_id, actor, request.text, parent_id=request.parent_id
    )


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "ReviewFlow API",
        "version": "0.1.0",
        "description": "Collaborative content review with watchlist notifications",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
