"""HTTP endpoints for the interactive review session."""

import json
import logging
from collections.abc import Callable
from importlib import resources
from typing import Any

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, PlainTextResponse

from diff_review import __version__
from diff_review.engine.rounds import (
    FindingNotFoundError,
    LaunchData,
    ReviewRound,
    RoundStateError,
)
from diff_review.storage import StaleStateError

logger = logging.getLogger(__name__)


def load_review_page() -> str:
    """Return the bundled review page HTML."""
    return (resources.files("diff_review.server") / "static" / "review.html").read_text(
        encoding="utf-8"
    )


async def _read_json(request: Request) -> Any:
    body = await request.body()
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON: {e}") from e


def create_review_app(
    controller: ReviewRound,
    launch: LaunchData,
    token: str,
    on_finish: Callable[[], None] | None = None,
    html: str | None = None,
) -> FastAPI:
    """Create the FastAPI application serving one review round.

    Args:
        controller: Round being reviewed (must already be started)
        launch: Launch data returned by ``controller.begin()``
        token: Secret every non-health request must carry as ``?token=``
        on_finish: Called in the background after a successful submit
        html: Review page override (defaults to the bundled page)

    Returns:
        FastAPI application
    """
    page = html if html is not None else load_review_page()
    # Controller calls write to disk, so they run off the event loop

    app = FastAPI(
        title="Diff Review",
        description="Local review session for annotating a diff",
        version=__version__,
    )

    def require_token(request: Request) -> None:
        if request.query_params.get("token") != token:
            logger.warning(f"Rejected request to {request.url.path}: bad token")
            raise HTTPException(status_code=401, detail="unauthorized")

    def require_review(review_id: str) -> None:
        if review_id != launch.review_id:
            raise HTTPException(status_code=404, detail="not found")

    guarded = [Depends(require_token), Depends(require_review)]

    @app.get("/health", response_class=PlainTextResponse)
    async def health_check():
        """Health check endpoint."""
        return "ok"

    @app.get("/review/{review_id}", response_class=HTMLResponse, dependencies=guarded)
    async def review_page():
        """Serve the review page."""
        return page

    @app.get("/api/review/{review_id}", dependencies=guarded)
    async def review_data():
        """Files, open findings, draft and taxonomy for the round."""
        return launch.to_dict()

    @app.put("/api/review/{review_id}/draft", dependencies=guarded)
    async def save_draft(request: Request):
        """Persist the reviewer's draft without validating it."""
        payload = await _read_json(request)
        try:
            await run_in_threadpool(controller.save_draft, payload)
        except (RoundStateError, StaleStateError) as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return {"ok": True}

    @app.post("/api/review/{review_id}/resolve", dependencies=guarded)
    async def resolve_finding(request: Request):
        """Mark one open finding as resolved."""
        payload = await _read_json(request)
        finding_id = payload.get("finding_id") if isinstance(payload, dict) else None
        if not isinstance(finding_id, str) or not finding_id:
            raise HTTPException(status_code=400, detail="finding_id required")
        try:
            await run_in_threadpool(controller.resolve, finding_id)
        except FindingNotFoundError as e:
            raise HTTPException(
                status_code=404, detail="finding not found or already resolved"
            ) from e
        except (RoundStateError, StaleStateError) as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return {"ok": True}

    @app.post("/api/review/{review_id}/submit", dependencies=guarded)
    async def submit_review(request: Request, background_tasks: BackgroundTasks):
        """Accept the submission and finish the round."""
        payload = await _read_json(request)
        try:
            result = await run_in_threadpool(controller.submit, payload)
        except (RoundStateError, StaleStateError) as e:
            raise HTTPException(status_code=409, detail=str(e)) from e

        if on_finish is not None:
            background_tasks.add_task(on_finish)
        return {
            "ok": True,
            "round": result.round,
            "json_path": result.json_path,
            "md_path": result.md_path,
        }

    return app
