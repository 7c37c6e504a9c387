"""Run the review server until the round is submitted or interrupted."""

import asyncio
import logging
import socket
import uuid
from dataclasses import dataclass

import click
import uvicorn

from diff_review.engine.rounds import LaunchData, ReviewRound, RoundPhase, RoundResult
from diff_review.server.app import create_review_app

logger = logging.getLogger(__name__)


@dataclass
class ServedReview:
    """Result of an interactive review session."""

    result: RoundResult
    url: str
    opened: bool


def _bind(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((host, port))
    return sock


async def _serve(
    server: uvicorn.Server, sock: socket.socket, url: str, open_browser: bool, state: dict
) -> None:
    task = asyncio.create_task(server.serve(sockets=[sock]))
    while not server.started and not task.done():
        await asyncio.sleep(0.05)

    if server.started:
        logger.info(f"Review launched at {url}")
        if open_browser:
            state["opened"] = click.launch(url) == 0
    await task


def serve_review(
    controller: ReviewRound,
    launch: LaunchData,
    host: str = "127.0.0.1",
    port: int = 0,
    open_browser: bool = True,
) -> ServedReview:
    """Serve ``launch`` and block until the reviewer submits or the server stops.

    Stopping the server (e.g. Ctrl+C) before submission cancels the round.

    Args:
        controller: Started round to drive
        launch: Launch data returned by ``controller.begin()``
        host: Interface to bind
        port: Port to bind (0 picks a free port)
        open_browser: Whether to open the review page in a browser

    Returns:
        ServedReview with the round result, URL and whether a browser opened
    """
    token = uuid.uuid4().hex
    sock = _bind(host, port)
    bound_port = sock.getsockname()[1]
    url = f"http://{host}:{bound_port}/review/{launch.review_id}?token={token}"
    state = {"opened": False}

    server: uvicorn.Server | None = None

    def on_finish() -> None:
        if server is not None:
            server.should_exit = True

    app = create_review_app(controller, launch, token, on_finish=on_finish)
    server = uvicorn.Server(
        uvicorn.Config(app, host=host, port=bound_port, log_level="warning")
    )

    try:
        asyncio.run(_serve(server, sock, url, open_browser, state))
    except KeyboardInterrupt:
        logger.info("Review server interrupted")
    finally:
        sock.close()

    if controller.phase == RoundPhase.AWAITING_REVIEW:
        controller.cancel()

    return ServedReview(result=controller.result, url=url, opened=state["opened"])
