"""Local review server for Diff Review."""

from diff_review.server.app import create_review_app
from diff_review.server.runner import ServedReview, serve_review

__all__ = [
    "ServedReview",
    "create_review_app",
    "serve_review",
]
