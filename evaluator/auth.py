"""Reviewer identity.

Authentication happens upstream; the identity provider forwards a stable
reviewer identifier in a request header.
"""
from __future__ import annotations

import os

from fastapi import Request

from evaluator.errors import AuthenticationError

DEFAULT_REVIEWER_HEADER = "X-Reviewer-Id"


def reviewer_header() -> str:
    return os.environ.get("EVALUATOR_REVIEWER_HEADER", "").strip() or DEFAULT_REVIEWER_HEADER


def current_reviewer(request: Request) -> str | None:
    """Reviewer id for this request, or None when unauthenticated."""
    value = request.headers.get(reviewer_header(), "").strip()
    return value or None


def require_reviewer(request: Request) -> str:
    reviewer_id = current_reviewer(request)
    if reviewer_id is None:
        raise AuthenticationError("Must be authenticated to evaluate projects")
    return reviewer_id
