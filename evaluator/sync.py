"""Mirror the external project catalog into the project store."""
from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx
from sqlalchemy.orm import Session

from evaluator import store
from evaluator.errors import UpstreamFetchError
from evaluator.utils import parse_timestamp_ms, to_float

log = logging.getLogger(__name__)

DEFAULT_CATALOG_URL = "https://manifund.org/api/v0/projects"
_USER_AGENT = "GrantEvaluator/0.1"


def catalog_url() -> str:
    return os.environ.get("EVALUATOR_CATALOG_URL", "").strip() or DEFAULT_CATALOG_URL


def catalog_timeout() -> float | None:
    """Seconds from EVALUATOR_CATALOG_TIMEOUT; unset means no timeout."""
    raw = os.environ.get("EVALUATOR_CATALOG_TIMEOUT", "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"EVALUATOR_CATALOG_TIMEOUT must be a number of seconds, got {raw!r}") from None


# ---------------------------------------------------------------------------
# Record transformation
# ---------------------------------------------------------------------------


def _s(value: object) -> str:
    """Coerce a JSON value to str; structured markup is kept as JSON text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _first(*values: object, default: str = "") -> str:
    """First truthy value as a string, else *default*."""
    for value in values:
        if value:
            return _s(value)
    return default


def _items(value: object) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def amount_raised(record: dict[str, Any]) -> float:
    """Sum of the embedded transaction amounts."""
    return sum(to_float(txn.get("amount")) for txn in _items(record.get("txns")))


def project_fields_from_record(record: dict[str, Any]) -> dict[str, Any]:
    """Map one catalog record to project store fields, defaulting anything missing."""
    profile = record.get("profiles")
    profile_name = profile.get("full_name") if isinstance(profile, dict) else None
    causes = [_s(c.get("title")) for c in _items(record.get("causes")) if c.get("title")]
    return {
        "title": _first(record.get("title"), default="Untitled Project"),
        "description": _first(record.get("description"), record.get("blurb")),
        "creator": _first(record.get("creator"), profile_name, default="Unknown"),
        "slug": _first(record.get("slug")),
        "blurb": _first(record.get("blurb")),
        "amount_raised": amount_raised(record),
        "funding_goal": to_float(record.get("funding_goal")),
        "min_funding": to_float(record.get("min_funding")),
        "stage": _first(record.get("stage"), default="active"),
        "type": _first(record.get("type"), default="grant"),
        # None: the store keeps the existing value or stamps now on insert
        "created_at": parse_timestamp_ms(record.get("created_at")),
        "causes": ", ".join(causes),
    }


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


async def fetch_catalog(
    url: str | None = None, transport: httpx.AsyncBaseTransport | None = None,
) -> list[dict[str, Any]]:
    """GET the catalog and return its records. Raises UpstreamFetchError."""
    url = url or catalog_url()
    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(catalog_timeout()),
            headers={"User-Agent": _USER_AGENT, "Accept": "application/json"},
            transport=transport,
        ) as client:
            resp = await client.get(url)
    except httpx.HTTPError as exc:
        raise UpstreamFetchError(f"Catalog request failed: {exc}") from exc

    if not resp.is_success:
        raise UpstreamFetchError(f"HTTP error! status: {resp.status_code}", resp.status_code)
    try:
        records = resp.json()
    except ValueError as exc:
        raise UpstreamFetchError(f"Catalog response is not valid JSON: {exc}") from exc
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        raise UpstreamFetchError("Catalog response is not a list of project objects")
    return records


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def sync_projects(
    session: Session, *, url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Fetch the catalog and upsert every record in one transaction.

    Failures are reported in the result rather than raised; nothing is
    written when the fetch or any record fails.
    """
    count = 0
    try:
        records = await fetch_catalog(url, transport)
        for record in records:
            external_id = _s(record.get("id")).strip()
            if not external_id:
                log.warning("Skipping catalog record without an id: %s", record.get("title"))
                continue
            store.upsert_project(session, external_id, **project_fields_from_record(record))
            count += 1
        session.commit()
    except Exception as exc:
        session.rollback()
        log.warning("Failed to sync projects: %s", exc)
        return {"success": False, "error": str(exc) or type(exc).__name__}

    log.info("Synced %d projects from catalog", count)
    return {"success": True, "count": count}


async def sync_if_empty(session: Session, **kwargs: Any) -> dict[str, Any] | None:
    """Run sync_projects only when the project store is empty."""
    if store.count_projects(session) > 0:
        return None
    return await sync_projects(session, **kwargs)
