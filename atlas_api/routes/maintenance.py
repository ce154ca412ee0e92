"""Admin maintenance endpoints: batch reconciliation and the blacklist."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ..auth import AuthContext, require_tier
from ..errors import AtlasError
from ..helpers import get_session, http_error
from ..models import ReconcileRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/admin/reconcile")
async def run_reconcile(
    request: Request,
    body: ReconcileRequest | None = None,
    auth: AuthContext = Depends(require_tier("admin")),
) -> dict[str, Any]:
    """
    Batch-reconcile the whole store.

    Duplicate groups keep their most complete member, enriched from the
    others; the rest are deleted and blacklisted.  With dry_run nothing is
    written.
    """
    session = get_session(request)
    body = body or ReconcileRequest()
    logger.info("Reconcile requested by %s (dry_run=%s)", auth.actor_id, body.dry_run)

    try:
        result = await session.run_reconcile(dry_run=body.dry_run, delay=body.delay)
    except HTTPException:
        raise
    except AtlasError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("Reconcile failed")
        raise HTTPException(status_code=500, detail=f"Reconcile failed: {e}")

    return {
        "summary": result.summary(),
        "groups": [g.to_dict() for g in result.groups],
        "review_pairs": [p.to_dict() for p in result.review_pairs],
    }


@router.get("/api/admin/blacklist", dependencies=[Depends(require_tier("admin"))])
async def get_blacklist(request: Request) -> dict[str, Any]:
    session = get_session(request)
    ids = sorted(session.blacklist.ids)
    return {"count": len(ids), "deleted_ids": ids}
