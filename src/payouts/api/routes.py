"""HTTP routes for campaign payouts.

The caller's identity comes from the ``X-User-Id`` header, which the upstream
gateway sets after authenticating the session.  Every handler delegates to
:class:`~payouts.service.PayoutService`; domain failures are rendered by the
handlers in :mod:`payouts.api.errors`.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from payouts.api.schemas import (
    FinishCampaignRequest,
    RejectSubmissionRequest,
    SubmitEngagementRequest,
)
from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import CampaignParams, TransferProof
from payouts.domain.types import SubmissionStatus
from payouts.lifecycle.campaigns import DEFAULT_PAGE_SIZE
from payouts.service import PayoutService

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


def get_service(request: Request) -> PayoutService:
    """Return the service built at startup."""
    service = request.app.state.services.get("payout_service")
    if service is None:
        raise PayoutError(ErrorCode.CONFIG_ERROR, "Payout service is not configured")
    return service


def caller_id(x_user_id: str | None = Header(default=None)) -> str:
    """Return the authenticated caller, or answer 401 when the gateway sent none."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


@router.post("", status_code=201)
async def create_campaign(
    params: CampaignParams,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    campaign = service.create_campaign(user_id, params)
    return {"success": True, "campaign": campaign.model_dump(mode="json")}


@router.post("/{campaign_id}/submissions", status_code=201)
async def submit_engagement(
    campaign_id: str,
    body: SubmitEngagementRequest,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    submission = await service.submit_engagement(
        campaign_id, user_id, body.post_url, body.fee_tx_ref
    )
    return {"success": True, "submission": submission.model_dump(mode="json")}


@router.get("/{campaign_id}/submissions")
async def list_submissions(
    campaign_id: str,
    status: SubmissionStatus | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    result = service.list_submissions(
        campaign_id, user_id, status=status, page=page, limit=limit
    )
    return {
        "success": True,
        "submissions": [s.model_dump(mode="json") for s in result.submissions],
        "pagination": result.model_dump(include={"page", "limit", "total", "pages"}),
    }


@router.post("/{campaign_id}/submissions/{submission_id}/reject")
async def reject_submission(
    campaign_id: str,
    submission_id: str,
    body: RejectSubmissionRequest,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    submission = await service.reject_submission(
        submission_id,
        user_id,
        body.resolved_reason(),
        ban_submitter=body.ban_submitter,
        campaign_id=campaign_id,
    )
    return {"success": True, "submission": submission.model_dump(mode="json")}


@router.post("/{campaign_id}/submissions/{submission_id}/override-approve")
async def override_approve(
    campaign_id: str,
    submission_id: str,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    submission = await service.override_approve(
        submission_id, user_id, campaign_id=campaign_id
    )
    return {"success": True, "submission": submission.model_dump(mode="json")}


@router.post("/{campaign_id}/payment-requests", status_code=201)
async def request_payment(
    campaign_id: str,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    bundle = await service.request_payment(campaign_id, user_id)
    return {"success": True, "payment_request": bundle.model_dump(mode="json")}


@router.get("/{campaign_id}/payment-requests")
async def list_payment_requests(
    campaign_id: str,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    bundles = service.list_payment_requests(campaign_id, user_id)
    return {
        "success": True,
        "payment_requests": [b.model_dump(mode="json") for b in bundles],
    }


@router.post("/{campaign_id}/payment-requests/{bundle_id}/pay")
async def reconcile_payment(
    campaign_id: str,
    bundle_id: str,
    proof: TransferProof,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    bundle = await service.reconcile_payment(campaign_id, bundle_id, user_id, proof)
    return {"success": True, "payment_request": bundle.model_dump(mode="json")}


@router.post("/{campaign_id}/finish")
async def finish_campaign(
    campaign_id: str,
    body: FinishCampaignRequest | None = None,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    proof = body.refund_proof if body is not None else None
    result = await service.finish_campaign(campaign_id, user_id, proof)
    return {"success": True, **result.model_dump(mode="json")}


@router.post("/{campaign_id}/pause")
async def pause_campaign(
    campaign_id: str,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    campaign = service.pause_campaign(campaign_id, user_id)
    return {"success": True, "campaign": campaign.model_dump(mode="json")}


@router.post("/{campaign_id}/resume")
async def resume_campaign(
    campaign_id: str,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    campaign = service.resume_campaign(campaign_id, user_id)
    return {"success": True, "campaign": campaign.model_dump(mode="json")}


@router.get("/{campaign_id}/stats")
async def campaign_stats(
    campaign_id: str,
    user_id: str = Depends(caller_id),
    service: PayoutService = Depends(get_service),
) -> dict[str, Any]:
    stats = service.get_campaign_stats(campaign_id, user_id)
    return {"success": True, "stats": stats.model_dump(mode="json")}
