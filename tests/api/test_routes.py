"""Tests for the campaign payout HTTP routes.

The app is built with ``create_app`` around a service whose verifiers are
in-memory fakes, so each request runs the real ledger logic.
"""

from __future__ import annotations

import pytest
from conftest import ALICE, BOB, CREATOR, PayoutWorld
from fastapi.testclient import TestClient

from payouts.app import create_app
from payouts.domain.types import SubmissionStatus


def _as(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


@pytest.fixture
def client(world: PayoutWorld) -> TestClient:
    app = create_app({"ledger_conn": world.conn, "payout_service": world.service})
    return TestClient(app)


def _create(client: TestClient, **overrides: object) -> str:
    body = {"total_budget": 1_000_000, "cpm_rate": 10_000, **overrides}
    response = client.post("/campaigns", json=body, headers=_as(CREATOR))
    assert response.status_code == 201
    return response.json()["campaign"]["campaign_id"]


def _submit(client: TestClient, world: PayoutWorld, campaign_id: str, engagement: int,
            submitter: str = ALICE) -> dict:
    post_id = world.post(engagement, submitter)
    return client.post(
        f"/campaigns/{campaign_id}/submissions",
        json={
            "post_url": f"https://x.com/{submitter}/status/{post_id}",
            "fee_tx_ref": world.fee(),
        },
        headers=_as(submitter),
    )


# ---------------------------------------------------------------------------
# Identity and error envelope
# ---------------------------------------------------------------------------


class TestEnvelope:
    def test_missing_caller_is_401(self, client: TestClient) -> None:
        response = client.post("/campaigns", json={"total_budget": 1, "cpm_rate": 1})
        assert response.status_code == 401

    def test_blank_caller_is_401(self, client: TestClient) -> None:
        response = client.get("/campaigns/any/stats", headers=_as("   "))
        assert response.status_code == 401

    def test_domain_error(self, client: TestClient) -> None:
        response = client.get("/campaigns/missing/stats", headers=_as(ALICE))
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "NOT_FOUND",
            "message": "Campaign not found",
        }

    def test_validation_error(self, client: TestClient) -> None:
        response = client.post(
            "/campaigns", json={"total_budget": 0, "cpm_rate": 10}, headers=_as(CREATOR)
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["message"].startswith("total_budget: ")

    def test_missing_field(self, client: TestClient) -> None:
        campaign_id = _create(client)
        response = client.post(
            f"/campaigns/{campaign_id}/submissions",
            json={"post_url": "https://x.com/alice/status/1"},
            headers=_as(ALICE),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_service_not_configured(self, world: PayoutWorld) -> None:
        client = TestClient(create_app({"ledger_conn": world.conn, "payout_service": None}))
        response = client.get("/campaigns/any/stats", headers=_as(ALICE))
        assert response.status_code == 503
        assert response.json()["error"] == "CONFIG_ERROR"

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get(
            "/campaigns/missing/stats", headers={**_as(ALICE), "X-Request-ID": "req-42"}
        )
        assert response.headers["X-Request-ID"] == "req-42"


# ---------------------------------------------------------------------------
# Full flow
# ---------------------------------------------------------------------------


class TestCampaignFlow:
    def test_submit_request_pay_and_stats(self, client: TestClient, world: PayoutWorld) -> None:
        campaign_id = _create(client)

        submitted = _submit(client, world, campaign_id, 4_000)
        assert submitted.status_code == 201
        submission = submitted.json()["submission"]
        assert submission["status"] == SubmissionStatus.APPROVED.value
        assert submission["payout_amount"] == 40_000

        requested = client.post(
            f"/campaigns/{campaign_id}/payment-requests", headers=_as(ALICE)
        )
        assert requested.status_code == 201
        bundle = requested.json()["payment_request"]
        assert bundle["total_amount"] == 40_000

        listed = client.get(f"/campaigns/{campaign_id}/payment-requests", headers=_as(CREATOR))
        assert [b["bundle_id"] for b in listed.json()["payment_requests"]] == [
            bundle["bundle_id"]
        ]

        paid = client.post(
            f"/campaigns/{campaign_id}/payment-requests/{bundle['bundle_id']}/pay",
            json={"tx_ref": "payout-tx", "sequence_index": 0},
            headers=_as(CREATOR),
        )
        assert paid.status_code == 200
        assert paid.json()["payment_request"]["status"] == "paid"

        stats = client.get(f"/campaigns/{campaign_id}/stats", headers=_as(ALICE)).json()
        assert stats["stats"]["budget_spent"] == 40_000
        assert stats["stats"]["caller_paid"] == 40_000

    def test_submission_refused(self, client: TestClient, world: PayoutWorld) -> None:
        campaign_id = _create(client, min_views=5_000)
        response = _submit(client, world, campaign_id, 10)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INSUFFICIENT_ENGAGEMENT"
        assert body["engagement_count"] == 10
        assert "submission_id" in body

    def test_reject_with_preset_and_override(
        self, client: TestClient, world: PayoutWorld
    ) -> None:
        campaign_id = _create(client)
        submission_id = _submit(client, world, campaign_id, 1_000).json()["submission"][
            "submission_id"
        ]

        rejected = client.post(
            f"/campaigns/{campaign_id}/submissions/{submission_id}/reject",
            json={"preset": "Botting", "reason": "Views spiked overnight"},
            headers=_as(CREATOR),
        )
        assert rejected.status_code == 200
        body = rejected.json()["submission"]
        assert body["status"] == "creator_rejected"
        assert body["rejection_reason"] == "Botting: Views spiked overnight"

        approved = client.post(
            f"/campaigns/{campaign_id}/submissions/{submission_id}/override-approve",
            headers=_as(CREATOR),
        )
        assert approved.json()["submission"]["status"] == "approved"

    def test_reject_needs_reason(self, client: TestClient, world: PayoutWorld) -> None:
        campaign_id = _create(client)
        submission_id = _submit(client, world, campaign_id, 1_000).json()["submission"][
            "submission_id"
        ]
        response = client.post(
            f"/campaigns/{campaign_id}/submissions/{submission_id}/reject",
            json={"preset": "Other"},
            headers=_as(CREATOR),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "MISSING_REASON"

    def test_submitter_cannot_reject(self, client: TestClient, world: PayoutWorld) -> None:
        campaign_id = _create(client)
        submission_id = _submit(client, world, campaign_id, 1_000).json()["submission"][
            "submission_id"
        ]
        response = client.post(
            f"/campaigns/{campaign_id}/submissions/{submission_id}/reject",
            json={"reason": "mine"},
            headers=_as(ALICE),
        )
        assert response.status_code == 403

    def test_pause_resume(self, client: TestClient) -> None:
        campaign_id = _create(client)
        paused = client.post(f"/campaigns/{campaign_id}/pause", headers=_as(CREATOR))
        assert paused.json()["campaign"]["status"] == "paused"
        resumed = client.post(f"/campaigns/{campaign_id}/resume", headers=_as(CREATOR))
        assert resumed.json()["campaign"]["status"] == "open"

    def test_finish_without_body(self, client: TestClient, world: PayoutWorld) -> None:
        campaign_id = _create(client, total_budget=50_000)
        _submit(client, world, campaign_id, 4_000)

        response = client.post(f"/campaigns/{campaign_id}/finish", headers=_as(CREATOR))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "completed"
        assert body["auto_rejected"] == 1
        assert body["refund_amount"] == 50_000

    def test_finish_with_refund_proof(self, client: TestClient) -> None:
        campaign_id = _create(client)
        response = client.post(
            f"/campaigns/{campaign_id}/finish",
            json={"refund_proof": {"tx_ref": "refund-tx"}},
            headers=_as(CREATOR),
        )
        assert response.json()["refund_tx_ref"] == "refund-tx"

    def test_duplicate_is_409(self, client: TestClient, world: PayoutWorld) -> None:
        campaign_id = _create(client)
        post_id = world.post(1_000, BOB)
        body = {"post_url": f"https://x.com/bob/status/{post_id}"}
        first = client.post(
            f"/campaigns/{campaign_id}/submissions",
            json={**body, "fee_tx_ref": world.fee()},
            headers=_as(BOB),
        )
        assert first.status_code == 201
        second = client.post(
            f"/campaigns/{campaign_id}/submissions",
            json={**body, "fee_tx_ref": world.fee()},
            headers=_as(BOB),
        )
        assert second.status_code == 409
        assert second.json()["error"] == "DUPLICATE"

    def test_list_submissions(self, client: TestClient, world: PayoutWorld) -> None:
        campaign_id = _create(client)
        _submit(client, world, campaign_id, 1_000, ALICE)
        world.clock.advance(1)
        bob_id = _submit(client, world, campaign_id, 2_000, BOB).json()["submission"][
            "submission_id"
        ]

        everyone = client.get(f"/campaigns/{campaign_id}/submissions", headers=_as(CREATOR))
        assert everyone.status_code == 200
        body = everyone.json()
        assert body["success"] is True
        assert [s["submitter_id"] for s in body["submissions"]] == [BOB, ALICE]
        assert body["pagination"] == {"page": 1, "limit": 20, "total": 2, "pages": 1}

        own = client.get(
            f"/campaigns/{campaign_id}/submissions",
            params={"status": "approved", "limit": 1},
            headers=_as(BOB),
        ).json()
        assert [s["submission_id"] for s in own["submissions"]] == [bob_id]
        assert own["pagination"] == {"page": 1, "limit": 1, "total": 1, "pages": 1}

    def test_list_submissions_bad_status(self, client: TestClient) -> None:
        campaign_id = _create(client)
        response = client.get(
            f"/campaigns/{campaign_id}/submissions",
            params={"status": "bogus"},
            headers=_as(CREATOR),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
