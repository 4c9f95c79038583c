from __future__ import annotations

from fastapi.testclient import TestClient

ADMIN_HEADERS = {"Authorization": "Bearer admin-token"}
USER_HEADERS = {"Authorization": "Bearer user-token"}
VISITOR_HEADERS = {"X-Visitor-Id": "visitor-0001"}


def test_approving_promotion_payment_features_and_approves_post(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="hidden", homepage_payment_status="pending")
    payment = fake_repo.seed_payment(post_id=post["id"], payment_type="post_promotion", amount=299.0)

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "approved"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "approved"
    assert data["approved_at"] is not None
    assert data["post"]["status"] == "approved"
    assert fake_repo.posts[post["id"]]["status"] == "approved"
    assert fake_repo.posts[post["id"]]["homepage_payment_status"] == "approved"


def test_rejecting_promotion_payment_marks_homepage_rejected(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved", homepage_payment_status="pending")
    payment = fake_repo.seed_payment(post_id=post["id"], payment_type="post_promotion", amount=299.0)

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "rejected", "reason": "receipt unreadable"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    assert fake_repo.posts[post["id"]]["status"] == "approved"
    assert fake_repo.posts[post["id"]]["homepage_payment_status"] == "rejected"


def test_approving_unlock_payment_approves_paid_request(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved")
    request = fake_repo.seed_unlock_request(post_id=post["id"], status="paid")
    payment = fake_repo.seed_payment(post_id=post["id"], unlock_request_id=request["id"])

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "approved"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    assert fake_repo.unlock_requests[request["id"]]["status"] == "approved"


def test_approving_unlock_payment_without_proof_conflicts(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved")
    request = fake_repo.seed_unlock_request(post_id=post["id"], status="pending")
    payment = fake_repo.seed_payment(post_id=post["id"], unlock_request_id=request["id"])

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "approved"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 409
    assert fake_repo.payments[payment["id"]]["status"] == "pending"
    assert fake_repo.unlock_requests[request["id"]]["status"] == "pending"


def test_hidden_payment_is_terminal(client: TestClient, fake_repo) -> None:
    payment = fake_repo.seed_payment(status="hidden")

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "approved"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": "invalid payment status transition: hidden -> approved",
    }


def test_hiding_pending_promotion_frees_post_for_a_new_request(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved")
    first = client.post("/payments", json={"post_id": post["id"], "payment_type": "post_promotion"})
    payment_id = first.json()["data"]["id"]

    hidden = client.patch(
        f"/admin/payments/{payment_id}",
        json={"status": "hidden", "reason": "duplicate upload"},
        headers=ADMIN_HEADERS,
    )

    assert hidden.status_code == 200
    assert hidden.json()["data"]["status"] == "hidden"
    assert fake_repo.posts[post["id"]]["homepage_payment_status"] == "rejected"
    assert fake_repo.posts[post["id"]]["status"] == "approved"

    retry = client.post("/payments", json={"post_id": post["id"], "payment_type": "post_promotion"})

    assert retry.status_code == 201
    assert fake_repo.posts[post["id"]]["homepage_payment_status"] == "pending"


def test_hiding_approved_promotion_keeps_post_featured(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved", homepage_payment_status="approved")
    payment = fake_repo.seed_payment(
        post_id=post["id"], payment_type="post_promotion", amount=299.0, status="approved"
    )

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "hidden"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    assert fake_repo.posts[post["id"]]["homepage_payment_status"] == "approved"


def test_hiding_pending_unlock_payment_rejects_request(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved")
    request = fake_repo.seed_unlock_request(post_id=post["id"], status="paid")
    payment = fake_repo.seed_payment(post_id=post["id"], unlock_request_id=request["id"])

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "hidden"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    assert fake_repo.payments[payment["id"]]["status"] == "hidden"
    assert fake_repo.unlock_requests[request["id"]]["status"] == "rejected"

    retry = client.post(f"/posts/{post['id']}/contact-unlock-requests", headers=VISITOR_HEADERS)

    assert retry.status_code == 201


def test_payment_decision_rejects_unknown_status(client: TestClient, fake_repo) -> None:
    payment = fake_repo.seed_payment()

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "refunded"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 400
    assert fake_repo.payments[payment["id"]]["status"] == "pending"


def test_payment_decision_requires_admin(client: TestClient, fake_repo) -> None:
    payment = fake_repo.seed_payment()

    response = client.patch(
        f"/admin/payments/{payment['id']}",
        json={"status": "approved"},
        headers=USER_HEADERS,
    )

    assert response.status_code == 403


def test_homepage_decision_by_post_id(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved", homepage_payment_status="pending")
    payment = fake_repo.seed_payment(post_id=post["id"], payment_type="post_promotion", amount=299.0)

    response = client.patch(
        f"/admin/posts/{post['id']}/homepage-payment",
        json={"decision": "approved"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["payment_ids"] == [payment["id"]]
    assert data["post"]["homepage_payment_status"] == "approved"
    assert data["post"]["is_featured"] is True
    assert fake_repo.payments[payment["id"]]["status"] == "approved"


def test_homepage_decision_without_pending_payment_returns_404(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved")

    response = client.patch(
        f"/admin/posts/{post['id']}/homepage-payment",
        json={"decision": "approved"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 404


def test_create_contact_unlock_payment_defaults_price(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved")

    response = client.post(
        "/payments",
        json={"post_id": post["id"], "payment_type": "contact_unlock", "method": "esewa", "reference_id": "TX-1"},
        headers=VISITOR_HEADERS,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["amount"] == 399.0
    assert data["method"] == "esewa"
    assert data["visitor_id"] == "visitor-0001"
    assert "*" in data["post"]["contact"]


def test_create_promotion_payment_marks_post_pending(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved")

    first = client.post("/payments", json={"post_id": post["id"], "payment_type": "post_promotion"})
    second = client.post("/payments", json={"post_id": post["id"], "payment_type": "post_promotion"})

    assert first.status_code == 201
    assert first.json()["data"]["amount"] == 299.0
    assert fake_repo.posts[post["id"]]["homepage_payment_status"] == "pending"
    assert second.status_code == 409


def test_admin_payment_listing_filters(client: TestClient, fake_repo) -> None:
    post = fake_repo.seed_post(status="approved")
    promotion = fake_repo.seed_payment(post_id=post["id"], payment_type="post_promotion", amount=299.0)
    fake_repo.seed_payment(post_id=post["id"], status="approved")

    response = client.get(
        "/admin/payments",
        params={"status": "pending", "payment_type": "post_promotion"},
        headers=ADMIN_HEADERS,
    )
    homepage = client.get("/admin/homepage-payments", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert [row["id"] for row in response.json()["data"]] == [promotion["id"]]
    assert response.json()["data"][0]["post"]["contact"] == post["contact"]
    assert [row["id"] for row in homepage.json()["data"]] == [promotion["id"]]
