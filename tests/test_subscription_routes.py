"""
Integration tests for the /api/subscription endpoints (sync, toggle, cancel, link).
"""
from app.core.config import Settings
from app.dependencies.billing import get_dodo_client, get_settings
from app.main import app


def dodo_record(subscription_id, status="active", **fields):
    record = {"subscription_id": subscription_id, "status": status}
    record.update(fields)
    return record


# --- sync ---

def test_sync_links_only_the_unlinked_subscription(client, make_user, load_profile, dodo):
    make_user("someone-else", "else@example.com", plan="premium", auto_renew=True, subscription_id="sub_taken")
    make_user("fresh", "fresh@example.com")
    dodo.subscriptions = [
        dodo_record("sub_taken", customer={"customer_id": "cus_taken", "email": "else@example.com"}),
        dodo_record("sub_open", customer={"customer_id": "cus_open", "email": "unknown@example.com"}),
    ]

    response = client.post("/api/subscription/sync", json={"userId": "fresh"})

    assert response.status_code == 200
    body = response.json()
    assert body["subscriptionId"] == "sub_open"
    assert body["customerId"] == "cus_open"
    assert body["autoRenew"] is True
    assert body["matchedBy"] == "unlinked"
    assert load_profile("fresh").plan == "premium"
    assert load_profile("someone-else").subscription_id == "sub_taken"


def test_sync_prefers_metadata_match(client, make_user, load_profile, dodo):
    make_user("u1", "me@example.com")
    dodo.subscriptions = [
        dodo_record("sub_email", customer={"email": "me@example.com"}),
        dodo_record(
            "sub_meta",
            metadata={"userId": "u1"},
            cancel_at_next_billing_date=True,
            next_billing_date="2027-01-01T00:00:00Z",
        ),
    ]

    response = client.post("/api/subscription/sync", json={"userId": "u1"})

    assert response.status_code == 200
    body = response.json()
    assert body["subscriptionId"] == "sub_meta"
    assert body["autoRenew"] is False
    assert body["matchedBy"] == "metadata"
    assert load_profile("u1").renews_at.year == 2027


def test_sync_accepts_records_keyed_by_id(client, make_user, dodo):
    make_user("u1", "me@example.com")
    dodo.subscriptions = [{"id": "sub_plain", "status": "active", "client_reference_id": "u1"}]

    response = client.post("/api/subscription/sync", json={"userId": "u1"})

    assert response.status_code == 200
    assert response.json()["subscriptionId"] == "sub_plain"


def test_sync_walks_every_page(client, make_user, dodo):
    make_user("u1", "me@example.com")
    dodo.subscriptions = [dodo_record(f"sub_{i}", status="cancelled") for i in range(2)]
    dodo.subscriptions.append(dodo_record("sub_last", metadata={"user_id": "u1"}))
    app.dependency_overrides[get_dodo_client] = lambda: dodo.client(page_size=2)

    response = client.post("/api/subscription/sync", json={"userId": "u1"})

    assert response.status_code == 200
    assert response.json()["subscriptionId"] == "sub_last"
    assert len([r for r in dodo.requests if r.method == "GET"]) == 2


def test_sync_not_found(client, make_user, dodo):
    make_user("u1", "me@example.com")
    make_user("u2", "other@example.com", subscription_id="sub_taken")
    dodo.subscriptions = [
        dodo_record("sub_cancelled", status="cancelled", metadata={"userId": "u1"}),
        dodo_record("sub_taken"),
    ]

    response = client.post("/api/subscription/sync", json={"userId": "u1"})

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "No active subscription found"
    assert body["subscriptionsChecked"] == 2
    assert "hint" in body


def test_sync_does_not_take_a_subscription_keyed_to_another_user(client, make_user, load_profile, dodo):
    make_user("u_y", "y@example.com")
    make_user("u_z", "z@example.com")
    dodo.subscriptions = [dodo_record("sub_z", metadata={"userId": "u_z"}, customer={"email": "z@example.com"})]

    response = client.post("/api/subscription/sync", json={"userId": "u_y"})

    assert response.status_code == 404
    assert load_profile("u_y").subscription_id is None

    webhook = client.post("/webhooks/dodo", json={
        "type": "subscription.created",
        "data": {"subscription_id": "sub_z", "metadata": {"userId": "u_z"}},
    })

    assert webhook.json()["userId"] == "u_z"
    assert load_profile("u_z").plan == "premium"
    assert load_profile("u_y").plan == "free"


def test_sync_prefers_active_subscription_over_cancelled_link(client, make_user, load_profile, dodo):
    make_user("u1", "me@example.com", subscription_id="sub_old")
    dodo.subscriptions = [
        dodo_record("sub_old", status="cancelled", customer={"email": "me@example.com"}),
        dodo_record("sub_new", customer={"customer_id": "cus_new", "email": "me@example.com"}),
    ]

    response = client.post("/api/subscription/sync", json={"userId": "u1"})

    assert response.status_code == 200
    body = response.json()
    assert body["subscriptionId"] == "sub_new"
    assert body["plan"] == "premium"
    assert body["matchedBy"] == "email"
    profile = load_profile("u1")
    assert profile.subscription_id == "sub_new"
    assert profile.plan == "premium"
    assert profile.auto_renew is True


def test_sync_with_only_a_cancelled_link_is_not_found(client, make_user, load_profile, dodo):
    make_user("u1", "me@example.com", subscription_id="sub_old")
    dodo.subscriptions = [dodo_record("sub_old", status="cancelled")]

    response = client.post("/api/subscription/sync", json={"userId": "u1"})

    assert response.status_code == 404
    assert load_profile("u1").subscription_id == "sub_old"


def test_sync_unknown_profile(client, dodo):
    response = client.post("/api/subscription/sync", json={"userId": "nobody"})
    assert response.status_code == 404
    assert dodo.requests == []


def test_sync_missing_user_id(client):
    response = client.post("/api/subscription/sync", json={})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing or invalid parameters"


def test_sync_provider_error_is_propagated(client, make_user, load_profile, dodo):
    make_user("u1", "me@example.com")
    dodo.fail_status = 401

    response = client.post("/api/subscription/sync", json={"userId": "u1"})

    assert response.status_code == 401
    assert load_profile("u1").plan == "free"


def test_sync_without_dodo_key_is_a_configuration_error(client, make_user):
    make_user("u1", "me@example.com")
    del app.dependency_overrides[get_dodo_client]
    app.dependency_overrides[get_settings] = lambda: Settings()

    response = client.post("/api/subscription/sync", json={"userId": "u1"})

    assert response.status_code == 500
    assert "DODO_PAYMENTS_API_KEY" in response.json()["error"]


# --- toggle ---

def test_toggle_rejects_foreign_subscription(client, make_user, load_profile, dodo):
    make_user("u1", "a@example.com", plan="premium", auto_renew=True, subscription_id="sub_mine")
    make_user("u2", "b@example.com", plan="premium", auto_renew=True, subscription_id="sub_theirs")

    response = client.post("/api/subscription/toggle-auto-renew", json={
        "userId": "u1", "subscriptionId": "sub_theirs", "autoRenew": False,
    })

    assert response.status_code == 403
    assert dodo.requests == []
    assert load_profile("u2").auto_renew is True


def test_toggle_turns_auto_renew_back_on(client, make_user, load_profile, dodo):
    make_user("u1", "a@example.com", plan="premium", auto_renew=False, subscription_id="sub_1")

    response = client.post("/api/subscription/toggle-auto-renew", json={
        "userId": "u1", "subscriptionId": "sub_1", "autoRenew": True,
    })

    assert response.status_code == 200
    assert response.json() == {"success": True, "autoRenew": True}
    assert dodo.patches == [("/subscriptions/sub_1", {"cancel_at_next_billing_date": False})]
    assert load_profile("u1").auto_renew is True


def test_toggle_requires_boolean(client, make_user):
    make_user("u1", subscription_id="sub_1")
    response = client.post("/api/subscription/toggle-auto-renew", json={
        "userId": "u1", "subscriptionId": "sub_1", "autoRenew": "yes",
    })
    assert response.status_code == 400


def test_toggle_provider_failure_leaves_profile(client, make_user, load_profile, dodo):
    make_user("u1", plan="premium", auto_renew=True, subscription_id="sub_1")
    dodo.fail_status = 500

    response = client.post("/api/subscription/toggle-auto-renew", json={
        "userId": "u1", "subscriptionId": "sub_1", "autoRenew": False,
    })

    assert response.status_code == 500
    assert load_profile("u1").auto_renew is True


# --- cancel ---

def test_cancel_rejects_foreign_subscription(client, make_user, dodo):
    make_user("u1", subscription_id="sub_mine")

    response = client.post("/api/subscription/cancel", json={"userId": "u1", "subscriptionId": "sub_other"})

    assert response.status_code == 403
    assert dodo.requests == []


def test_cancel_downgrades_after_provider_cancel(client, make_user, load_profile, dodo):
    make_user("u1", plan="premium", auto_renew=True, subscription_id="sub_1")

    response = client.post("/api/subscription/cancel", json={"userId": "u1", "subscriptionId": "sub_1"})

    assert response.status_code == 200
    assert dodo.patches == [("/subscriptions/sub_1", {"status": "cancelled"})]
    profile = load_profile("u1")
    assert profile.plan == "free"
    assert profile.auto_renew is False
    assert profile.subscription_id == "sub_1"


def test_cancel_missing_parameters(client):
    response = client.post("/api/subscription/cancel", json={"userId": "u1"})
    assert response.status_code == 400


# --- link / fix ---

def test_link_binds_without_ownership_check(client, make_user, load_profile):
    make_user("u1")

    response = client.post("/api/subscription/link", json={"userId": "u1", "subscriptionId": "sub_admin"})

    assert response.status_code == 200
    profile = load_profile("u1")
    assert profile.subscription_id == "sub_admin"
    assert profile.customer_id is None
    assert profile.plan == "premium"
    assert profile.auto_renew is True


def test_fix_path_sets_customer_id(client, make_user, load_profile):
    make_user("u1", subscription_id="sub_old", customer_id="cus_old")

    response = client.post("/api/subscription/fix", json={
        "userId": "u1", "subscriptionId": "sub_new", "customerId": "cus_new",
    })

    assert response.status_code == 200
    assert response.json()["profile"]["customerId"] == "cus_new"
    assert load_profile("u1").subscription_id == "sub_new"


def test_link_unknown_user(client):
    response = client.post("/api/subscription/link", json={"userId": "ghost", "subscriptionId": "sub_1"})
    assert response.status_code == 404


def test_root(client):
    assert client.get("/").json() == {"status": "Subscription sync API running"}
