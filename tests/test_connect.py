from sqlalchemy import select

from conftest import auth
from valence.models.connected_account import ConnectedAccount


def test_onboarding_creates_account_once(client, db, gateway, provider):
    r = client.post("/api/v1/payments/connect/onboard", headers=auth(provider))
    assert r.status_code == 200
    assert r.json() == {"accountId": "acct_1", "onboardingUrl": "https://connect.stripe.test/setup/acct_1"}

    r = client.post("/api/v1/payments/connect/onboard", headers=auth(provider))
    assert r.json()["accountId"] == "acct_1"
    assert gateway.accounts == ["acct_1"]
    assert len(db.execute(select(ConnectedAccount)).scalars().all()) == 1


def test_status_before_and_after_onboarding(client, provider):
    r = client.get("/api/v1/payments/connect/status", headers=auth(provider))
    assert r.json() == {"hasAccount": False, "accountId": None, "chargesEnabled": False,
                        "payoutsEnabled": False, "detailsSubmitted": False}

    client.post("/api/v1/payments/connect/onboard", headers=auth(provider))
    r = client.get("/api/v1/payments/connect/status", headers=auth(provider))
    assert r.json()["hasAccount"] is True
    assert r.json()["accountId"] == "acct_1"


def test_login_link_requires_account(client, provider, payout_account):
    r = client.post("/api/v1/payments/connect/login-link", headers=auth(provider))
    assert r.status_code == 200
    assert r.json() == {"url": "https://connect.stripe.test/express/acct_provider"}


def test_login_link_without_account(client, provider):
    r = client.post("/api/v1/payments/connect/login-link", headers=auth(provider))
    assert r.status_code == 404


def test_customers_cannot_onboard(client, customer):
    r = client.post("/api/v1/payments/connect/onboard", headers=auth(customer))
    assert r.status_code == 403
