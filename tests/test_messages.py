from conftest import auth, make_booking


def test_thread_between_participants(client, db, customer, provider):
    b = make_booking(db, customer, provider, status="confirmed")
    url = f"/api/v1/bookings/{b.id}/messages"

    r = client.post(url, json={"body": "  Gate code is 1234  "}, headers=auth(customer))
    assert r.status_code == 201
    sent = r.json()
    assert sent["body"] == "Gate code is 1234"
    assert sent["recipientId"] == provider.id
    assert sent["isRead"] is False

    r = client.post(url, json={"body": "Thanks, see you Tuesday"}, headers=auth(provider))
    assert r.json()["recipientId"] == customer.id

    r = client.get(url, headers=auth(provider))
    items = r.json()["items"]
    assert [m["body"] for m in items] == ["Gate code is 1234", "Thanks, see you Tuesday"]
    # Reading the thread marks the provider's incoming message as read.
    r = client.get(url, headers=auth(customer))
    assert r.json()["items"][0]["isRead"] is True


def test_outsiders_cannot_post(client, db, customer, provider, stranger):
    b = make_booking(db, customer, provider)
    r = client.post(f"/api/v1/bookings/{b.id}/messages", json={"body": "hi"}, headers=auth(stranger))
    assert r.status_code == 403


def test_empty_and_oversized_bodies(client, db, customer, provider):
    b = make_booking(db, customer, provider)
    url = f"/api/v1/bookings/{b.id}/messages"
    assert client.post(url, json={"body": "   "}, headers=auth(customer)).status_code == 400
    assert client.post(url, json={"body": "x" * 4001}, headers=auth(customer)).status_code == 400
