from conftest import auth, make_service, make_user

URL = "/api/v1/services"


def _listing(**overrides):
    body = {"title": "Gutter cleaning", "description": "Two storeys", "category": " Exterior ", "price": "80.50",
            "durationMinutes": 90}
    body.update(overrides)
    return body


def test_provider_creates_listing(client, provider):
    r = client.post(URL, json=_listing(), headers=auth(provider))
    assert r.status_code == 201
    data = r.json()
    assert data["providerId"] == provider.id
    assert data["category"] == "exterior"
    assert data["price"] == "80.50"
    assert data["durationMinutes"] == 90
    assert data["isActive"] is True

    assert client.get(f"{URL}/{data['id']}").json() == data


def test_customer_cannot_list_a_service(client, customer):
    r = client.post(URL, json=_listing(), headers=auth(customer))
    assert r.status_code == 403


def test_listing_price_rules(client, provider):
    r = client.post(URL, json=_listing(price="19.999"), headers=auth(provider))
    assert r.status_code == 400
    assert r.json() == {"error": "price cannot have more than two decimal places"}

    r = client.post(URL, json=_listing(price="-5"), headers=auth(provider))
    assert r.status_code == 400

    r = client.post(URL, json=_listing(title="   "), headers=auth(provider))
    assert r.json() == {"error": "title is required"}


def test_browse_filters(client, db, provider):
    other = make_user(db, "provider")
    mine = make_service(db, provider)
    theirs = make_service(db, other)
    make_service(db, provider, active=False)
    client.post(URL, json=_listing(), headers=auth(other))

    ids = {s["id"] for s in client.get(URL).json()["items"]}
    assert mine.id in ids and theirs.id in ids
    assert len(ids) == 3

    garden = client.get(URL, params={"category": "Garden"}).json()["items"]
    assert {s["id"] for s in garden} == {mine.id, theirs.id}

    by_provider = client.get(URL, params={"providerId": provider.id}).json()["items"]
    assert [s["id"] for s in by_provider] == [mine.id]


def test_owner_updates_listing(client, db, provider):
    s = make_service(db, provider)
    r = client.patch(f"{URL}/{s.id}", json={"price": "120", "isActive": False}, headers=auth(provider))
    assert r.status_code == 200
    assert r.json()["price"] == "120.00"
    assert r.json()["isActive"] is False
    assert client.get(URL, params={"providerId": provider.id}).json()["items"] == []


def test_other_provider_cannot_update(client, db, provider):
    s = make_service(db, provider)
    rival = make_user(db, "provider")
    r = client.patch(f"{URL}/{s.id}", json={"title": "Mine now"}, headers=auth(rival))
    assert r.status_code == 403
    assert client.get(f"{URL}/{s.id}").json()["title"] == "Lawn mowing"


def test_unknown_listing(client, provider):
    assert client.get(f"{URL}/missing").json() == {"error": "Service not found"}
    r = client.patch(f"{URL}/missing", json={"title": "x"}, headers=auth(provider))
    assert r.status_code == 404
