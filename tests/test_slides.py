import pytest


def create(client, headers, **body):
    return client.post("/api/slides/", json={"title": "Winter drop", "image": "winter.jpg", **body}, headers=headers)


def test_create_fills_defaults(client, admin_headers):
    r = create(client, admin_headers)

    assert r.status_code == 201
    slide = r.json()
    assert slide["link"] == "/products"
    assert slide["bgColor"] == "#ffffff"
    assert slide["size"] == "medium"
    assert slide["createdAt"]


@pytest.mark.parametrize(
    "body, message",
    [
        ({"image": ""}, "Slide image is required"),
        ({"size": "small"}, "Slide size must be medium or large"),
        ({"bgColor": "blue"}, "Invalid background color format. Use a hex code (e.g., #FFFFFF)"),
    ],
)
def test_create_validation(client, admin_headers, body, message):
    r = create(client, admin_headers, **body)

    assert r.status_code == 400
    assert r.json()["message"] == message


def test_public_listing_in_creation_order(client, admin_headers):
    create(client, admin_headers, title="First")
    create(client, admin_headers, title="Second", size="large")

    r = client.get("/api/slides/")

    assert r.status_code == 200
    assert [s["title"] for s in r.json()] == ["First", "Second"]


def test_update_changes_only_sent_fields(client, db, admin_headers):
    slide = create(client, admin_headers, mobileImage="winter-m.jpg").json()

    r = client.put(f"/api/slides/{slide['_id']}", json={"size": "large", "link": "/sale"}, headers=admin_headers)
    bad = client.put(f"/api/slides/{slide['_id']}", json={"image": None}, headers=admin_headers)

    assert r.status_code == 200
    stored = db.slides.find_one()
    assert stored["size"] == "large"
    assert stored["link"] == "/sale"
    assert stored["mobileImage"] == "winter-m.jpg"
    assert bad.status_code == 400


def test_delete_and_missing(client, db, admin_headers):
    slide = create(client, admin_headers).json()

    gone = client.delete(f"/api/slides/{slide['_id']}", headers=admin_headers)
    again = client.delete(f"/api/slides/{slide['_id']}", headers=admin_headers)

    assert gone.json()["message"] == "Slide deleted successfully"
    assert db.slides.count_documents({}) == 0
    assert again.status_code == 404
    assert client.put("/api/slides/nope", json={}, headers=admin_headers).status_code == 404


def test_slides_need_admin_to_change(client, user_headers):
    assert create(client, user_headers).status_code == 403
    assert client.get("/api/slides/").status_code == 200
