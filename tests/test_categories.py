def test_create_and_nest(client, admin_headers):
    parent = client.post("/api/categories/", json={"name": "Men"}, headers=admin_headers)
    child = client.post(
        "/api/categories/",
        json={"name": "Shirts", "parent_category": parent.json()["_id"]},
        headers=admin_headers,
    )

    assert parent.status_code == 201
    assert child.status_code == 201
    fetched = client.get(f"/api/categories/{child.json()['_id']}").json()
    assert fetched["parent_category"]["name"] == "Men"


def test_name_required(client, admin_headers):
    r = client.post("/api/categories/", json={}, headers=admin_headers)

    assert r.status_code == 400
    assert r.json()["message"] == "Category name is required"


def test_get_errors(client):
    assert client.get("/api/categories/not-an-id").status_code == 400
    assert client.get("/api/categories/64b000000000000000000000").status_code == 404


def test_update_parent_rules(client, admin_headers, category):
    cid = str(category["_id"])

    own = client.put(f"/api/categories/{cid}", json={"parent_category": cid}, headers=admin_headers)
    bad = client.put(f"/api/categories/{cid}", json={"parent_category": "xyz"}, headers=admin_headers)
    gone = client.put(
        f"/api/categories/{cid}",
        json={"parent_category": "64b000000000000000000000"},
        headers=admin_headers,
    )
    rename = client.put(f"/api/categories/{cid}", json={"name": "Tops"}, headers=admin_headers)

    assert own.json()["message"] == "Category cannot be its own parent"
    assert bad.json()["message"] == "Invalid parent category ID"
    assert gone.status_code == 404
    assert rename.json()["name"] == "Tops"


def test_delete_blocked_while_in_use(client, db, admin_headers, category, product):
    r = client.delete(f"/api/categories/{category['_id']}", headers=admin_headers)

    assert r.status_code == 400
    assert r.json()["message"] == "Cannot delete category: 1 product(s) associated"

    db.products.delete_many({})
    db.categories.insert_one({"name": "Polo", "parent_category": str(category["_id"])})
    r = client.delete(f"/api/categories/{category['_id']}", headers=admin_headers)

    assert r.json()["message"] == "Cannot delete category: 1 subcategory(ies) associated"


def test_delete(client, db, admin_headers, category):
    r = client.delete(f"/api/categories/{category['_id']}", headers=admin_headers)

    assert r.json()["message"] == "Category deleted successfully"
    assert db.categories.count_documents({}) == 0
