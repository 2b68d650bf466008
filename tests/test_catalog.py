import pytest
from fastapi.testclient import TestClient

import catalog
import media

IMAGE = {"image": ("seat.jpg", b"\xff\xd8\xff fake jpeg", "image/jpeg")}


def _form(**overrides):
    form = {"name": "Seat Cover", "description": "Leather seat cover", "price": "25.5",
            "category": "Interior", "stock": "4"}
    form.update(overrides)
    return form


def test_list_paginates_by_ten(client, make_item):
    for i in range(25):
        make_item(name=f"Mat {i:02d}")

    first = client.get("/api/products").json()
    assert first["page"] == 1
    assert first["pages"] == 3
    assert len(first["items"]) == 10

    last = client.get("/api/products", params={"pageNumber": 3}).json()
    assert last["page"] == 3
    assert len(last["items"]) == 5


def test_page_number_below_one_is_first_page(client, make_item):
    make_item()
    res = client.get("/api/products", params={"pageNumber": 0}).json()
    assert res["page"] == 1
    assert len(res["items"]) == 1


def test_keyword_filters_name_case_insensitively(client, make_item):
    make_item(name="Ceramic Wax")
    make_item(name="Tyre Shine")
    make_item(name="wax remover (strong)")

    names = {p["name"] for p in client.get("/api/products", params={"keyword": "WAX"}).json()["items"]}
    assert names == {"Ceramic Wax", "wax remover (strong)"}

    literal = client.get("/api/products", params={"keyword": "(strong)"}).json()["items"]
    assert [p["name"] for p in literal] == ["wax remover (strong)"]


def test_get_by_id(client, make_item):
    item = make_item(name="Air Freshener")
    res = client.get(f"/api/products/{item['id']}")
    assert res.status_code == 200
    assert res.json()["name"] == "Air Freshener"
    assert res.json()["id"] == item["id"]


def test_get_rejects_malformed_and_unknown_ids(client):
    bad = client.get("/api/products/not-an-id")
    assert bad.status_code == 400
    assert bad.json()["message"] == "Invalid product ID"

    missing = client.get("/api/products/5f8d0d55b54764421b7156c9")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Product not found"


def test_create_requires_admin(client, user):
    assert client.post("/api/products", data=_form(), files=IMAGE).status_code == 401
    res = client.post("/api/products", data=_form(), files=IMAGE, headers=user.headers)
    assert res.status_code == 403


def test_create_requires_image(client, admin, db):
    res = client.post("/api/products", data=_form(), headers=admin.headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Image is required"
    assert db["product"].count_documents({}) == 0


def test_create_uploads_image(client, admin, cloud):
    res = client.post("/api/products", data=_form(), files=IMAGE, headers=admin.headers)
    assert res.status_code == 201
    body = res.json()
    assert body["name"] == "Seat Cover"
    assert body["price"] == 25.5
    assert body["stock"] == 4
    assert body["images"] == cloud.uploaded
    assert "/products/" in cloud.uploaded[0]


def test_create_rejects_negative_price(client, admin, db):
    res = client.post("/api/products", data=_form(price="-1"), files=IMAGE, headers=admin.headers)
    assert res.status_code == 400
    assert db["product"].count_documents({}) == 0


def test_update_changes_only_given_fields(client, admin, make_item):
    item = make_item(name="Wiper Blade", price=12.0, stock=7, category="Exterior")

    res = client.put(f"/api/products/{item['id']}", data={"price": "15"}, headers=admin.headers)
    assert res.status_code == 200

    after = client.get(f"/api/products/{item['id']}").json()
    assert after["price"] == 15
    assert after["name"] == "Wiper Blade"
    assert after["stock"] == 7
    assert after["category"] == "Exterior"
    assert after["description"] == item["description"]
    assert after["images"] == item["images"]


def test_update_applies_explicit_zero_stock(client, admin, make_item):
    item = make_item(stock=7)
    res = client.put(f"/api/products/{item['id']}", data={"stock": "0"}, headers=admin.headers)
    assert res.json()["stock"] == 0


def test_update_replaces_first_image(client, admin, make_item, cloud):
    item = make_item(images=["https://res.cloudinary.com/demo/products/old.jpg",
                             "https://res.cloudinary.com/demo/products/side.jpg"])
    res = client.put(f"/api/products/{item['id']}", files=IMAGE, headers=admin.headers)
    assert res.status_code == 200
    assert res.json()["images"] == [cloud.uploaded[0], "https://res.cloudinary.com/demo/products/side.jpg"]
    assert cloud.destroyed == ["https://res.cloudinary.com/demo/products/old.jpg"]


def test_update_unknown_item(client, admin):
    res = client.put("/api/products/5f8d0d55b54764421b7156c9", data={"price": "3"}, headers=admin.headers)
    assert res.status_code == 404


def test_delete_releases_images(client, admin, make_item, cloud, db):
    item = make_item(images=["https://res.cloudinary.com/demo/products/a.jpg",
                             "https://res.cloudinary.com/demo/products/b.jpg"])
    res = client.delete(f"/api/products/{item['id']}", headers=admin.headers)
    assert res.status_code == 200
    assert res.json()["message"] == "Product removed"
    assert len(cloud.destroyed) == 2
    assert db["product"].count_documents({}) == 0


def test_delete_survives_image_release_failure(client, admin, make_item, db, monkeypatch):
    def broken(url, folder):
        raise RuntimeError("cloudinary down")

    monkeypatch.setattr(media, "destroy_image", broken)
    item = make_item()
    res = client.delete(f"/api/products/{item['id']}", headers=admin.headers)
    assert res.status_code == 200
    assert db["product"].find_one({"_id": item["_id"]}) is None


def test_delete_unknown_item(client, admin):
    res = client.delete("/api/gadgets/5f8d0d55b54764421b7156c9", headers=admin.headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Gadget not found"


@pytest.mark.parametrize("prefix,collection", [
    ("/api/gadgets", "gadget"),
    ("/api/fragrances", "fragrance"),
    ("/api/carcare", "carcare"),
])
def test_every_kind_has_its_own_collection(client, admin, db, prefix, collection):
    res = client.post(prefix, data=_form(name="Kind Item"), files=IMAGE, headers=admin.headers)
    assert res.status_code == 201
    assert db[collection].count_documents({"name": "Kind Item"}) == 1
    assert db["product"].count_documents({}) == 0

    listed = client.get(prefix).json()
    assert [i["name"] for i in listed["items"]] == ["Kind Item"]


def test_fragrance_names_are_unique(client, admin, cloud):
    first = client.post("/api/fragrances", data=_form(name="Oud Night"), files=IMAGE, headers=admin.headers)
    assert first.status_code == 201
    second = client.post("/api/fragrances", data=_form(name="Oud Night"), files=IMAGE, headers=admin.headers)
    assert second.status_code == 400
    # the image uploaded for the rejected item is released again
    assert cloud.destroyed == [cloud.uploaded[1]]


def test_adjust_stock_never_goes_negative(db, make_item):
    item = make_item(stock=2)
    assert catalog.adjust_stock(db, catalog.PRODUCT, item["id"], -3) is False
    assert catalog.adjust_stock(db, catalog.PRODUCT, item["id"], -2) is True
    assert db["product"].find_one({"_id": item["_id"]})["stock"] == 0


def test_update_keeps_old_image_when_upload_fails(client, admin, make_item, cloud, db, monkeypatch):
    old = "https://res.cloudinary.com/demo/products/old.jpg"
    item = make_item(images=[old])

    def failing_upload(data, content_type, folder):
        raise RuntimeError("cloudinary down")

    monkeypatch.setattr(media, "upload_image", failing_upload)
    client = TestClient(client.app, raise_server_exceptions=False)
    res = client.put(f"/api/products/{item['id']}", files=IMAGE, headers=admin.headers)
    assert res.status_code == 500
    assert cloud.destroyed == []
    assert db["product"].find_one({"_id": item["_id"]})["images"] == [old]


def test_update_with_taken_name_releases_new_image(client, admin, make_item, cloud, db):
    make_item(kind="fragrance", name="Oud", category="Fragrance")
    old = "https://res.cloudinary.com/demo/fragrances/musk.jpg"
    musk = make_item(kind="fragrance", name="Musk", category="Fragrance", images=[old])

    res = client.put(f"/api/fragrances/{musk['id']}", data={"name": "Oud"}, files=IMAGE, headers=admin.headers)
    assert res.status_code == 400
    assert cloud.destroyed == cloud.uploaded
    stored = db["fragrance"].find_one({"_id": musk["_id"]})
    assert stored["name"] == "Musk"
    assert stored["images"] == [old]


def test_upload_larger_than_five_megabytes_is_rejected(client, admin, cloud, db):
    big = {"image": ("big.jpg", b"\0" * (5 * 1024 * 1024 + 1), "image/jpeg")}
    res = client.post("/api/products", data=_form(), files=big, headers=admin.headers)
    assert res.status_code == 400
    assert res.json()["message"] == "File size limit has been reached (5 MB)"
    assert cloud.uploaded == []
    assert db["product"].count_documents({}) == 0
