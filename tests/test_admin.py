from __future__ import annotations

import csv
import io
from datetime import datetime, timedelta

import pytest

from zonta.extensions import db
from zonta.models import Order, Product, User, utcnow


def _donation(**kw) -> Order:
    fields = {
        "kind": "donation",
        "amount_cents": 5000,
        "name": "Ada Donor",
        "email": "ada@example.org",
        "purpose": "General Fund",
        "status": "pending",
    }
    fields.update(kw)
    if fields["status"] == "completed" and "completed_at" not in fields:
        fields["completed_at"] = fields.get("created_at") or utcnow()
    order = Order(**fields)
    db.session.add(order)
    db.session.commit()
    return order


class TestAdminAuth:
    def test_requires_login(self, client):
        resp = client.get("/admin/donations")
        assert resp.status_code == 401
        body = resp.get_json()
        assert body["ok"] is False
        assert body["error"]["code"] == 401

    def test_non_admin_is_forbidden(self, app, client):
        user = User(email="member@example.org", is_admin=False)
        user.set_password("member-pass")
        db.session.add(user)
        db.session.commit()

        resp = client.post("/admin/login", json={"email": "member@example.org", "password": "member-pass"})
        assert resp.status_code == 403

    def test_bad_password(self, admin_client):
        admin_client.post("/admin/logout")
        resp = admin_client.post("/admin/login", json={"email": "admin@example.org", "password": "nope"})
        assert resp.status_code == 401
        assert admin_client.get("/admin/me").status_code == 401

    def test_login_is_case_insensitive_and_sets_last_login(self, app, client):
        user = User(email="chair@example.org", is_admin=True)
        user.set_password("rose-garden")
        db.session.add(user)
        db.session.commit()

        resp = client.post("/admin/login", json={"email": "Chair@Example.org", "password": "rose-garden"})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["role"] == "admin"
        db.session.expire_all()
        assert db.session.get(User, user.id).last_login is not None

    def test_missing_credentials(self, client):
        resp = client.post("/admin/login", json={"email": "admin@example.org"})
        assert resp.status_code == 400

    def test_me_and_logout(self, admin_client):
        me = admin_client.get("/admin/me")
        assert me.status_code == 200
        assert me.get_json()["user"]["email"] == "admin@example.org"

        assert admin_client.post("/admin/logout").status_code == 200
        assert admin_client.get("/admin/me").status_code == 401


class TestDonationList:
    def test_pagination_and_statistics(self, admin_client):
        for i in range(5):
            _donation(amount_cents=1000 * (i + 1), status="completed")
        _donation(amount_cents=9900, status="pending")

        resp = admin_client.get("/admin/donations?page=2&limit=2")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["total"] == 6
        assert body["totalPages"] == 3
        assert body["currentPage"] == 2
        assert len(body["donations"]) == 2

        stats = body["statistics"]
        assert stats["count"] == 5
        assert stats["totalAmountCents"] == 15000
        assert stats["averageAmountCents"] == 3000
        assert stats["totalAmount"] == 150.0

    def test_limit_is_capped(self, admin_client):
        _donation()
        body = admin_client.get("/admin/donations?limit=5000").get_json()
        assert body["totalPages"] == 1

    def test_product_orders_are_not_donations(self, admin_client, make_product):
        product = make_product()
        db.session.add(
            Order(kind="product", amount_cents=2500, name="Buyer", email="b@example.org", product_id=product.id)
        )
        db.session.commit()
        _donation()

        body = admin_client.get("/admin/donations").get_json()
        assert body["total"] == 1
        assert body["donations"][0]["kind"] == "donation"

    def test_filters(self, admin_client):
        now = utcnow()
        _donation(status="completed", purpose="Scholarships", created_at=now - timedelta(days=10))
        _donation(status="completed", purpose="Advocacy", created_at=now - timedelta(days=2))
        _donation(status="failed", purpose="Scholarships", created_at=now - timedelta(days=2))

        by_status = admin_client.get("/admin/donations?status=completed").get_json()
        assert by_status["total"] == 2

        by_purpose = admin_client.get("/admin/donations?purpose=Scholarships").get_json()
        assert by_purpose["total"] == 2

        start = (now - timedelta(days=5)).date().isoformat()
        recent = admin_client.get(f"/admin/donations?startDate={start}").get_json()
        assert recent["total"] == 2

        end = (now - timedelta(days=5)).date().isoformat()
        older = admin_client.get(f"/admin/donations?end_date={end}").get_json()
        assert older["total"] == 1

    def test_bad_filters(self, admin_client):
        assert admin_client.get("/admin/donations?status=bogus").status_code == 400
        assert admin_client.get("/admin/donations?start_date=yesterday").status_code == 400
        assert admin_client.get("/admin/donations?page=two").status_code == 400

    def test_detail(self, admin_client, make_product):
        order = _donation(message="In memory of June")
        resp = admin_client.get(f"/admin/donations/{order.id}")
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "In memory of June"

        product = make_product()
        sale = Order(kind="product", amount_cents=2500, name="Buyer", email="b@example.org", product_id=product.id)
        db.session.add(sale)
        db.session.commit()
        assert admin_client.get(f"/admin/donations/{sale.id}").status_code == 404
        assert admin_client.get("/admin/donations/9999").status_code == 404


class TestDonationStats:
    def test_totals_by_purpose_and_last_30_days(self, admin_client):
        now = utcnow()
        _donation(amount_cents=10000, status="completed", purpose="Scholarships")
        _donation(amount_cents=2500, status="completed", purpose="Scholarships")
        _donation(amount_cents=4000, status="completed", purpose="Advocacy")
        _donation(
            amount_cents=7000,
            status="completed",
            purpose="Advocacy",
            created_at=now - timedelta(days=60),
            completed_at=now - timedelta(days=60),
        )
        _donation(amount_cents=99900, status="failed")

        body = admin_client.get("/admin/donations/stats").get_json()
        assert body["total"]["totalAmountCents"] == 23500
        assert body["total"]["count"] == 4

        by_purpose = {row["purpose"]: row for row in body["byPurpose"]}
        assert by_purpose["Scholarships"]["totalAmountCents"] == 12500
        assert by_purpose["Scholarships"]["count"] == 2
        assert by_purpose["Advocacy"]["totalAmountCents"] == 11000
        assert body["byPurpose"][0]["purpose"] == "Scholarships"

        assert body["last30Days"]["count"] == 3
        assert body["last30Days"]["totalAmountCents"] == 16500


class TestDonationExport:
    def test_csv_redacts_anonymous_donors(self, admin_client):
        _donation(
            name="Grace Hopper",
            email="grace@example.org",
            amount_cents=12345,
            status="completed",
            message="Line one\nline two",
        )
        _donation(
            name="Hidden Donor",
            email="hidden@example.org",
            is_anonymous=True,
            purpose="Other",
            custom_purpose="Library fund",
            status="completed",
        )

        resp = admin_client.get("/admin/donations/export")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "attachment" in resp.headers["Content-Disposition"]

        rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
        assert rows[0] == ["Date", "Donor Name", "Email", "Amount", "Purpose", "Status", "Message"]
        by_name = {r[1]: r for r in rows[1:]}

        assert by_name["Grace Hopper"][2] == "grace@example.org"
        assert by_name["Grace Hopper"][3] == "123.45"
        assert by_name["Grace Hopper"][6] == "Line one line two"

        assert "Hidden Donor" not in by_name
        anon = by_name["Anonymous"]
        assert anon[2] == ""
        assert anon[4] == "Library fund"
        assert "hidden@example.org" not in resp.get_data(as_text=True)

    def test_export_honours_filters(self, admin_client):
        _donation(status="completed")
        _donation(status="pending")
        resp = admin_client.get("/admin/donations/export?status=pending")
        rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
        assert len(rows) == 2
        assert rows[1][5] == "pending"


class TestProductAdmin:
    def test_create_update_delete(self, admin_client):
        resp = admin_client.post(
            "/admin/products",
            json={
                "name": "Yellow Rose Pin",
                "description": "Enamel pin.",
                "price": "12.50",
                "inventory": 10,
                "category": "Jewelry",
                "status": "active",
                "tags": "pin, rose",
                "images": ["https://img.example.org/pin.png"],
            },
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["priceCents"] == 1250
        assert data["slug"] == "yellow-rose-pin"
        assert data["tags"] == ["pin", "rose"]
        assert data["featuredImage"] == "https://img.example.org/pin.png"
        pid = data["id"]

        upd = admin_client.put(f"/admin/products/{pid}", json={"priceCents": 1500, "featured": True})
        assert upd.status_code == 200
        assert upd.get_json()["data"]["priceCents"] == 1500
        assert upd.get_json()["data"]["featured"] is True
        assert upd.get_json()["data"]["name"] == "Yellow Rose Pin"

        assert admin_client.delete(f"/admin/products/{pid}").status_code == 200
        assert db.session.get(Product, pid) is None
        assert admin_client.delete(f"/admin/products/{pid}").status_code == 404

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"description": "x", "price": 5}, "name"),
            ({"name": "Mug", "price": 5}, "description"),
            ({"name": "Mug", "description": "x"}, "amount"),
            ({"name": "Mug", "description": "x", "price": 5, "category": "Boats"}, "category"),
            ({"name": "Mug", "description": "x", "price": 5, "inventory": -1}, "inventory"),
        ],
    )
    def test_create_validation(self, admin_client, payload, field):
        resp = admin_client.post("/admin/products", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == field

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"inventory": 10**19}, "inventory"),
            ({"priceCents": 10**12}, "amount"),
            ({"compareAtPriceCents": 2**31}, "compareAtPriceCents"),
        ],
    )
    def test_values_beyond_integer_columns_are_rejected(self, admin_client, payload, field):
        resp = admin_client.post("/admin/products", json={"name": "Mug", "description": "x", "price": 5, **payload})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == field
        assert db.session.query(Product).count() == 0

    def test_restock_cannot_overflow_inventory(self, admin_client, make_product):
        product = make_product(inventory=2_147_483_000)
        resp = admin_client.post(f"/admin/products/{product.id}/restock", json={"quantity": 1000})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "quantity"
        db.session.expire_all()
        assert db.session.get(Product, product.id).inventory == 2_147_483_000

    def test_form_encoded_writes_are_refused(self, admin_client):
        resp = admin_client.post("/admin/products", data={"name": "Mug", "description": "x", "price": "5"})
        assert resp.status_code == 415
        assert db.session.query(Product).count() == 0

        product_put = admin_client.put("/admin/products/1", data="name=Mug", content_type="text/plain")
        assert product_put.status_code == 415

    def test_duplicate_sku(self, admin_client, make_product):
        make_product(sku="TOTE-1")
        resp = admin_client.post(
            "/admin/products",
            json={"name": "Other Tote", "description": "x", "price": 5, "sku": "TOTE-1"},
        )
        assert resp.status_code == 400

    def test_list_filters_by_status(self, admin_client, make_product):
        make_product(name="Live", status="active")
        make_product(name="Hidden", status="draft")
        body = admin_client.get("/admin/products?status=draft").get_json()
        assert body["count"] == 1
        assert body["data"][0]["name"] == "Hidden"
        assert admin_client.get("/admin/products").get_json()["count"] == 2

    def test_restock(self, admin_client, make_product):
        product = make_product(inventory=0)
        resp = admin_client.post(f"/admin/products/{product.id}/restock", json={"quantity": 4})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["inventory"] == 4
        assert resp.get_json()["data"]["inStock"] is True

        assert admin_client.post(f"/admin/products/{product.id}/restock", json={"quantity": 0}).status_code == 400
        assert admin_client.post("/admin/products/9999/restock", json={"quantity": 1}).status_code == 404

    def test_stats(self, admin_client, make_product):
        tote = make_product(name="Tote", inventory=3, total_sold=2)
        make_product(name="Mug", inventory=0)
        make_product(name="Print", inventory=50)
        make_product(name="Draft", inventory=0, status="draft")
        make_product(name="Digital", inventory=0, track_inventory=False)
        db.session.add(
            Order(
                kind="product",
                amount_cents=5000,
                quantity=2,
                name="Buyer",
                email="b@example.org",
                product_id=tote.id,
                status="completed",
                completed_at=datetime(2026, 1, 1),
            )
        )
        db.session.add(
            Order(kind="product", amount_cents=2500, name="Buyer", email="b@example.org", product_id=tote.id)
        )
        db.session.commit()

        data = admin_client.get("/admin/products/stats").get_json()["data"]
        assert data["totalProducts"] == 5
        assert data["activeProducts"] == 4
        assert data["totalInventory"] == 53
        assert data["totalSold"] == 2
        assert data["totalRevenueCents"] == 5000
        assert data["totalRevenue"] == 50.0
        assert data["lowStockProducts"] == 1
        assert data["outOfStockProducts"] == 1
