"""
Unit Tests - Web API
"""
import base64

from sqlalchemy import func, select

from northwind.database.models import OrderDetail

API = "/api/v1"


def values(data):
    return data["$values"]


class TestReads:
    """Tests for GET endpoints"""

    async def test_liveness(self, client):
        response = await client.get(f"{API}/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}
        assert "X-Request-ID" in response.headers

    async def test_list_customers(self, client):
        response = await client.get(f"{API}/customers")

        assert response.status_code == 200
        customers = values(response.json())
        assert len(customers) == 8
        assert customers[0]["$id"] == "2"
        assert customers[0]["trackingState"] == 0

    async def test_filter_customers_by_country(self, client):
        response = await client.get(f"{API}/customers", params={"country": "Mexico"})

        assert sorted(c["customerId"] for c in values(response.json())) == ["ANATR", "ANTON"]

    async def test_unknown_customer(self, client):
        response = await client.get(f"{API}/customers/ZZZZZ")
        assert response.status_code == 404

    async def test_category_with_products(self, client):
        response = await client.get(f"{API}/categories/1")

        assert response.status_code == 200
        data = response.json()
        assert data["categoryName"] == "Beverages"
        products = values(data["products"])
        assert {p["productName"] for p in products} == {"Chai", "Chang"}

    async def test_products_exclude_discontinued(self, client):
        response = await client.get(f"{API}/products", params={"include_discontinued": False})

        names = {p["productName"] for p in values(response.json())}
        assert len(names) == 19
        assert "Alice Mutton" not in names

    async def test_order_graph(self, client):
        response = await client.get(f"{API}/orders/10643")

        assert response.status_code == 200
        order = response.json()
        assert order["customer"]["customerId"] == "ALFKI"
        assert order["freight"] == "29.46"
        details = values(order["orderDetails"])
        assert len(details) == 3
        assert {d["product"]["productName"] for d in details} == {
            "Queso Cabrales",
            "Alice Mutton",
            "Sir Rodney's Marmalade",
        }

    async def test_orders_for_customer(self, client):
        response = await client.get(f"{API}/orders", params={"customer_id": "ALFKI"})

        orders = values(response.json())
        assert [o["orderId"] for o in orders] == [10643, 10692, 10702]
        # The shared customer is written once
        assert orders[1]["customer"] == {"$ref": orders[0]["customer"]["$id"]}

    async def test_unknown_order(self, client):
        response = await client.get(f"{API}/orders/1")
        assert response.status_code == 404


class TestProductWrites:
    """Tests for tracked product updates"""

    async def test_update_advances_row_version(self, client):
        product = (await client.get(f"{API}/products/1")).json()
        product["unitPrice"] = "20.00"
        product["trackingState"] = 2
        product["modifiedProperties"] = ["unitPrice"]

        response = await client.put(f"{API}/products", json=product)

        assert response.status_code == 200
        updated = response.json()
        assert updated["unitPrice"] == "20.00"
        assert updated["rowVersion"] != product["rowVersion"]
        assert updated["trackingState"] == 0
        assert updated["modifiedProperties"] is None

    async def test_stale_update_conflicts(self, client):
        product = (await client.get(f"{API}/products/1")).json()
        product["trackingState"] = 2
        product["modifiedProperties"] = ["unitPrice"]

        first = dict(product, unitPrice="20.00")
        second = dict(product, unitPrice="21.00")
        assert (await client.put(f"{API}/products", json=first)).status_code == 200

        response = await client.put(f"{API}/products", json=second)

        assert response.status_code == 409
        assert response.json()["error"] == "ConcurrencyConflictError"
        current = (await client.get(f"{API}/products/1")).json()
        assert current["unitPrice"] == "20.00"

    async def test_explicit_stale_version(self, client):
        product = (await client.get(f"{API}/products/2")).json()
        product["rowVersion"] = base64.b64encode(b"\x00").decode("ascii")
        product["trackingState"] = 2
        product["modifiedProperties"] = ["productName"]
        product["productName"] = "Chang Beer"

        response = await client.put(f"{API}/products", json=product)

        assert response.status_code == 409

    async def test_create_product(self, client):
        payload = {"productName": "Tofu Jerky", "categoryId": 7, "unitPrice": "12.00", "discontinued": False}

        response = await client.post(f"{API}/products", json=payload)

        assert response.status_code == 201
        created = response.json()
        assert created["productId"] > 22
        assert created["category"]["categoryName"] == "Produce"
        assert created["trackingState"] == 0

    async def test_delete_product(self, client, session_factory):
        response = await client.delete(f"{API}/products/17")

        assert response.status_code == 204
        assert (await client.get(f"{API}/products/17")).status_code == 404
        async with session_factory() as db:
            remaining = await db.scalar(
                select(func.count()).select_from(OrderDetail).where(OrderDetail.product_id == 17)
            )
        assert remaining == 0

    async def test_malformed_graph(self, client):
        response = await client.put(f"{API}/products", json={"$ref": "1"})

        assert response.status_code == 400
        assert response.json()["error"] == "GraphFormatError"

    async def test_unknown_modified_property(self, client):
        product = (await client.get(f"{API}/products/1")).json()
        product["trackingState"] = 2
        product["modifiedProperties"] = ["colour"]

        response = await client.put(f"{API}/products", json=product)

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidChangeSetError"

    async def test_row_version_only_change_rejected(self, client):
        product = (await client.get(f"{API}/products/1")).json()
        product["rowVersion"] = base64.b64encode(b"\x00").decode("ascii")
        product["unitPrice"] = "99.00"
        product["trackingState"] = 2
        product["modifiedProperties"] = ["rowVersion"]

        response = await client.put(f"{API}/products", json=product)

        assert response.status_code == 422
        current = (await client.get(f"{API}/products/1")).json()
        assert current["unitPrice"] == "18.00"

    async def test_non_string_name_rejected(self, client):
        payload = {"productName": {"x": 1}, "categoryId": 1, "unitPrice": "1.00", "discontinued": False}

        response = await client.post(f"{API}/products", json=payload)

        assert response.status_code == 400
        assert response.json()["error"] == "GraphFormatError"


class TestOrderWrites:
    """Tests for tracked order graphs"""

    async def test_create_order(self, client):
        customer = (await client.get(f"{API}/customers/BOLID")).json()
        customer["$id"] = "2"
        payload = {
            "$id": "1",
            "customerId": "BOLID",
            "orderDate": "1998-05-06T00:00:00",
            "shipVia": 2,
            "freight": "8.53",
            "customer": customer,
            "orderDetails": {
                "$id": "10",
                "$values": [
                    {"$id": "11", "productId": 3, "unitPrice": "10.00", "quantity": 4, "discount": 0.0},
                    {"$id": "12", "productId": 16, "unitPrice": "17.45", "quantity": 1, "discount": 0.0},
                ],
            },
        }

        response = await client.post(f"{API}/orders", json=payload)

        assert response.status_code == 201
        created = response.json()
        details = values(created["orderDetails"])
        assert created["orderId"] > 0
        assert all(d["orderId"] == created["orderId"] for d in details)
        assert {d["product"]["productName"] for d in details} == {"Aniseed Syrup", "Pavlova"}

        fetched = await client.get(f"{API}/orders/{created['orderId']}")
        assert len(values(fetched.json()["orderDetails"])) == 2

    async def test_update_detail_quantity(self, client):
        order = (await client.get(f"{API}/orders/10643")).json()
        detail = next(d for d in values(order["orderDetails"]) if d["orderDetailId"] == 1)
        detail["quantity"] = 40
        detail["trackingState"] = 2
        detail["modifiedProperties"] = ["quantity"]

        response = await client.put(f"{API}/orders", json=order)

        assert response.status_code == 200
        fetched = (await client.get(f"{API}/orders/10643")).json()
        quantities = {d["orderDetailId"]: d["quantity"] for d in values(fetched["orderDetails"])}
        assert quantities == {1: 40, 2: 21, 3: 2}

    async def test_add_and_delete_details(self, client):
        order = (await client.get(f"{API}/orders/10702")).json()
        details = values(order["orderDetails"])
        removed = next(d for d in details if d["orderDetailId"] == 5)
        removed["trackingState"] = 3
        details.append(
            {"$id": "100", "orderId": 10702, "productId": 21, "unitPrice": "21.00",
             "quantity": 3, "discount": 0.0, "trackingState": 1}
        )

        response = await client.put(f"{API}/orders", json=order)

        assert response.status_code == 200
        returned = values(response.json()["orderDetails"])
        assert {d["productId"] for d in returned} == {16, 21}
        fetched = (await client.get(f"{API}/orders/10702")).json()
        assert {d["productId"] for d in values(fetched["orderDetails"])} == {16, 21}

    async def test_delete_order(self, client, session_factory):
        response = await client.delete(f"{API}/orders/10643")

        assert response.status_code == 204
        assert (await client.get(f"{API}/orders/10643")).status_code == 404
        async with session_factory() as db:
            remaining = await db.scalar(
                select(func.count()).select_from(OrderDetail).where(OrderDetail.order_id == 10643)
            )
        assert remaining == 0

    async def test_detail_with_unknown_product(self, client):
        order = (await client.get(f"{API}/orders/10692")).json()
        values(order["orderDetails"]).append(
            {"$id": "100", "orderId": 10692, "productId": 999, "unitPrice": "1.00",
             "quantity": 1, "discount": 0.0, "trackingState": 1}
        )

        response = await client.put(f"{API}/orders", json=order)

        assert response.status_code == 409
        assert response.json()["error"] == "ConstraintViolationError"

    async def test_delete_missing_order_conflicts(self, client):
        response = await client.put(f"{API}/orders", json={"orderId": 99999, "trackingState": 3})

        assert response.status_code == 409
        assert response.json()["error"] == "ConcurrencyConflictError"

    async def test_repeated_product_copies_rejected(self, client):
        chai = {"productId": 1, "productName": "Chai", "categoryId": 1, "unitPrice": "18.00", "discontinued": False}
        payload = {
            "$id": "1",
            "customerId": "ALFKI",
            "orderDetails": {
                "$id": "2",
                "$values": [
                    {"$id": "3", "productId": 1, "unitPrice": "18.00", "quantity": 1, "discount": 0.0,
                     "product": dict(chai, **{"$id": "4"})},
                    {"$id": "5", "productId": 1, "unitPrice": "18.00", "quantity": 2, "discount": 0.0,
                     "product": dict(chai, **{"$id": "6"})},
                ],
            },
        }

        response = await client.post(f"{API}/orders", json=payload)

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidChangeSetError"

    async def test_boolean_discount_rejected(self, client):
        payload = {
            "customerId": "ALFKI",
            "orderDetails": [{"productId": 1, "unitPrice": "18.00", "quantity": 1, "discount": True}],
        }

        response = await client.post(f"{API}/orders", json=payload)

        assert response.status_code == 400
