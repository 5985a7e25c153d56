from decimal import Decimal

from helpers import auth_headers, count, fetch, orders_for
from services.order_service.models import Order, OrderItem, OrderStatus
from services.order_service.service import OrderService
from services.product_service.models import Product


class TestCreateOrder:

    async def test_create_order_reserves_stock_and_locks_prices(
        self, client, gateway, make_user, make_fixed_product
    ):
        user = await make_user()
        mug = await make_fixed_product(price="10.00", stock=5, name="Mug")
        plate = await make_fixed_product(price="5.50", stock=1, name="Plate")

        resp = await client.post(
            "/orders",
            json={"items": [{"product_id": mug.id, "quantity": 2}, {"product_id": plate.id, "quantity": 1}]},
            headers=auth_headers(user),
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Order created successfully. Please proceed to payment."
        assert body["payment_url"] == f"https://pay.example/inv-{body['order_id']}-1"

        order = await fetch(Order, body["order_id"])
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.total_amount == Decimal("25.50")
        assert order.gateway_reference == f"inv-{order.id}-1"
        assert {(i.product_id, i.quantity, i.unit_price) for i in order.items} == {
            (mug.id, 2, Decimal("10.00")),
            (plate.id, 1, Decimal("5.50")),
        }
        assert (await fetch(Product, mug.id)).stock == 3
        assert (await fetch(Product, plate.id)).stock == 0
        assert gateway.initiated[0]["amount"] == Decimal("25.50")

    async def test_duplicate_lines_are_merged(self, client, gateway, make_user, make_fixed_product):
        user = await make_user()
        mug = await make_fixed_product(price="3.00", stock=5)

        resp = await client.post(
            "/orders",
            json={"items": [{"product_id": mug.id, "quantity": 1}, {"product_id": mug.id, "quantity": 2}]},
            headers=auth_headers(user),
        )

        assert resp.status_code == 201
        order = await fetch(Order, resp.json()["order_id"])
        assert [(i.product_id, i.quantity) for i in order.items] == [(mug.id, 3)]
        assert order.total_amount == Decimal("9.00")

    async def test_insufficient_stock_creates_nothing(self, client, gateway, make_user, make_fixed_product):
        user = await make_user()
        mug = await make_fixed_product(stock=1)

        resp = await client.post(
            "/orders", json={"items": [{"product_id": mug.id, "quantity": 2}]}, headers=auth_headers(user)
        )

        assert resp.status_code == 422
        body = resp.json()
        assert body["detail"]["rule"] == "insufficient_stock"
        assert body["detail"]["available"] == 1
        assert await count(Order) == 0
        assert await count(OrderItem) == 0
        assert (await fetch(Product, mug.id)).stock == 1
        assert gateway.initiated == []

    async def test_auction_product_cannot_be_bought_directly(self, client, gateway, make_user, make_auction):
        user = await make_user()
        auction = await make_auction()

        resp = await client.post(
            "/orders", json={"items": [{"product_id": auction.id, "quantity": 1}]}, headers=auth_headers(user)
        )

        assert resp.status_code == 422
        assert resp.json()["detail"]["rule"] == "not_fixed_price"
        assert await count(Order) == 0

    async def test_unknown_product_is_not_found(self, client, gateway, make_user, make_fixed_product):
        user = await make_user()
        mug = await make_fixed_product()

        resp = await client.post(
            "/orders",
            json={"items": [{"product_id": mug.id, "quantity": 1}, {"product_id": 999, "quantity": 1}]},
            headers=auth_headers(user),
        )

        assert resp.status_code == 404
        assert resp.json()["detail"]["product_ids"] == [999]
        assert (await fetch(Product, mug.id)).stock == 5

    async def test_empty_order_is_rejected(self, client, gateway, make_user):
        user = await make_user()
        resp = await client.post("/orders", json={"items": []}, headers=auth_headers(user))
        assert resp.status_code == 422


class TestIdempotentCheckout:

    async def test_replay_returns_the_same_order(self, client, gateway, make_user, make_fixed_product):
        user = await make_user()
        mug = await make_fixed_product(stock=5)
        payload = {"items": [{"product_id": mug.id, "quantity": 1}], "idempotency_key": "checkout-1"}

        first = await client.post("/orders", json=payload, headers=auth_headers(user))
        second = await client.post("/orders", json=payload, headers=auth_headers(user))

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["message"] == "Order already exists. Please proceed to payment."
        assert second.json()["order_id"] == first.json()["order_id"]
        assert second.json()["payment_url"] == first.json()["payment_url"]
        assert len(await orders_for(user.id)) == 1
        assert len(gateway.initiated) == 1
        assert (await fetch(Product, mug.id)).stock == 4

    async def test_gateway_failure_keeps_the_order_for_retry(self, client, gateway, make_user, make_fixed_product):
        user = await make_user()
        mug = await make_fixed_product(stock=5)
        payload = {"items": [{"product_id": mug.id, "quantity": 1}], "idempotency_key": "checkout-2"}
        gateway.failures = 1

        failed = await client.post("/orders", json=payload, headers=auth_headers(user))

        assert failed.status_code == 502
        order_id = failed.json()["detail"]["order_id"]
        order = await fetch(Order, order_id)
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.gateway_reference is None

        retried = await client.post("/orders", json=payload, headers=auth_headers(user))

        assert retried.status_code == 200
        assert retried.json()["order_id"] == order_id
        assert (await fetch(Order, order_id)).gateway_reference == retried.json()["payment_url"].rsplit("/", 1)[1]
        assert len(await orders_for(user.id)) == 1
        assert (await fetch(Product, mug.id)).stock == 4

    async def test_key_of_a_settled_order_conflicts(self, client, db, gateway, make_user, make_fixed_product):
        user = await make_user()
        mug = await make_fixed_product(stock=5)
        payload = {"items": [{"product_id": mug.id, "quantity": 1}], "idempotency_key": "checkout-3"}
        first = await client.post("/orders", json=payload, headers=auth_headers(user))
        order = await db.get(Order, first.json()["order_id"])
        order.status = OrderStatus.PAID.value
        await db.commit()

        resp = await client.post("/orders", json=payload, headers=auth_headers(user))

        assert resp.status_code == 409
        assert len(await orders_for(user.id)) == 1

    async def test_key_of_another_users_order_conflicts(self, client, gateway, make_user, make_fixed_product):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        mug = await make_fixed_product(stock=5)
        payload = {"items": [{"product_id": mug.id, "quantity": 1}], "idempotency_key": "shared-key"}
        await client.post("/orders", json=payload, headers=auth_headers(alice))

        resp = await client.post("/orders", json=payload, headers=auth_headers(bob))

        assert resp.status_code == 409
        assert "order_id" not in resp.json().get("detail", {})
        assert await orders_for(bob.id) == []


class TestReadAndPayOrders:

    async def test_orders_are_private(self, client, gateway, make_user, make_fixed_product):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        mug = await make_fixed_product()
        created = await client.post(
            "/orders", json={"items": [{"product_id": mug.id, "quantity": 1}]}, headers=auth_headers(alice)
        )
        order_id = created.json()["order_id"]

        own = await client.get(f"/orders/{order_id}", headers=auth_headers(alice))
        other = await client.get(f"/orders/{order_id}", headers=auth_headers(bob))
        listing = await client.get("/orders", headers=auth_headers(bob))

        assert own.status_code == 200
        assert own.json()["items"][0]["product_id"] == mug.id
        assert other.status_code == 404
        assert listing.json() == []

    async def test_pay_auction_order(self, client, db, gateway, make_user, make_auction):
        winner = await make_user("Winner")
        auction = await make_auction()
        order = OrderService.add_auction_order(db, winner.id, auction, Decimal("150.00"))
        await db.commit()

        first = await client.post(f"/orders/{order.id}/pay", headers=auth_headers(winner))
        second = await client.post(f"/orders/{order.id}/pay", headers=auth_headers(winner))

        assert first.status_code == 200
        assert first.json()["payment_url"] == f"https://pay.example/inv-{order.id}-1"
        assert second.json()["payment_url"] == first.json()["payment_url"]
        assert len(gateway.initiated) == 1
        assert gateway.initiated[0]["amount"] == Decimal("150.00")

    async def test_paid_order_cannot_be_paid_again(self, client, db, gateway, make_user, make_auction):
        winner = await make_user("Winner")
        auction = await make_auction()
        order = OrderService.add_auction_order(db, winner.id, auction, Decimal("150.00"))
        order.status = OrderStatus.PAID.value
        await db.commit()

        resp = await client.post(f"/orders/{order.id}/pay", headers=auth_headers(winner))

        assert resp.status_code == 409
        assert gateway.initiated == []
