"""Tests for the session cart cache."""

import pytest

from storefront.application.cart_cache import CartCache, select_latest_cart
from storefront.domain.exceptions import GatewayError, ProductNotFoundError
from storefront.domain.session import CartLine
from tests.conftest import CART_TTL_MS, make_error_response, make_success_response


class TestSelectLatestCart:
    """Tests for most-recent cart selection."""

    def test_empty(self):
        assert select_latest_cart([]) is None

    def test_picks_greatest_date(self):
        carts = [
            {"id": 1, "date": "2020-03-02T00:00:00.000Z"},
            {"id": 2, "date": "2020-03-10T00:00:00.000Z"},
            {"id": 3, "date": "2020-01-01T00:00:00.000Z"},
        ]
        assert select_latest_cart(carts)["id"] == 2

    def test_tie_goes_to_last(self):
        carts = [
            {"id": 1, "date": "2020-03-02T00:00:00.000Z"},
            {"id": 2, "date": "2020-03-02T00:00:00.000Z"},
        ]
        assert select_latest_cart(carts)["id"] == 2

    def test_mixed_date_formats(self):
        carts = [
            {"id": 1, "date": "2020-03-05"},
            {"id": 2, "date": "2020-03-02T10:00:00.000Z"},
            {"id": 3, "date": None},
        ]
        assert select_latest_cart(carts)["id"] == 1


class TestStaleness:
    """Tests for the TTL check."""

    def test_never_refreshed_is_stale(self, cart_cache, logged_in_session):
        assert cart_cache.is_stale(logged_in_session) is True

    def test_fresh_within_ttl(self, cart_cache, logged_in_session, clock):
        logged_in_session.cart_timestamp = clock.now - 1000
        assert cart_cache.is_stale(logged_in_session) is False

    def test_exactly_ttl_old_is_fresh(self, cart_cache, logged_in_session, clock):
        logged_in_session.cart_timestamp = clock.now - CART_TTL_MS
        assert cart_cache.is_stale(logged_in_session) is False

    def test_older_than_ttl_is_stale(self, cart_cache, logged_in_session, clock):
        logged_in_session.cart_timestamp = clock.now - CART_TTL_MS - 1
        assert cart_cache.is_stale(logged_in_session) is True


class TestRead:
    """Tests for cart reads."""

    @pytest.mark.asyncio
    async def test_stale_read_adopts_latest_gateway_cart(
        self, cart_cache, fake_gateway, logged_in_session, clock
    ):
        fake_gateway.carts = [
            {"id": 1, "userId": 1, "date": "2020-03-02T00:00:00.000Z",
             "products": [{"productId": 2, "quantity": 4}]},
            {"id": 7, "userId": 1, "date": "2020-03-09T00:00:00.000Z",
             "products": [{"productId": 1, "quantity": 1}, {"productId": 5, "quantity": 2}]},
            {"id": 8, "userId": 2, "date": "2021-01-01T00:00:00.000Z",
             "products": [{"productId": 2, "quantity": 9}]},
        ]

        cart = await cart_cache.read(logged_in_session)

        assert logged_in_session.cart_id == 7
        assert logged_in_session.cart_user_id == 1
        assert logged_in_session.cart_items == [CartLine(1, 1), CartLine(5, 2)]
        assert logged_in_session.cart_timestamp == clock.now
        assert cart["cartId"] == 7
        assert [item["product"]["id"] for item in cart["items"]] == [1, 5]
        assert cart["totalItems"] == 3
        assert cart["totalPrice"] == 109.95 * 1 + 695 * 2

    @pytest.mark.asyncio
    async def test_stale_read_without_gateway_cart_creates_one(
        self, cart_cache, fake_gateway, logged_in_session
    ):
        cart = await cart_cache.read(logged_in_session)

        assert fake_gateway.call_names() == ["get_user_carts", "create_cart"]
        assert logged_in_session.cart_id == 11
        assert cart == {"cartId": 11, "items": [], "totalItems": 0, "totalPrice": 0}

    @pytest.mark.asyncio
    async def test_fresh_read_uses_cache(
        self, cart_cache, fake_gateway, logged_in_session, clock
    ):
        logged_in_session.cart_id = 3
        logged_in_session.cart_items = [CartLine(2, 3)]
        logged_in_session.cart_timestamp = clock.now

        cart = await cart_cache.read(logged_in_session)

        assert "get_user_carts" not in fake_gateway.call_names()
        assert cart["items"][0]["quantity"] == 3
        assert cart["items"][0]["product"]["title"] == "Mens Casual Premium Slim Fit T-Shirts"

    @pytest.mark.asyncio
    async def test_read_at_exact_ttl_does_not_refresh(
        self, cart_cache, fake_gateway, logged_in_session, clock
    ):
        logged_in_session.cart_id = 3
        logged_in_session.cart_items = [CartLine(2, 1)]
        logged_in_session.cart_timestamp = clock.now
        clock.advance(CART_TTL_MS)

        await cart_cache.read(logged_in_session)

        assert "get_user_carts" not in fake_gateway.call_names()
        assert logged_in_session.cart_id == 3

    @pytest.mark.asyncio
    async def test_read_past_ttl_refreshes(
        self, cart_cache, fake_gateway, logged_in_session, clock
    ):
        logged_in_session.cart_id = 3
        logged_in_session.cart_items = [CartLine(2, 1)]
        logged_in_session.cart_timestamp = clock.now
        clock.advance(CART_TTL_MS + 1)

        await cart_cache.read(logged_in_session)

        assert fake_gateway.call_names()[0] == "get_user_carts"
        assert logged_in_session.cart_id == 11
        assert logged_in_session.cart_items == []

    @pytest.mark.asyncio
    async def test_totals_match_lines(self, cart_cache, logged_in_session, clock):
        logged_in_session.cart_id = 3
        logged_in_session.cart_items = [CartLine(1, 3), CartLine(2, 7), CartLine(5, 1)]
        logged_in_session.cart_timestamp = clock.now

        cart = await cart_cache.read(logged_in_session)

        assert cart["totalItems"] == 11
        assert cart["totalPrice"] == sum(
            item["product"]["price"] * item["quantity"] for item in cart["items"]
        )

    @pytest.mark.asyncio
    async def test_read_with_unknown_product_raises(
        self, cart_cache, logged_in_session, clock
    ):
        logged_in_session.cart_id = 3
        logged_in_session.cart_items = [CartLine(999, 1)]
        logged_in_session.cart_timestamp = clock.now

        with pytest.raises(ProductNotFoundError):
            await cart_cache.read(logged_in_session)


class TestWrite:
    """Tests for cart mutations."""

    @pytest.mark.asyncio
    async def test_first_write_creates_cart_without_reading(
        self, cart_cache, fake_gateway, logged_in_session, clock
    ):
        fake_gateway.carts = [
            {"id": 1, "userId": 1, "date": "2020-03-02T00:00:00.000Z",
             "products": [{"productId": 2, "quantity": 4}]},
        ]

        line = await cart_cache.add(logged_in_session, product_id=1, quantity=2)

        assert fake_gateway.call_names() == ["create_cart", "update_cart"]
        assert line == CartLine(1, 2)
        assert logged_in_session.cart_id == 11
        assert logged_in_session.cart_user_id == 1
        assert logged_in_session.cart_items == [CartLine(1, 2)]
        assert logged_in_session.cart_timestamp == clock.now

    @pytest.mark.asyncio
    async def test_add_merges_quantities(self, cart_cache, logged_in_session):
        await cart_cache.add(logged_in_session, product_id=1, quantity=2)
        line = await cart_cache.add(logged_in_session, product_id=1, quantity=3)

        assert line.quantity == 5
        assert logged_in_session.cart_items == [CartLine(1, 5)]

    @pytest.mark.asyncio
    async def test_add_pushes_full_list(self, cart_cache, fake_gateway, logged_in_session):
        await cart_cache.add(logged_in_session, product_id=1, quantity=1)
        await cart_cache.add(logged_in_session, product_id=2, quantity=4)

        name, args = fake_gateway.calls[-1]
        assert name == "update_cart"
        assert args == (
            11,
            1,
            [{"productId": 1, "quantity": 1}, {"productId": 2, "quantity": 4}],
        )
        assert fake_gateway.carts[0]["products"] == args[2]

    @pytest.mark.asyncio
    async def test_remove_filters_line(self, cart_cache, fake_gateway, logged_in_session):
        await cart_cache.add(logged_in_session, product_id=1, quantity=1)
        await cart_cache.add(logged_in_session, product_id=2, quantity=1)

        await cart_cache.remove(logged_in_session, product_id=1)

        assert logged_in_session.cart_items == [CartLine(2, 1)]
        assert fake_gateway.calls[-1][1][2] == [{"productId": 2, "quantity": 1}]

    @pytest.mark.asyncio
    async def test_remove_missing_product_is_noop_write(self, cart_cache, logged_in_session):
        await cart_cache.remove(logged_in_session, product_id=42)
        assert logged_in_session.cart_items == []
        assert logged_in_session.cart_id == 11

    @pytest.mark.asyncio
    async def test_stale_write_with_known_cart_reconciles(
        self, cart_cache, fake_gateway, logged_in_session, clock
    ):
        fake_gateway.carts = [
            {"id": 4, "userId": 1, "date": "2020-03-02T00:00:00.000Z",
             "products": [{"productId": 2, "quantity": 4}]},
        ]
        logged_in_session.cart_id = 4
        logged_in_session.cart_items = [CartLine(5, 1)]
        logged_in_session.cart_timestamp = clock.now
        clock.advance(CART_TTL_MS + 1)

        await cart_cache.add(logged_in_session, product_id=2, quantity=1)

        assert fake_gateway.call_names() == ["get_user_carts", "update_cart"]
        assert logged_in_session.cart_items == [CartLine(2, 5)]

    @pytest.mark.asyncio
    async def test_write_at_exact_ttl_uses_cache(
        self, cart_cache, fake_gateway, logged_in_session, clock
    ):
        logged_in_session.cart_id = 4
        logged_in_session.cart_items = [CartLine(5, 1)]
        logged_in_session.cart_timestamp = clock.now
        clock.advance(CART_TTL_MS)

        await cart_cache.add(logged_in_session, product_id=5, quantity=1)

        assert fake_gateway.call_names() == ["update_cart"]
        assert logged_in_session.cart_items == [CartLine(5, 2)]

    @pytest.mark.asyncio
    async def test_clear_twice(self, cart_cache, fake_gateway, logged_in_session):
        await cart_cache.add(logged_in_session, product_id=1, quantity=1)

        await cart_cache.clear(logged_in_session)
        assert logged_in_session.cart_items == []
        await cart_cache.clear(logged_in_session)
        assert logged_in_session.cart_items == []

        assert fake_gateway.call_names().count("create_cart") == 1
        assert fake_gateway.calls[-1][1][2] == []

    @pytest.mark.asyncio
    async def test_clear_creates_cart_when_missing(
        self, cart_cache, fake_gateway, logged_in_session
    ):
        await cart_cache.clear(logged_in_session)
        assert fake_gateway.call_names() == ["create_cart", "update_cart"]
        assert logged_in_session.cart_id == 11


class TestGatewayFailures:
    """Tests for gateway failure propagation."""

    @pytest.mark.asyncio
    async def test_create_failure_raises(self, mock_gateway, logged_in_session):
        mock_gateway.create_cart.return_value = make_error_response(
            "REQUEST_ERROR", "Connection refused", 502
        )
        cache = CartCache(gateway=mock_gateway)

        with pytest.raises(GatewayError) as exc_info:
            await cache.add(logged_in_session, product_id=1, quantity=1)

        assert "create_cart" in exc_info.value.message
        assert logged_in_session.cart_items == []
        mock_gateway.update_cart.assert_not_called()

    @pytest.mark.asyncio
    async def test_push_failure_keeps_local_mutation(self, mock_gateway, logged_in_session):
        mock_gateway.create_cart.return_value = make_success_response({"id": 20})
        mock_gateway.update_cart.return_value = make_error_response(
            "HTTP_ERROR", "Internal Server Error", 500
        )
        cache = CartCache(gateway=mock_gateway)

        with pytest.raises(GatewayError) as exc_info:
            await cache.add(logged_in_session, product_id=1, quantity=2)

        assert exc_info.value.status_code == 500
        assert logged_in_session.cart_id == 20
        assert logged_in_session.cart_items == [CartLine(1, 2)]
        mock_gateway.update_cart.assert_called_once()

    @pytest.mark.asyncio
    async def test_reconcile_failure_raises(self, mock_gateway, logged_in_session):
        mock_gateway.get_user_carts.return_value = make_error_response(
            "TIMEOUT", "Request timed out", 504
        )
        cache = CartCache(gateway=mock_gateway)

        with pytest.raises(GatewayError):
            await cache.read(logged_in_session)

        assert logged_in_session.cart_id is None
        mock_gateway.create_cart.assert_not_called()
