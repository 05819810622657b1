"""Tests for currencies, languages and exchange rates."""

import pytest
from fastapi.testclient import TestClient

import locales
from errors import DuplicateRecordError, RecordNotFoundError, ValidationFailedError
from main import app
from schemas import ExchangeRateIn


def currency(code, **extra):
    return {"code": code, "name": code, "symbol": code[0], "is_active": True, "is_default": False,
            "sort_order": 0, **extra}


class TestLocaleStore:
    async def test_codes_are_normalized(self, db):
        created = await locales.currencies.create(currency("ngn"))
        assert created["code"] == "NGN"
        assert (await locales.currencies.get(" ngn "))["id"] == created["id"]
        language = await locales.languages.create({"code": "FR", "name": "French", "native_name": "Français"})
        assert language["code"] == "fr"

    async def test_duplicate_code(self, db):
        await locales.currencies.create(currency("USD"))
        with pytest.raises(DuplicateRecordError):
            await locales.currencies.create(currency("usd"))

    async def test_only_one_default(self, db):
        await locales.currencies.create(currency("NGN", is_default=True))
        await locales.currencies.create(currency("USD", is_default=True))
        defaults = [d["code"] for d in db["currency"].docs if d["is_default"]]
        assert defaults == ["USD"]

        await locales.currencies.update("ngn", {"is_default": True})
        defaults = [d["code"] for d in db["currency"].docs if d["is_default"]]
        assert defaults == ["NGN"]

    async def test_active_only_listing_is_sorted(self, db):
        await locales.currencies.create(currency("USD", sort_order=2))
        await locales.currencies.create(currency("NGN", sort_order=1))
        await locales.currencies.create(currency("EUR", sort_order=0, is_active=False))
        assert [c["code"] for c in await locales.currencies.list(active_only=True)] == ["NGN", "USD"]
        assert len(await locales.currencies.list()) == 3

    async def test_update_unknown(self, db):
        with pytest.raises(RecordNotFoundError):
            await locales.currencies.update("XYZ", {"name": "Nope"})

    async def test_default_cannot_be_deleted(self, db):
        await locales.currencies.create(currency("NGN", is_default=True))
        with pytest.raises(ValidationFailedError):
            await locales.currencies.delete("NGN")
        await locales.currencies.create(currency("USD"))
        await locales.currencies.delete("usd")
        assert [d["code"] for d in db["currency"].docs] == ["NGN"]

    async def test_writes_use_elevated_client(self, db, mongo_client):
        await locales.currencies.create(currency("USD"))
        await locales.currencies.update("usd", {"name": "Dollar"})
        await locales.currencies.delete("usd")
        await locales.set_exchange_rate(ExchangeRateIn(base_currency="NGN", target_currency="USD", rate=0.0012))
        await locales.delete_exchange_rate("NGN", "USD")
        assert mongo_client.closed == 5


class TestExchangeRates:
    async def test_set_rate_upserts_pair(self, db):
        await locales.set_exchange_rate(ExchangeRateIn(base_currency="ngn", target_currency="usd", rate=0.0012))
        updated = await locales.set_exchange_rate(ExchangeRateIn(base_currency="NGN", target_currency="USD", rate=0.0013))
        assert len(db["exchange_rate"].docs) == 1
        assert updated["rate"] == 0.0013
        assert updated["source"] == "manual"

    async def test_rate_map(self, db):
        await locales.set_exchange_rate(ExchangeRateIn(base_currency="NGN", target_currency="USD", rate=0.0012))
        await locales.set_exchange_rate(ExchangeRateIn(base_currency="USD", target_currency="NGN", rate=800))
        assert await locales.exchange_rate_map() == {"NGN": {"USD": 0.0012}, "USD": {"NGN": 800.0}}

    async def test_delete_unknown_rate(self, db):
        with pytest.raises(RecordNotFoundError):
            await locales.delete_exchange_rate("NGN", "EUR")

    async def test_convert_direct(self, db):
        await locales.set_exchange_rate(ExchangeRateIn(base_currency="USD", target_currency="NGN", rate=800))
        result = await locales.convert("usd", "ngn", 2.5)
        assert result["converted"] == 2000
        assert result["rate"] == 800
        assert "inverted" not in result

    async def test_convert_uses_inverse_rate(self, db):
        await locales.set_exchange_rate(ExchangeRateIn(base_currency="USD", target_currency="NGN", rate=800))
        result = await locales.convert("NGN", "USD", 1600)
        assert result["inverted"] is True
        assert result["converted"] == pytest.approx(2)

    async def test_convert_same_currency(self, db):
        assert (await locales.convert("NGN", "ngn", 10))["converted"] == 10

    async def test_convert_missing_rate(self, db):
        with pytest.raises(RecordNotFoundError):
            await locales.convert("NGN", "EUR", 10)

    async def test_sync_pulls_every_active_pair(self, db, http):
        await locales.currencies.create(currency("NGN"))
        await locales.currencies.create(currency("USD"))
        await locales.currencies.create(currency("GHS"))
        http.add("GET", "/latest/NGN", {"result": "success", "rates": {"USD": 0.0012, "NGN": 1}})
        http.add("GET", "/latest/USD", {"result": "success", "rates": {"NGN": 800, "GHS": 12}})
        http.add("GET", "/latest/GHS", {"result": "success", "conversion_rates": {"NGN": 66, "USD": 0.08}})

        result = await locales.sync_exchange_rates(http)

        assert result["updated"] == 5
        assert result["errors"] == ["NGN->GHS: rate not available"]
        rates = await locales.exchange_rate_map()
        assert rates["GHS"]["USD"] == 0.08
        assert all(d["source"] == "api" for d in db["exchange_rate"].docs)


class TestLocaleEndpoints:
    def test_admin_routes_require_session(self, db):
        response = TestClient(app).post("/api/admin/locale/currencies", json=currency("NGN"))
        assert response.status_code == 401

    def test_currency_crud(self, db, admin_token):
        client = TestClient(app)
        headers = {"Authorization": f"Bearer {admin_token}"}
        created = client.post("/api/admin/locale/currencies", json=currency("NGN", symbol="₦"), headers=headers)
        assert created.status_code == 201
        assert client.post("/api/admin/locale/currencies", json=currency("NGN"), headers=headers).status_code == 409

        patched = client.patch("/api/admin/locale/currencies/ngn", json={"symbol": "N"}, headers=headers)
        assert patched.json()["currency"]["symbol"] == "N"
        assert client.get("/api/admin/locale/currencies/EUR", headers=headers).status_code == 404

    def test_invalid_currency_code(self, db, admin_token):
        response = TestClient(app).post(
            "/api/admin/locale/currencies", json=currency("NAIRA"),
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        assert response.status_code == 400

    def test_public_convert(self, db):
        db["exchange_rate"].docs.append({"base_currency": "USD", "target_currency": "NGN", "rate": 800})
        response = TestClient(app).get("/api/locale/convert", params={"from": "USD", "to": "NGN", "amount": 3})
        assert response.status_code == 200
        assert response.json()["converted"] == 2400
