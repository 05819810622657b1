"""Pytest fixtures: an in-memory Mongo stand-in and a scripted HTTP session."""
import copy
import json
import re
from types import SimpleNamespace
from typing import Any, Optional

import pytest
from bson import ObjectId

import database
from config import settings
from fulfillment import FulfillmentAdapter, PodOrderResult, PodOrderStatus


# --- In-memory collections ---


def _resolve(value: Any, parts: list[str]) -> list[Any]:
    if not parts:
        return [value]
    if isinstance(value, list):
        found = []
        for element in value:
            found.extend(_resolve(element, parts))
        return found
    if isinstance(value, dict) and parts[0] in value:
        return _resolve(value[parts[0]], parts[1:])
    return []


def _candidates(doc: dict, path: str) -> list[Any]:
    values = []
    for value in _resolve(doc, path.split(".")):
        values.append(value)
        if isinstance(value, list):
            values.extend(value)
    return values


def _compare(values: list[Any], op, expected) -> bool:
    for value in values:
        try:
            if value is not None and op(value, expected):
                return True
        except TypeError:
            continue
    return False


def _match_operator(values: list[Any], op: str, expected: Any, options: str) -> bool:
    if op == "$in":
        return any(v in expected for v in values) or (None in expected and not values)
    if op == "$nin":
        return not any(v in expected for v in values)
    if op == "$ne":
        return all(v != expected for v in values)
    if op == "$gte":
        return _compare(values, lambda a, b: a >= b, expected)
    if op == "$gt":
        return _compare(values, lambda a, b: a > b, expected)
    if op == "$lte":
        return _compare(values, lambda a, b: a <= b, expected)
    if op == "$lt":
        return _compare(values, lambda a, b: a < b, expected)
    if op == "$exists":
        return bool(values) == bool(expected)
    if op == "$regex":
        flags = re.IGNORECASE if "i" in options else 0
        return any(isinstance(v, str) and re.search(expected, v, flags) for v in values)
    if op == "$options":
        return True
    raise NotImplementedError(op)


def matches(doc: dict, filter_dict: dict) -> bool:
    for key, condition in filter_dict.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        if key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
            continue
        values = _candidates(doc, key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            options = condition.get("$options", "")
            if not all(_match_operator(values, op, exp, options) for op, exp in condition.items()):
                return False
        elif condition is None:
            if values and None not in values:
                return False
        elif condition not in values:
            return False
    return True


def _set_path(doc: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    for part in parts[:-1]:
        doc = doc.setdefault(part, {})
    doc[parts[-1]] = value


def _get_path(doc: dict, path: str, default: Any = None) -> Any:
    for part in path.split("."):
        if not isinstance(doc, dict) or part not in doc:
            return default
        doc = doc[part]
    return doc


def apply_update(doc: dict, update: dict, inserting: bool = False) -> None:
    for path, value in (update.get("$set") or {}).items():
        _set_path(doc, path, copy.deepcopy(value))
    if inserting:
        for path, value in (update.get("$setOnInsert") or {}).items():
            _set_path(doc, path, copy.deepcopy(value))
    for path, amount in (update.get("$inc") or {}).items():
        _set_path(doc, path, (_get_path(doc, path, 0) or 0) + amount)
    for path, value in (update.get("$push") or {}).items():
        current = list(_get_path(doc, path, []) or [])
        current.append(copy.deepcopy(value))
        _set_path(doc, path, current)


def _sort_docs(docs: list[dict], sort: Optional[list]) -> list[dict]:
    for field, direction in reversed(sort or []):
        present = [d for d in docs if _get_path(d, field) is not None]
        missing = [d for d in docs if _get_path(d, field) is None]
        present.sort(key=lambda d: _get_path(d, field), reverse=direction < 0)
        docs = missing + present if direction > 0 else present + missing
    return docs


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._sort: Optional[list] = None
        self._skip = 0
        self._limit = 0

    def sort(self, key, direction=None):
        self._sort = list(key) if isinstance(key, list) else [(key, direction or 1)]
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _results(self) -> list[dict]:
        docs = _sort_docs(list(self._docs), self._sort)[self._skip:]
        if self._limit:
            docs = docs[: self._limit]
        return [copy.deepcopy(d) for d in docs]

    def __aiter__(self):
        self._iter = iter(self._results())
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration

    async def to_list(self, length=None):
        return self._results()


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict] = []
        self.indexes: list[Any] = []

    def _matching(self, filter_dict: Optional[dict]) -> list[dict]:
        return [d for d in self.docs if matches(d, filter_dict or {})]

    async def insert_one(self, doc: dict):
        doc.setdefault("_id", ObjectId())
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"], acknowledged=True)

    async def find_one(self, filter_dict: Optional[dict] = None, sort=None, **kwargs):
        found = _sort_docs(self._matching(filter_dict), sort)
        return copy.deepcopy(found[0]) if found else None

    def find(self, filter_dict: Optional[dict] = None, *args, **kwargs) -> FakeCursor:
        return FakeCursor(self._matching(filter_dict))

    def _upsert(self, filter_dict: dict, update: dict) -> dict:
        doc = {
            k: v for k, v in filter_dict.items()
            if not k.startswith("$") and not (isinstance(v, dict) and any(x.startswith("$") for x in v))
        }
        apply_update(doc, update, inserting=True)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return doc

    async def update_one(self, filter_dict: dict, update: dict, upsert: bool = False):
        found = self._matching(filter_dict)
        if found:
            apply_update(found[0], update)
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = self._upsert(filter_dict, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def update_many(self, filter_dict: dict, update: dict, upsert: bool = False):
        found = self._matching(filter_dict)
        for doc in found:
            apply_update(doc, update)
        return SimpleNamespace(matched_count=len(found), modified_count=len(found), upserted_id=None)

    async def delete_one(self, filter_dict: dict):
        found = self._matching(filter_dict)
        if found:
            self.docs.remove(found[0])
        return SimpleNamespace(deleted_count=1 if found else 0)

    async def count_documents(self, filter_dict: dict) -> int:
        return len(self._matching(filter_dict))

    async def find_one_and_update(self, filter_dict: dict, update: dict, sort=None, return_document=False, **kwargs):
        found = _sort_docs(self._matching(filter_dict), sort)
        if not found:
            return None
        doc = found[0]
        before = copy.deepcopy(doc)
        apply_update(doc, update)
        return copy.deepcopy(doc) if return_document else before

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return str(keys)


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self._collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    async def list_collection_names(self) -> list[str]:
        return sorted(self._collections)


class FakeMongoClient:
    def __init__(self):
        self._databases: dict[str, FakeDatabase] = {}
        self.closed = 0

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self._databases:
            self._databases[name] = FakeDatabase(name)
        return self._databases[name]

    def close(self) -> None:
        self.closed += 1


# --- Scripted HTTP ---


class FakeResponse:
    def __init__(self, status: int, body: Any):
        self.status = status
        self._text = body if isinstance(body, str) else json.dumps(body)

    async def text(self) -> str:
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for ``aiohttp.ClientSession``; answers from registered routes."""

    def __init__(self):
        self.routes: list[tuple[str, str, int, Any]] = []
        self.calls: list[SimpleNamespace] = []

    def add(self, method: str, url_contains: str, body: Any, status: int = 200) -> "FakeSession":
        self.routes.append((method.upper(), url_contains, status, body))
        return self

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.calls.append(SimpleNamespace(method=method.upper(), url=url, kwargs=kwargs))
        for route_method, fragment, status, body in self.routes:
            if route_method == method.upper() and fragment in url:
                return FakeResponse(status, body)
        return FakeResponse(404, {"message": f"no route for {method} {url}"})

    def calls_to(self, fragment: str) -> list[SimpleNamespace]:
        return [c for c in self.calls if fragment in c.url]

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


# --- Fixtures ---


CREDENTIAL_KEYS = (
    "SHOPIFY_STORE_DOMAIN", "SHOPIFY_ACCESS_TOKEN", "SHOPIFY_WEBHOOK_SECRET",
    "PRINTFUL_API_KEY", "PRINTIFY_API_KEY", "PRINTIFY_SHOP_ID", "IKONSHOP_API_KEY",
    "PAYSTACK_SECRET_KEY", "FLUTTERWAVE_SECRET_KEY", "FLUTTERWAVE_PUBLIC_KEY", "FLUTTERWAVE_SECRET_HASH",
    "MONNIFY_API_KEY", "MONNIFY_SECRET_KEY", "SOLANA_WALLET_ADDRESS", "SOLANA_SPL_TOKEN",
    "EMAILJS_SERVICE_ID", "EMAILJS_TEMPLATE_ID", "EMAILJS_PUBLIC_KEY", "CRON_SECRET",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Every credential starts out unset; tests opt in per feature."""
    for key in CREDENTIAL_KEYS:
        monkeypatch.setattr(settings, key, "")
    monkeypatch.setattr(settings, "PAYMENT_PROVIDER", "paystack")
    monkeypatch.setattr(settings, "ADMIN_EMAIL_DOMAINS", "geekcreations.com")
    monkeypatch.setattr(settings, "ADMIN_EMAILS", "owner@example.com")
    monkeypatch.setattr(settings, "TAX_RATE", 0.075)
    monkeypatch.setattr(settings, "FREE_SHIPPING_THRESHOLD", 50000)
    monkeypatch.setattr(settings, "SHIPPING_COST", 2500)
    monkeypatch.setattr(settings, "SHOPIFY_CURRENCY_CODE", "NGN")
    monkeypatch.setattr(settings, "APP_URL", "http://localhost:8000")
    yield


@pytest.fixture
def mongo_client(monkeypatch):
    client = FakeMongoClient()
    monkeypatch.setattr(database, "_connect", lambda url: client)
    monkeypatch.setattr(database, "_client", None)
    monkeypatch.setattr(database, "_db", None)
    return client


@pytest.fixture
def db(mongo_client):
    """The database both the request-scoped and the elevated client resolve to."""
    return mongo_client[settings.DATABASE_NAME]


@pytest.fixture
def http():
    return FakeSession()


@pytest.fixture
def shopify_configured(monkeypatch):
    monkeypatch.setattr(settings, "SHOPIFY_STORE_DOMAIN", "geeks.myshopify.com")
    monkeypatch.setattr(settings, "SHOPIFY_ACCESS_TOKEN", "shpat_test")


@pytest.fixture
def admin_token(db):
    """A live session for an allowed admin email."""
    token = "admin-session-token"
    db["admin_session"].docs.append(
        {"_id": ObjectId(), "token": token, "email": "ops@geekcreations.com"}
    )
    return token


@pytest.fixture
def shopify_order_payload() -> dict:
    return {
        "id": 5551234,
        "order_number": 1042,
        "email": "buyer@example.com",
        "tags": "",
        "shipping_address": {
            "first_name": "Ada",
            "last_name": "Obi",
            "address1": "12 Marina Road",
            "city": "Lagos",
            "province_code": "LA",
            "country_code": "NG",
            "zip": "101001",
            "phone": "+2348000000000",
        },
        "line_items": [
            {"id": 1, "title": "Hello World Tee", "variant_id": 901, "product_id": 71,
             "quantity": 1, "price": "15000.00", "sku": "71-4012"},
            {"id": 2, "title": "Bug Hunter Hoodie", "variant_id": 902, "product_id": 88,
             "quantity": 2, "price": "30000.00", "sku": "pfy-555"},
        ],
    }


def add_product(db, handle: str, provider: str, skus: list[str], **extra) -> dict:
    stock = extra.pop("stock", 5)
    doc = {
        "_id": ObjectId(),
        "title": extra.pop("title", handle.replace("-", " ").title()),
        "handle": handle,
        "status": extra.pop("status", "active"),
        "fulfillment_provider": provider,
        "variants": [
            {"id": f"{handle}-{i}", "sku": sku, "price": 15000, "inventory_quantity": stock}
            for i, sku in enumerate(skus)
        ],
        **extra,
    }
    db["product"].docs.append(doc)
    return doc


class RecordingAdapter(FulfillmentAdapter):
    """Provider double that remembers every order it was sent."""

    def __init__(self, name: str, succeed: bool = True, tracking: Optional[str] = None):
        super().__init__(None)
        self.name = name
        self.succeed = succeed
        self.tracking = tracking
        self.orders = []
        self.pod_status = PodOrderStatus(status="pending")
        self.status_requests = []

    def is_configured(self) -> bool:
        return True

    async def _create_order(self, session, order):
        self.orders.append(order)
        if not self.succeed:
            return PodOrderResult(success=False, provider=self.name, external_id=order.external_id,
                                  error="out of stock")
        return PodOrderResult(success=True, provider=self.name, external_id=order.external_id,
                              pod_order_id=f"{self.name}-1", status="pending", tracking_number=self.tracking)

    async def create_order(self, order):
        return await self._create_order(None, order)

    async def get_order_status(self, pod_order_id):
        self.status_requests.append(pod_order_id)
        return self.pod_status
