"""MongoDB persistence for the storefront.

Checkout writes span three collections (orders, order_items, users), so they
run inside a multi-document transaction. MongoDB only supports transactions
on a replica set; a single-node replica set is enough for development.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Iterable, AsyncIterator

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from shared.utils import TransactionException

logger = logging.getLogger("storefront.storage")

def str_to_oid(id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(id)
    except (InvalidId, TypeError):
        return None

def to_mongo(doc: dict) -> dict:
    """Prepare a document for insertion: drop ``id`` and store decimals as floats."""
    out = {}
    for key, value in doc.items():
        if key in ("id", "_id"):
            continue
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, Enum):
            value = value.value
        out[key] = value
    return out

def from_mongo(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc

class MongoTransaction:
    """Operations that run inside one checkout transaction."""

    def __init__(self, db, session: AsyncIOMotorClientSession):
        self.db = db
        self.session = session

    async def find_active_products(self, product_ids: Iterable[str]) -> Dict[str, dict]:
        oids = [oid for oid in (str_to_oid(pid) for pid in product_ids) if oid is not None]
        if not oids:
            return {}
        cursor = self.db.products.find(
            {"_id": {"$in": oids}, "is_active": True},
            {"price": 1, "name": 1},
            session=self.session,
        )
        products = {}
        async for doc in cursor:
            product = from_mongo(doc)
            products[product["id"]] = product
        return products

    async def find_order_by_idempotency_key(self, customer_id: str, key: str) -> Optional[dict]:
        doc = await self.db.orders.find_one(
            {"customer_id": customer_id, "idempotency_key": key},
            session=self.session,
        )
        return from_mongo(doc)

    async def insert_order(self, order: dict) -> str:
        result = await self.db.orders.insert_one(to_mongo(order), session=self.session)
        return str(result.inserted_id)

    async def insert_order_items(self, items: List[dict]):
        await self.db.order_items.insert_many([to_mongo(i) for i in items], session=self.session)

    async def update_delivery_defaults(self, customer_id: str, defaults: dict):
        oid = str_to_oid(customer_id)
        if oid is None:
            return
        await self.db.users.update_one({"_id": oid}, {"$set": defaults}, session=self.session)

class MongoStorage:
    def __init__(self, client: AsyncIOMotorClient, database_name: str):
        self.client = client
        self.db = client[database_name]

    async def create_indexes(self):
        await self.db.users.create_index("email", unique=True)
        await self.db.products.create_index([("category", ASCENDING), ("name", ASCENDING)])
        await self.db.orders.create_index([("customer_id", ASCENDING), ("order_date", DESCENDING)])
        await self.db.orders.create_index(
            [("customer_id", ASCENDING), ("idempotency_key", ASCENDING)],
            unique=True,
            partialFilterExpression={"idempotency_key": {"$type": "string"}},
        )
        await self.db.order_items.create_index("order_id")

    async def ping(self) -> bool:
        try:
            await self.client.admin.command("ping")
            return True
        except PyMongoError:
            return False

    def close(self):
        self.client.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MongoTransaction]:
        """Yield a transaction scope; any exception aborts every write in it."""
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    yield MongoTransaction(self.db, session)
        except PyMongoError as e:
            logger.exception("Transaction aborted")
            raise TransactionException() from e

    # Products
    async def _find_products(self, query: dict, sort: Optional[list] = None, limit: int = 0) -> List[dict]:
        cursor = self.db.products.find(dict(query, is_active=True))
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return [from_mongo(doc) async for doc in cursor]

    async def list_products(self) -> List[dict]:
        return await self._find_products({}, [("category", ASCENDING), ("name", ASCENDING)])

    async def list_featured_products(self, limit: int = 3) -> List[dict]:
        return await self._find_products({"is_featured": True}, [("created_at", DESCENDING)], limit)

    async def list_best_sellers(self, limit: int = 3) -> List[dict]:
        return await self._find_products({"is_best_seller": True}, [("created_at", DESCENDING)], limit)

    async def list_products_by_category(self, category: str, limit: int = 3) -> List[dict]:
        return await self._find_products({"category": category}, [("name", ASCENDING)], limit)

    async def get_product(self, product_id: str) -> Optional[dict]:
        oid = str_to_oid(product_id)
        if oid is None:
            return None
        return from_mongo(await self.db.products.find_one({"_id": oid, "is_active": True}))

    # Users
    async def find_user_by_email(self, email: str) -> Optional[dict]:
        return from_mongo(await self.db.users.find_one({"email": email.lower()}))

    async def get_user(self, user_id: str) -> Optional[dict]:
        oid = str_to_oid(user_id)
        if oid is None:
            return None
        return from_mongo(await self.db.users.find_one({"_id": oid}))

    async def update_user(self, user_id: str, fields: dict) -> bool:
        oid = str_to_oid(user_id)
        if oid is None:
            return False
        result = await self.db.users.update_one({"_id": oid}, {"$set": to_mongo(fields)})
        return result.matched_count > 0

    # Orders
    async def list_orders(self, customer_id: Optional[str] = None) -> List[dict]:
        query = {"customer_id": customer_id} if customer_id else {}
        cursor = self.db.orders.find(query).sort("order_date", DESCENDING)
        return [from_mongo(doc) async for doc in cursor]

    async def count_orders(self, customer_id: str, order_status: str) -> int:
        return await self.db.orders.count_documents({"customer_id": customer_id, "order_status": order_status})

    async def get_order(self, order_id: str, customer_id: Optional[str] = None) -> Optional[dict]:
        oid = str_to_oid(order_id)
        if oid is None:
            return None
        query = {"_id": oid}
        if customer_id:
            query["customer_id"] = customer_id
        return from_mongo(await self.db.orders.find_one(query))

    async def list_order_items(self, order_id: str) -> List[dict]:
        """Items of one order joined with the product's display fields."""
        pipeline = [
            {"$match": {"order_id": order_id}},
            {"$addFields": {"product_oid": {"$toObjectId": "$product_id"}}},
            {"$lookup": {
                "from": "products",
                "localField": "product_oid",
                "foreignField": "_id",
                "as": "product",
            }},
            {"$unwind": {"path": "$product", "preserveNullAndEmptyArrays": True}},
            {"$addFields": {
                "name": "$product.name",
                "image_url": "$product.image_url",
                "category": "$product.category",
            }},
            {"$project": {"product": 0, "product_oid": 0}},
        ]
        cursor = self.db.order_items.aggregate(pipeline)
        return [from_mongo(doc) async for doc in cursor]

    async def update_order(self, order_id: str, fields: dict) -> bool:
        oid = str_to_oid(order_id)
        if oid is None:
            return False
        fields = dict(fields, updated_at=datetime.utcnow())
        result = await self.db.orders.update_one({"_id": oid}, {"$set": to_mongo(fields)})
        return result.matched_count > 0
