from __future__ import annotations

import logging
from typing import Any

import bson
from bson import json_util
from bson.errors import BSONError
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

LOGGER = logging.getLogger("mongo_harness.store")

DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_TIMEOUT_S = 1.0


class StoreConnectionError(Exception):
    """Raised when the document store cannot be reached at startup."""


class PayloadDecodeError(Exception):
    """Raised when a rendered payload is not a valid Extended JSON document."""


def create_client(uri: str = DEFAULT_MONGO_URI, timeout_s: float = DEFAULT_TIMEOUT_S) -> MongoClient:
    # MongoClient is thread-safe and pools connections, so one client is
    # shared by every insert worker.
    timeout_ms = max(int(timeout_s * 1000), 1)
    try:
        client: MongoClient = MongoClient(
            uri,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
            serverSelectionTimeoutMS=timeout_ms,
        )
        client.admin.command("ping")
    except PyMongoError as exc:
        raise StoreConnectionError(f"failed to connect to {uri}: {exc}") from exc
    LOGGER.info("connected to %s", uri)
    return client


def get_collection(client: MongoClient, database: str, collection: str) -> Collection:
    return client[database][collection]


def decode_payload(payload: str) -> dict[str, Any]:
    try:
        document = json_util.loads(payload)
    except (ValueError, TypeError, BSONError) as exc:
        raise PayloadDecodeError(f"payload is not valid Extended JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise PayloadDecodeError(
            f"payload decoded to {type(document).__name__}, expected a document"
        )
    # ints wider than 64 bits and NUL in keys only fail when encoded
    try:
        bson.encode(document)
    except (BSONError, OverflowError) as exc:
        raise PayloadDecodeError(f"payload cannot be stored as BSON: {exc}") from exc
    return document


__all__ = [
    "DEFAULT_MONGO_URI",
    "DEFAULT_TIMEOUT_S",
    "PayloadDecodeError",
    "StoreConnectionError",
    "create_client",
    "decode_payload",
    "get_collection",
]
