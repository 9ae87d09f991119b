#!/usr/bin/env python3
"""
Document store setup.

Creates the collections with JSON-schema validators (or refreshes the
validator on collections that already exist), ensures every index and
prints collection counts. Safe to run repeatedly.

Usage:
    python scripts/setup_database.py
"""
import os
import sys
import logging
import argparse
from typing import Any, Dict

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.database import Database
from pymongo.errors import PyMongoError

from core.database import CONNECTIONS, REP_IMAGES, USERS, WORKOUT_SESSIONS, DocumentStore
from core.logging import setup_logging

logger = logging.getLogger(__name__)

INT = {"bsonType": ["int", "long"], "minimum": 0}

SCHEMAS: Dict[str, Dict[str, Any]] = {
    USERS: {
        "bsonType": "object",
        "required": ["userId", "name", "role"],
        "properties": {
            "userId": {"bsonType": "string"},
            "name": {"bsonType": "string"},
            "role": {"enum": ["ATHLETE", "COACH", "SAI_ADMIN"]},
            "district": {"bsonType": "string"},
            "email": {"bsonType": "string"},
            "passwordHash": {"bsonType": "string"},
            "profilePic": {"bsonType": "string"},
            "createdAt": {"bsonType": "date"},
        },
    },
    WORKOUT_SESSIONS: {
        "bsonType": "object",
        "required": ["athleteName", "activityName", "totalReps", "timestamp"],
        "properties": {
            "athleteName": {"bsonType": "string"},
            "athleteId": {"bsonType": "string"},
            "athleteProfilePic": {"bsonType": "string"},
            "activityName": {"bsonType": "string"},
            "totalReps": INT,
            "correctReps": INT,
            "incorrectReps": INT,
            "duration": INT,
            "accuracy": {"bsonType": ["int", "long"], "minimum": 0, "maximum": 100},
            "formScore": {"bsonType": "string"},
            "timestamp": {"bsonType": "date"},
            "pdfUrl": {"bsonType": "string"},
            "videoUrl": {"bsonType": "string"},
            "ingestionStatus": {"enum": ["pending", "complete", "deleting"]},
            "createdAt": {"bsonType": "date"},
        },
    },
    REP_IMAGES: {
        "bsonType": "object",
        "required": ["sessionId", "repNumber"],
        "properties": {
            "sessionId": {"bsonType": "string"},
            "repNumber": {"bsonType": ["int", "long"], "minimum": 1},
            "imageUrl": {"bsonType": "string"},
            "imageData": {"bsonType": "string"},
            "correct": {"bsonType": "bool"},
            "details": {"bsonType": "object"},
        },
    },
    CONNECTIONS: {
        "bsonType": "object",
        "required": ["fromUserId", "toUserId", "status"],
        "properties": {
            "fromUserId": {"bsonType": "string"},
            "toUserId": {"bsonType": "string"},
            "status": {"enum": ["pending", "accepted", "rejected"]},
            "createdAt": {"bsonType": "date"},
        },
    },
}


def apply_schemas(db: Database) -> None:
    existing = set(db.list_collection_names())
    for name, schema in SCHEMAS.items():
        validator = {"$jsonSchema": schema}
        if name in existing:
            db.command("collMod", name, validator=validator)
            logger.info(f"Validator refreshed on {name}")
        else:
            db.create_collection(name, validator=validator)
            logger.info(f"Collection {name} created")


def collection_counts(db: Database) -> Dict[str, int]:
    return {name: db[name].count_documents({}) for name in SCHEMAS}


def main():
    parser = argparse.ArgumentParser(description="Create collections, validators and indexes")
    parser.add_argument("--db", help="Database name (default: MONGODB_DB)")
    args = parser.parse_args()

    setup_logging()
    store = DocumentStore(db_name=args.db)
    try:
        db = store.connect()
        apply_schemas(db)
        store.ensure_indexes()
        for name, count in collection_counts(db).items():
            logger.info(f"{name}: {count} documents")
        logger.info("Database setup complete")
    except PyMongoError as e:
        logger.error(f"Database setup failed: {e}")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
