#!/usr/bin/env python3
"""
Data migration for documents written by older clients.

- Session counters stored as strings become integers; string timestamps
  become dates; missing createdAt is filled from timestamp.
- Rep images get an integer repNumber (from repNo where needed), a
  default ``correct`` flag and an empty ``details`` object.
- Plaintext passwords are replaced by bcrypt hashes.
- Emails are trimmed and lower-cased. Accounts whose emails only differ
  by case are left as they are and reported for manual merging.

Usage:
    python scripts/migrate_data.py            # migrate in place
    python scripts/migrate_data.py --clean    # delete everything first
"""
import os
import sys
import logging
import argparse
from datetime import datetime
from collections import defaultdict
from typing import Any, Dict, List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.database import Database
from pymongo.errors import PyMongoError

from core.database import REP_IMAGES, USERS, WORKOUT_SESSIONS, DocumentStore, parse_int, to_naive_utc, utc_now
from core.logging import setup_logging
from core.security import get_password_hash

logger = logging.getLogger(__name__)

SESSION_INT_FIELDS = ("totalReps", "correctReps", "incorrectReps", "duration", "accuracy")


def parse_timestamp(value: str) -> Optional[datetime]:
    try:
        return to_naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def clean(db: Database) -> None:
    for name in (USERS, WORKOUT_SESSIONS, REP_IMAGES):
        db[name].delete_many({})
    logger.warning("All users, sessions and rep images deleted")


def migrate_sessions(db: Database) -> int:
    updated = 0
    for session in db[WORKOUT_SESSIONS].find({}):
        updates: Dict[str, Any] = {}

        timestamp = session.get("timestamp")
        if isinstance(timestamp, str):
            parsed = parse_timestamp(timestamp)
            if parsed is not None:
                updates["timestamp"] = parsed
                timestamp = parsed
            else:
                logger.warning(f"Unparseable timestamp on session {session['_id']}: {timestamp!r}")

        if not session.get("createdAt"):
            updates["createdAt"] = timestamp if isinstance(timestamp, datetime) else utc_now()

        for field in SESSION_INT_FIELDS:
            value = session.get(field)
            if isinstance(value, str):
                parsed_int = parse_int(value)
                if parsed_int is not None:
                    updates[field] = parsed_int

        if updates:
            db[WORKOUT_SESSIONS].update_one({"_id": session["_id"]}, {"$set": updates})
            updated += 1
    logger.info(f"Sessions updated: {updated}")
    return updated


def migrate_reps(db: Database) -> int:
    updated = 0
    for rep in db[REP_IMAGES].find({}):
        updates: Dict[str, Any] = {}

        if isinstance(rep.get("repNumber"), str):
            parsed = parse_int(rep["repNumber"])
            if parsed is not None:
                updates["repNumber"] = parsed
        if isinstance(rep.get("repNo"), int) and not rep.get("repNumber"):
            updates["repNumber"] = rep["repNo"]
        if "correct" not in rep:
            updates["correct"] = True
        if not rep.get("details"):
            updates["details"] = {}

        if updates:
            db[REP_IMAGES].update_one({"_id": rep["_id"]}, {"$set": updates})
            updated += 1
    logger.info(f"Rep images updated: {updated}")
    return updated


def hash_legacy_passwords(db: Database) -> int:
    upgraded = 0
    for user in db[USERS].find({"password": {"$exists": True}}):
        password = user.get("password")
        update: Dict[str, Any] = {"$unset": {"password": ""}}
        if password and not user.get("passwordHash"):
            update["$set"] = {"passwordHash": get_password_hash(str(password))}
        db[USERS].update_one({"_id": user["_id"]}, update)
        upgraded += 1
    logger.info(f"Legacy passwords hashed: {upgraded}")
    return upgraded


def normalize_emails(db: Database) -> Dict[str, Any]:
    groups: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for user in db[USERS].find({"email": {"$type": "string"}}, {"email": 1, "userId": 1}):
        groups[user["email"].strip().lower()].append(user)

    normalized = 0
    collisions = []
    for email, users in groups.items():
        if len(users) > 1:
            collisions.append(email)
            logger.warning(
                f"Accounts share email {email} after lower-casing, left unchanged",
                extra={"extra_fields": {"user_ids": [u.get("userId") for u in users]}},
            )
            continue
        if users[0]["email"] != email:
            db[USERS].update_one({"_id": users[0]["_id"]}, {"$set": {"email": email}})
            normalized += 1
    logger.info(f"Emails normalised: {normalized}, collisions: {len(collisions)}")
    return {"normalized": normalized, "collisions": sorted(collisions)}


def migrate(db: Database, clean_first: bool = False) -> Dict[str, int]:
    if clean_first:
        clean(db)
    else:
        logger.info("Keeping existing data (use --clean to delete all)")
    emails = normalize_emails(db)
    return {
        "sessions": migrate_sessions(db),
        "reps": migrate_reps(db),
        "passwords": hash_legacy_passwords(db),
        "emails": emails["normalized"],
        "emailCollisions": len(emails["collisions"]),
    }


def main():
    parser = argparse.ArgumentParser(description="Normalise stored documents")
    parser.add_argument("--clean", action="store_true", help="Delete all users, sessions and reps first")
    args = parser.parse_args()

    setup_logging()
    store = DocumentStore()
    try:
        report = migrate(store.connect(), clean_first=args.clean)
        logger.info(f"Migration complete: {report}")
    except PyMongoError as e:
        logger.error(f"Migration failed: {e}")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
