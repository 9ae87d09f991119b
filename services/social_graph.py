"""
Connections between users.

A connection document links ``fromUserId`` to ``toUserId`` and moves
from pending to accepted or rejected. Any document for a pair, in either
direction and with any status, blocks a new request for that pair.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING
from pymongo.database import Database

from core.database import CONNECTIONS, USERS, parse_object_id, serialize_document, utc_now
from core.exceptions import NotFoundError, ValidationError
from schemas import ConnectionStatus
from services.user_service import public_user

logger = logging.getLogger(__name__)


def _pair_query(user_a: str, user_b: str) -> Dict[str, Any]:
    return {
        "$or": [
            {"fromUserId": user_a, "toUserId": user_b},
            {"fromUserId": user_b, "toUserId": user_a},
        ]
    }


def _accepted_ids(db: Database, user_id: str) -> List[str]:
    accepted = db[CONNECTIONS].find({
        "status": ConnectionStatus.ACCEPTED.value,
        "$or": [{"fromUserId": user_id}, {"toUserId": user_id}],
    })
    return [c["toUserId"] if c["fromUserId"] == user_id else c["fromUserId"] for c in accepted]


def send_request(db: Database, from_user_id: Optional[str], to_user_id: Optional[str]) -> str:
    if not from_user_id or not to_user_id:
        raise ValidationError("fromUserId and toUserId are required")
    if from_user_id == to_user_id:
        raise ValidationError("Cannot send a connection request to yourself")

    if db[CONNECTIONS].find_one(_pair_query(from_user_id, to_user_id)):
        raise ValidationError("Connection request already exists")

    result = db[CONNECTIONS].insert_one({
        "fromUserId": from_user_id,
        "toUserId": to_user_id,
        "status": ConnectionStatus.PENDING.value,
        "createdAt": utc_now(),
    })
    logger.info(f"Connection request {from_user_id} -> {to_user_id}")
    return str(result.inserted_id)


def _resolve(db: Database, request_id: str, status: ConnectionStatus, stamp_field: str) -> None:
    oid = parse_object_id(request_id, "requestId")
    result = db[CONNECTIONS].update_one(
        {"_id": oid},
        {"$set": {"status": status.value, stamp_field: utc_now()}},
    )
    if result.matched_count == 0:
        raise NotFoundError("Connection request not found")
    logger.info(f"Connection request {request_id} {status.value}")


def accept(db: Database, request_id: str) -> None:
    _resolve(db, request_id, ConnectionStatus.ACCEPTED, "acceptedAt")


def reject(db: Database, request_id: str) -> None:
    _resolve(db, request_id, ConnectionStatus.REJECTED, "rejectedAt")


def status(db: Database, user_id_1: str, user_id_2: str) -> Dict[str, Any]:
    connection = db[CONNECTIONS].find_one(_pair_query(user_id_1, user_id_2))
    if connection is None:
        return {"connected": False, "status": "none", "requestId": None}
    return {
        "connected": connection.get("status") == ConnectionStatus.ACCEPTED.value,
        "status": connection.get("status"),
        "requestId": str(connection["_id"]),
    }


def discover(db: Database, user_id: Optional[str]) -> List[Dict[str, Any]]:
    """Everyone except the caller and their accepted connections."""
    if not user_id:
        raise ValidationError("userId is required", field="userId")

    excluded = set(_accepted_ids(db, user_id))
    excluded.add(user_id)

    seen = set()
    users = []
    for user in db[USERS].find({"userId": {"$nin": list(excluded)}}).sort("name", ASCENDING):
        if user.get("userId") in seen:
            continue
        seen.add(user.get("userId"))
        users.append(public_user(user))

    logger.info(f"Found {len(users)} discoverable users for {user_id}")
    return users


def list_connections(db: Database, user_id: str) -> List[Dict[str, Any]]:
    connected = _accepted_ids(db, user_id)
    if not connected:
        return []
    return [public_user(u) for u in db[USERS].find({"userId": {"$in": connected}}).sort("name", ASCENDING)]


def _users_by_id(db: Database, user_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    return {u["userId"]: u for u in db[USERS].find({"userId": {"$in": user_ids}})}


def pending_received(db: Database, user_id: str) -> List[Dict[str, Any]]:
    requests = list(db[CONNECTIONS].find({"toUserId": user_id, "status": ConnectionStatus.PENDING.value}))
    senders = _users_by_id(db, [r["fromUserId"] for r in requests])

    enriched = []
    for request in requests:
        sender = senders.get(request["fromUserId"], {})
        request.update({
            "fromUserName": sender.get("name"),
            "fromUserRole": sender.get("role"),
            "fromUserProfilePic": sender.get("profilePic"),
            "fromUserRegion": sender.get("district"),
            "fromUserSkills": sender.get("skills"),
        })
        enriched.append(request)
    return serialize_document(enriched)


def sent_requests(db: Database, user_id: str) -> List[Dict[str, Any]]:
    requests = list(db[CONNECTIONS].find({"fromUserId": user_id, "status": ConnectionStatus.PENDING.value}))
    recipients = _users_by_id(db, [r["toUserId"] for r in requests])

    enriched = []
    for request in requests:
        recipient = recipients.get(request["toUserId"], {})
        request.update({
            "toUserName": recipient.get("name"),
            "toUserRole": recipient.get("role"),
            "toUserProfilePic": recipient.get("profilePic"),
        })
        enriched.append(request)
    return serialize_document(enriched)
