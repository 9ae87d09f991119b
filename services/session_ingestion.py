"""
Session Ingestion Service

Persists a workout session plus its rep-level images.

Write protocol (the store offers no multi-document transaction here):
1. Media payloads are uploaded first; failures fall back to inline data.
2. The session is inserted with ingestionStatus="pending".
3. Rep images are uploaded concurrently, then bulk-inserted.
4. The session is flipped to ingestionStatus="complete".

A crash between 2 and 4 leaves a "pending" session that
``reconcile_stale`` rolls back. Deletion mirrors this with a "deleting"
marker so a half-finished delete can be completed later.
"""
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from core.database import REP_IMAGES, WORKOUT_SESSIONS, parse_object_id, to_naive_utc, utc_now
from core.exceptions import NotFoundError, StorageError
from schemas import RepImageIn, SessionCreate
from services.media_uploader import IMAGE, PDF, VIDEO, MediaUploader, upload_or_inline

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_COMPLETE = "complete"
STATUS_DELETING = "deleting"

DUPLICATE_KEY = 11000


def _slug(*parts: str) -> str:
    return "_".join(re.sub(r"[^a-zA-Z0-9]+", "_", p).strip("_") for p in parts if p)


def _is_remote_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def _prepare_rep(uploader: MediaUploader, rep: RepImageIn, session_id: str) -> Dict[str, Any]:
    doc = rep.model_dump(exclude_none=True)
    image = doc.pop("imageData", None)
    if image:
        if _is_remote_url(image):
            doc["imageUrl"] = image
        else:
            result = upload_or_inline(
                uploader,
                IMAGE,
                image,
                folder=uploader.folder_for(IMAGE),
                public_id=f"{session_id}_rep{rep.repNumber}",
            )
            if result.remote:
                doc["imageUrl"] = result.value
            else:
                doc["imageData"] = image
    doc["sessionId"] = session_id
    return doc


def _upload_reps(uploader: MediaUploader, reps: List[RepImageIn], session_id: str) -> List[Dict[str, Any]]:
    if not reps:
        return []
    # One worker per rep; completion order does not matter, result order does
    with ThreadPoolExecutor(max_workers=len(reps)) as pool:
        return list(pool.map(lambda rep: _prepare_rep(uploader, rep, session_id), reps))


def _insert_reps(db: Database, docs: List[Dict[str, Any]], session_id: str) -> int:
    if not docs:
        return 0
    try:
        db[REP_IMAGES].insert_many(docs, ordered=False)
    except BulkWriteError as e:
        errors = e.details.get("writeErrors", [])
        if any(err.get("code") != DUPLICATE_KEY for err in errors):
            raise StorageError("Error saving rep images", details=str(e))
        logger.warning(
            f"Skipped {len(errors)} duplicate rep images for session {session_id}",
            extra={"extra_fields": {"session_id": session_id}},
        )
    except DuplicateKeyError as e:
        logger.warning(f"Duplicate rep image for session {session_id}: {e}")
    return db[REP_IMAGES].count_documents({"sessionId": session_id})


def ingest_session(db: Database, uploader: MediaUploader, payload: SessionCreate) -> Dict[str, Any]:
    """
    Store a session and its reps.

    Only the two primary inserts can fail the call; media problems never do.
    """
    meta = payload.sessionMeta.model_dump(exclude_none=True)
    pdf_data = meta.pop("pdfDataUrl", None)
    video_data = meta.pop("videoDataUrl", None)
    meta["timestamp"] = to_naive_utc(payload.sessionMeta.timestamp)

    logger.info(f"Saving workout session: {meta['athleteName']} {meta['activityName']}")

    base_id = _slug(meta["athleteName"], meta["activityName"], str(int(datetime.now().timestamp() * 1000)))
    if pdf_data:
        meta["pdfUrl"] = upload_or_inline(
            uploader, PDF, pdf_data, folder=uploader.folder_for(PDF), public_id=base_id
        ).value
    if video_data:
        meta["videoUrl"] = upload_or_inline(
            uploader, VIDEO, video_data, folder=uploader.folder_for(VIDEO), public_id=base_id
        ).value

    meta["createdAt"] = utc_now()
    meta["ingestionStatus"] = STATUS_PENDING
    try:
        session_id = str(db[WORKOUT_SESSIONS].insert_one(meta).inserted_id)
    except PyMongoError as e:
        raise StorageError("Error saving workout data", details=str(e))
    logger.info(f"Session saved with ID: {session_id}")

    rep_docs = _upload_reps(uploader, payload.repImages, session_id)
    reps_saved = _insert_reps(db, rep_docs, session_id)

    db[WORKOUT_SESSIONS].update_one(
        {"_id": parse_object_id(session_id)},
        {"$set": {"ingestionStatus": STATUS_COMPLETE}},
    )
    logger.info(f"Saved {reps_saved} rep images for session {session_id}")

    return {
        "sessionId": session_id,
        "pdfUrl": meta.get("pdfUrl"),
        "videoUrl": meta.get("videoUrl"),
        "repsSaved": reps_saved,
    }


def delete_session(db: Database, session_id: str) -> int:
    """Remove a session and its reps; returns the number of reps removed."""
    oid = parse_object_id(session_id, "sessionId")
    marked = db[WORKOUT_SESSIONS].find_one_and_update(
        {"_id": oid},
        {"$set": {"ingestionStatus": STATUS_DELETING, "deletingAt": utc_now()}},
    )
    if marked is None:
        raise NotFoundError("Workout session not found")

    deleted_reps = db[REP_IMAGES].delete_many({"sessionId": session_id}).deleted_count
    db[WORKOUT_SESSIONS].delete_one({"_id": oid})
    logger.info(f"Deleted workout {session_id} with {deleted_reps} reps")
    return deleted_reps


def reconcile_stale(db: Database, older_than_s: int, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Finish or undo multi-document writes that never completed.

    Stale "pending" sessions are rolled back, stale "deleting" ones are
    finished. Either way the session and its reps are removed.
    """
    cutoff = (now or utc_now()) - timedelta(seconds=older_than_s)
    report = {"rolledBack": 0, "deletesCompleted": 0, "repsRemoved": 0}

    stale = db[WORKOUT_SESSIONS].find({
        "$or": [
            {"ingestionStatus": STATUS_PENDING, "createdAt": {"$lt": cutoff}},
            {"ingestionStatus": STATUS_DELETING, "deletingAt": {"$lt": cutoff}},
        ]
    })
    for session in list(stale):
        session_id = str(session["_id"])
        report["repsRemoved"] += db[REP_IMAGES].delete_many({"sessionId": session_id}).deleted_count
        db[WORKOUT_SESSIONS].delete_one({"_id": session["_id"]})
        if session["ingestionStatus"] == STATUS_PENDING:
            report["rolledBack"] += 1
            logger.warning(f"Rolled back unfinished ingestion {session_id}")
        else:
            report["deletesCompleted"] += 1
            logger.info(f"Completed interrupted delete {session_id}")
    return report
