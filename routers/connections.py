"""
Connection request workflow between users.
"""
from fastapi import APIRouter, Depends
from pymongo.database import Database

from core.database import get_db
from schemas import ConnectionRequestCreate
from services import social_graph

router = APIRouter(prefix="/connections", tags=["connections"])


@router.post("/request")
def send_request(request: ConnectionRequestCreate, db: Database = Depends(get_db)):
    request_id = social_graph.send_request(db, request.fromUserId, request.toUserId)
    return {"success": True, "message": "Connection request sent", "requestId": request_id}


@router.post("/request/{request_id}/accept")
def accept_request(request_id: str, db: Database = Depends(get_db)):
    social_graph.accept(db, request_id)
    return {"success": True, "message": "Connection accepted"}


@router.post("/request/{request_id}/reject")
def reject_request(request_id: str, db: Database = Depends(get_db)):
    social_graph.reject(db, request_id)
    return {"success": True, "message": "Connection rejected"}


@router.get("/status/{user_id_1}/{user_id_2}")
def connection_status(user_id_1: str, user_id_2: str, db: Database = Depends(get_db)):
    return social_graph.status(db, user_id_1, user_id_2)


@router.get("/requests/pending/{user_id}")
def pending_requests(user_id: str, db: Database = Depends(get_db)):
    return social_graph.pending_received(db, user_id)


@router.get("/requests/sent/{user_id}")
def sent_requests(user_id: str, db: Database = Depends(get_db)):
    return social_graph.sent_requests(db, user_id)


@router.get("/{user_id}")
def my_connections(user_id: str, db: Database = Depends(get_db)):
    return social_graph.list_connections(db, user_id)
