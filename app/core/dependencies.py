"""
FastAPI dependencies wiring the document store and services per request
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.services.ballot_service import BallotService
from app.services.document_store import DocumentStore
from app.services.event_service import EventService
from app.services.group_service import GroupService
from app.services.repositories import build_store
from app.utils.clock import Clock, utcnow
from app.utils.security import get_client_ip, rate_limit_check
from app.utils.responses import rate_limit_error


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    return build_store(db)


def get_clock() -> Clock:
    return utcnow


def get_group_service(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> GroupService:
    return GroupService(store, clock=clock)


def get_event_service(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> EventService:
    return EventService(store, clock=clock)


def get_ballot_service(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> BallotService:
    return BallotService(store, clock=clock)


def enforce_rate_limit(request: Request) -> None:
    if not rate_limit_check(get_client_ip(request)):
        rate_limit_error()
