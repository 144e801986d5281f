"""FastAPI surface: key validation plus a thin JSON API over the discussion service."""

import logging
from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from expert_panel.errors import IneligibleTurnError, NotFoundError, PersistenceError
from expert_panel.keycheck import VALIDATABLE_PROVIDERS, validate_key
from expert_panel.models import Discussion, Message
from expert_panel.providers.base import InvalidCredentialError, ProviderError
from expert_panel.service import DiscussionService

logger = logging.getLogger(__name__)


class ValidateKeyRequest(BaseModel):
    provider: str | None = None
    key: str | None = None


class CreateDiscussionRequest(BaseModel):
    topic: str
    description: str = ""
    expert_ids: list[str] = Field(default_factory=list)
    discussion_mode: Literal["sequential", "parallel"] = "sequential"


class TurnRequest(BaseModel):
    expert_id: str
    message: str = ""


class StatusRequest(BaseModel):
    status: Literal["active", "completed"]


def _discussion_json(discussion: Discussion, messages: list[Message] | None = None) -> dict:
    data = asdict(discussion)
    data["created_at"] = discussion.created_at.isoformat() if discussion.created_at else None
    if messages is not None:
        data["messages"] = [_message_json(m) for m in messages]
    return data


def _message_json(message: Message) -> dict:
    data = asdict(message)
    data["created_at"] = message.created_at.isoformat() if message.created_at else None
    return data


def _service(request: Request) -> DiscussionService:
    return request.app.state.service


key_router = APIRouter(prefix="/api")


@key_router.post("/validate-key")
async def validate_key_endpoint(body: ValidateKeyRequest) -> JSONResponse:
    if not body.provider or not body.key:
        return JSONResponse(status_code=400, content={"error": "Provider and key are required"})
    if body.provider not in VALIDATABLE_PROVIDERS:
        return JSONResponse(status_code=400, content={"error": "Invalid provider"})
    result = await validate_key(body.provider, body.key)
    return JSONResponse(status_code=200, content=result.to_dict())


discussion_router = APIRouter(prefix="/api")


@discussion_router.get("/experts")
def list_experts(request: Request) -> list[dict]:
    return [asdict(e) for e in _service(request).available_experts()]


@discussion_router.get("/discussions")
def list_discussions(request: Request) -> list[dict]:
    return [_discussion_json(d) for d in _service(request).list_discussions()]


@discussion_router.post("/discussions", status_code=201)
def create_discussion(body: CreateDiscussionRequest, request: Request) -> dict:
    discussion = _service(request).create_discussion(
        body.topic, body.description, body.expert_ids, body.discussion_mode
    )
    return _discussion_json(discussion, [])


@discussion_router.get("/discussions/{discussion_id}")
def get_discussion(discussion_id: str, request: Request) -> dict:
    service = _service(request)
    discussion = service.get_discussion(discussion_id)
    state = service.turn_state(discussion_id)
    data = _discussion_json(discussion, service.get_messages(discussion_id))
    data["turn_state"] = asdict(state)
    return data


@discussion_router.post("/discussions/{discussion_id}/turns", status_code=201)
async def take_turn(discussion_id: str, body: TurnRequest, request: Request) -> dict:
    message = await _service(request).take_turn(discussion_id, body.expert_id, body.message)
    return _message_json(message)


@discussion_router.post("/discussions/{discussion_id}/advance")
def advance_round(discussion_id: str, request: Request) -> dict:
    return {"current_round": _service(request).advance_round(discussion_id)}


@discussion_router.post("/discussions/{discussion_id}/status")
def set_status(discussion_id: str, body: StatusRequest, request: Request) -> dict:
    _service(request).set_status(discussion_id, body.status)
    return {"status": body.status}


@discussion_router.delete("/discussions/{discussion_id}", status_code=204)
def delete_discussion(discussion_id: str, request: Request) -> None:
    _service(request).delete_discussion(discussion_id)


def _error_handlers(app: FastAPI) -> None:
    def handler(status_code: int):
        async def _handle(_: Request, exc: Exception) -> JSONResponse:
            if status_code >= 500:
                logger.error("Request failed: %s", exc)
            return JSONResponse(status_code=status_code, content={"error": str(exc)})
        return _handle

    app.add_exception_handler(NotFoundError, handler(404))
    app.add_exception_handler(IneligibleTurnError, handler(409))
    app.add_exception_handler(InvalidCredentialError, handler(401))
    app.add_exception_handler(ProviderError, handler(502))
    app.add_exception_handler(PersistenceError, handler(500))
    app.add_exception_handler(ValueError, handler(400))


def create_app(service: DiscussionService) -> FastAPI:
    app = FastAPI(title="Expert Panel API")
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.include_router(key_router)
    app.include_router(discussion_router)
    _error_handlers(app)
    return app
