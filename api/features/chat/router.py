"""Router for the Chat feature."""
import logging
from typing import Optional
from uuid import UUID

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.exc import SQLAlchemyError

from api.di.container import ApplicationContainer as DependencyContainer
from api.features.chat.controller import ChatController
from api.features.chat.dtos import (
    ChatRequest,
    ChatResponse,
    CreateSessionRequest,
    MessagesResponse,
    SessionDTO,
    SessionListResponse,
    SummarizeRequest,
    SummarizeResponse,
)
from api.shared.auth import SupabaseAuthVerifier
from api.shared.dtos import ErrorResponse, HealthCheckResponse
from api.shared.response import ResponseModel
from infra.resources import DatabaseResource

logger = logging.getLogger("nyaai")

router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    }
)


@inject
async def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    verifier: SupabaseAuthVerifier = Depends(
        Provide[DependencyContainer.services.auth_verifier]
    ),
) -> str:
    """Authenticated caller's user id, resolved from the bearer token."""
    return await verifier.verify(authorization)


@router.get("/health", response_model=ResponseModel[HealthCheckResponse])
@inject
async def health_check(
    response: Response,
    database: DatabaseResource = Depends(
        Provide[DependencyContainer.infrastructure.database]
    ),
):
    try:
        await database.ping()
    except (SQLAlchemyError, RuntimeError, OSError) as e:
        logger.warning(f"Chat health check: database unreachable ({e})")
        response.status_code = 503
        return ResponseModel[HealthCheckResponse](
            data=HealthCheckResponse(status="degraded", dependencies={"database": "error"}),
            message="Chat service is degraded",
            status="error",
        )
    return ResponseModel.success(
        data=HealthCheckResponse(status="healthy", dependencies={"database": "ok"}),
        message="Chat service is healthy",
    )


@router.post(
    "",
    response_model=ChatResponse,
    responses={
        200: {"content": {"text/event-stream": {}}},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
@inject
async def chat(
    request: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    controller: ChatController = Depends(
        Provide[DependencyContainer.controllers.chat_controller]
    ),
):
    """Run one conversation turn; streams server-sent events when ``stream`` is set."""
    return await controller.send_message(request=request, user_id=user_id)


@router.post("/summarize", response_model=SummarizeResponse)
@inject
async def summarize_document(
    request: SummarizeRequest,
    user_id: str = Depends(get_current_user_id),
    controller: ChatController = Depends(
        Provide[DependencyContainer.controllers.chat_controller]
    ),
):
    return await controller.summarize(request=request, user_id=user_id)


@router.get("/sessions", response_model=ResponseModel[SessionListResponse])
@inject
async def list_sessions(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    controller: ChatController = Depends(
        Provide[DependencyContainer.controllers.chat_controller]
    ),
):
    result = await controller.list_sessions(user_id=user_id, limit=limit)
    return ResponseModel.success(data=result, message="Sessions listed")


@router.post("/sessions", response_model=ResponseModel[SessionDTO])
@inject
async def create_session(
    request: CreateSessionRequest,
    user_id: str = Depends(get_current_user_id),
    controller: ChatController = Depends(
        Provide[DependencyContainer.controllers.chat_controller]
    ),
):
    session = await controller.create_session(request=request, user_id=user_id)
    return ResponseModel.success(data=session, message="Session created")


@router.get(
    "/sessions/{session_id}/messages",
    response_model=ResponseModel[MessagesResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
@inject
async def get_messages(
    session_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    controller: ChatController = Depends(
        Provide[DependencyContainer.controllers.chat_controller]
    ),
):
    result = await controller.get_messages(
        session_id=session_id, user_id=user_id, limit=limit
    )
    return ResponseModel.success(data=result, message="Messages fetched")
