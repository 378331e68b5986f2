"""
FastAPI Application Module

HTTP surface over the conversation store and the send-message flow.

Endpoints:
- Conversation listing, lookup, creation and deletion
- Message history per conversation
- Sending a user message (creates the conversation on first use)
- Prometheus metrics

Store and model failures are mapped to HTTP status codes by error kind.
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel, Field, field_validator
from starlette.routing import Match
from structlog import get_logger

from ..config.log import configure_logging
from ..config.settings import Settings, get_settings
from ..domain.exceptions import (
    AuthError,
    ChatError,
    NetworkError,
    QuotaError,
    ValidationError,
)
from ..domain.models import Conversation, Message, MessageRole, SendResult
from ..repositories.base import ConversationRepository
from ..repositories.factory import create_repository
from ..services.base import CompletionClient
from ..services.llm import GeminiClient
from ..services.orchestrator import ConversationOrchestrator

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total requests by endpoint", ["endpoint"], registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total errors by error code", ["code"], registry=CUSTOM_REGISTRY)
MESSAGES_SENT = Counter("messages_sent_total", "User messages answered by the model", registry=CUSTOM_REGISTRY)

logger = get_logger()


class MessageCreate(BaseModel):
    """Defines the structure for message creation requests"""
    content: str = Field(min_length=1)
    conversation_id: Optional[str] = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message content must not be blank")
        return value


class ConversationCreate(BaseModel):
    title: Optional[str] = None


_STATUS_BY_ERROR = (
    (ValidationError, 422),
    (AuthError, 401),
    (QuotaError, 429),
    (NetworkError, 503),
)


def status_for(error: ChatError) -> int:
    for kind, status in _STATUS_BY_ERROR:
        if isinstance(error, kind):
            return status
    return 500


def endpoint_for(request: Request) -> str:
    """Route template serving ``request``, used as the metrics label"""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", "unmatched")
    return "unmatched"


def get_repository(request: Request) -> ConversationRepository:
    """Returns the conversation storage instance"""
    return request.app.state.repository


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    """Returns the send-message use case"""
    return request.app.state.orchestrator


router = APIRouter()


@router.get("/conversations", response_model=List[Conversation])
async def list_conversations(
    repository: ConversationRepository = Depends(get_repository)
) -> List[Conversation]:
    """Lists conversations, most recently updated first"""
    return await repository.list_conversations()


@router.post("/conversations", response_model=Conversation)
async def create_conversation(
    body: Optional[ConversationCreate] = None,
    repository: ConversationRepository = Depends(get_repository)
) -> Conversation:
    """Starts an empty conversation thread"""
    return await repository.create_conversation(title=body.title if body else None)


@router.get("/conversations/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str,
    repository: ConversationRepository = Depends(get_repository)
) -> Conversation:
    """Retrieves a specific conversation by its ID"""
    conversation = await repository.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.delete("/conversations/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    repository: ConversationRepository = Depends(get_repository)
) -> Response:
    """Deletes a conversation together with its messages"""
    if await repository.get_conversation(conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    await repository.delete_conversation(conversation_id)
    return Response(status_code=204)


@router.get("/conversations/{conversation_id}/messages", response_model=List[Message])
async def get_messages(
    conversation_id: str,
    repository: ConversationRepository = Depends(get_repository)
) -> List[Message]:
    """Gets the message history of a conversation, oldest first"""
    if await repository.get_conversation(conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return await repository.get_messages(conversation_id)


@router.post("/messages", response_model=SendResult)
async def send_message(
    body: MessageCreate,
    repository: ConversationRepository = Depends(get_repository),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
) -> SendResult:
    """
    Sends a user message and returns the assistant reply.
    Without a conversation_id a new conversation is created.
    """
    if body.conversation_id is not None:
        if await repository.get_conversation(body.conversation_id) is None:
            raise HTTPException(status_code=404, detail="Conversation not found")

    user_message = Message(content=body.content, role=MessageRole.USER)
    result = await orchestrator.send(body.conversation_id, user_message)
    MESSAGES_SENT.inc()
    return result


@router.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[ConversationRepository] = None,
    client: Optional[CompletionClient] = None,
) -> FastAPI:
    """Builds the application and its collaborators.

    Collaborators not passed in are built from ``settings``.
    """
    settings = settings or get_settings()
    if repository is None:
        options = {"path": settings.database_path} if settings.storage_backend == "sqlite" else {}
        repository = create_repository(settings.storage_backend, **options)
    if client is None:
        client = GeminiClient(
            api_key=settings.gemini_api_key,
            model_name=settings.model_name,
            request_timeout=settings.request_timeout,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handles app startup/shutdown and resource management"""
        configure_logging(settings)
        await repository.connect()
        logger.info("application_startup_complete", storage=repository.backend_type)

        yield

        await repository.disconnect()
        logger.info("application_shutdown_complete")

    app = FastAPI(
        title="gemchat",
        description="Conversation store and Gemini chat orchestration",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.repository = repository
    app.state.orchestrator = ConversationOrchestrator(repository, client)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Logs and counts requests"""
        logger.info("request_started", method=request.method, path=request.url.path)
        REQUESTS.labels(endpoint=endpoint_for(request)).inc()
        return await call_next(request)

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, error: ChatError) -> JSONResponse:
        status = status_for(error)
        ERRORS.labels(code=error.code).inc()
        logger.error(
            "request_failed",
            path=request.url.path,
            status=status,
            error_code=error.code,
            error=error.message
        )
        return JSONResponse(status_code=status, content={"code": error.code, "detail": error.message})

    app.include_router(router)

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)
    return app


app = create_app()
