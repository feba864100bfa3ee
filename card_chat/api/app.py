"""HTTP surface of the chat assistant.

The chat endpoint is public; it answers 200 for every resolvable outcome,
including the canned reply used when both providers are unavailable, and 400
only for malformed input.
"""

from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from card_chat.api.service import get_default_controller
from card_chat.domain.exceptions import BusinessError, ValidationError
from card_chat.domain.models import ChatMessage
from card_chat.flows.controller import OrchestrationController
from card_chat.infrastructure.logging.logger import logger


class HistoryTurn(BaseModel):
    # system turns come only from the server-side prompt
    role: Literal["user", "assistant"]
    content: str


class ChatBody(BaseModel):
    message: str
    history: List[HistoryTurn] = Field(default_factory=list)


class ChatResponse(BaseModel):
    response: str
    citations: Optional[List[str]] = None
    provider: Optional[Literal["primary", "secondary", "none"]] = None


app = FastAPI(title="Card Chat", version="0.1.0")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("api.invalid_request", extra={"extra": {"path": request.url.path}})
    return JSONResponse(status_code=400, content={"message": "Invalid input"})


@app.exception_handler(BusinessError)
async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
    logger.info(
        "api.business_error",
        extra={"extra": {"path": request.url.path, "code": exc.code, **exc.extra}},
    )
    return JSONResponse(status_code=exc.http_status, content={"message": exc.message, "code": exc.code})


def get_controller() -> OrchestrationController:
    return get_default_controller()


@app.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
@app.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True)
def chat(body: ChatBody, controller: OrchestrationController = Depends(get_controller)):
    if not body.message.strip():
        raise ValidationError(code="EMPTY_MESSAGE", message="Invalid input")
    history = [ChatMessage(role=turn.role, content=turn.content) for turn in body.history]
    return controller.answer(body.message, history).to_dict()


@app.get("/health")
def health(controller: OrchestrationController = Depends(get_controller)):
    return {"status": "ok", "providers": controller.provider_status()}


def main() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
