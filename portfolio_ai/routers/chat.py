from fastapi import APIRouter

from portfolio_ai.models.schemas import ChatRequest, ChatResponse
from portfolio_ai.services.chat import answer_question
from portfolio_ai.utils.logging_config import log_api_call

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
@log_api_call("chat")
async def chat(body: ChatRequest):
    """Answer a question grounded in retrieved portfolio content"""
    result = await answer_question(
        body.message,
        history=[t.model_dump() for t in body.conversation_history],
        mode=body.mode,
        session_context=body.session_context or "",
    )
    return ChatResponse(**result)
