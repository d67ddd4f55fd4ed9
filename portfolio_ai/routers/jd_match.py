from fastapi import APIRouter

from portfolio_ai.models.schemas import JDMatchRequest, JDMatchResponse
from portfolio_ai.services.graph import run_jd_match
from portfolio_ai.utils.logging_config import log_api_call

router = APIRouter()


@router.post("/jd-match", response_model=JDMatchResponse)
@log_api_call("jd_match")
async def jd_match(body: JDMatchRequest):
    """Score a job description against the portfolio"""
    result = await run_jd_match(body.jd, use_llm_parse=body.use_llm_parse)
    return JDMatchResponse(**result)
