"""AI code-help API routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from codementor.ai.service import AIService, get_ai_service
from codementor.auth.dependencies import get_current_user
from codementor.auth.models import User
from codementor.auth.schemas import CamelModel

router = APIRouter(prefix="/ai", tags=["AI"])


class CodeRequest(CamelModel):
    code: str = Field(..., min_length=1)
    language: str = Field(..., min_length=1, max_length=50)


class AnalyzeCodeRequest(CodeRequest):
    context: str = ""


class ExplainCodeRequest(CodeRequest):
    level: str = "intermediate"


class QuestionRequest(CamelModel):
    question: str = Field(..., min_length=1, max_length=2000)
    code: Optional[str] = None
    language: Optional[str] = None


@router.post("/analyze-code")
async def analyze_code(
    request: AnalyzeCodeRequest,
    current_user: User = Depends(get_current_user),
    ai_service: AIService = Depends(get_ai_service),
):
    """Review code and suggest improvements."""
    suggestions = await ai_service.analyze_code(request.code, request.language, request.context)
    return {"success": True, "suggestions": suggestions}


@router.post("/find-bugs")
async def find_bugs(
    request: CodeRequest,
    current_user: User = Depends(get_current_user),
    ai_service: AIService = Depends(get_ai_service),
):
    """Look for bugs in code."""
    bugs = await ai_service.find_bugs(request.code, request.language)
    return {"success": True, "bugs": bugs}


@router.post("/explain-code")
async def explain_code(
    request: ExplainCodeRequest,
    current_user: User = Depends(get_current_user),
    ai_service: AIService = Depends(get_ai_service),
):
    explanation = await ai_service.explain_code(request.code, request.language, request.level)
    return {"success": True, "explanation": explanation}


@router.post("/refactor-code")
async def refactor_code(
    request: CodeRequest,
    current_user: User = Depends(get_current_user),
    ai_service: AIService = Depends(get_ai_service),
):
    refactored_code = await ai_service.refactor_code(request.code, request.language)
    return {"success": True, "refactoredCode": refactored_code}


@router.post("/ask")
async def ask_question(
    request: QuestionRequest,
    current_user: User = Depends(get_current_user),
    ai_service: AIService = Depends(get_ai_service),
):
    """Answer a free-form coding question, optionally about a piece of code."""
    answer = await ai_service.answer_question(request.question, request.code, request.language)
    return {"success": True, "answer": answer}
