"""Code help backed by the Google Generative Language API."""

from typing import Any, Dict, Optional

import httpx
import structlog

from codementor.config import settings
from codementor.exceptions import UpstreamUnavailableError
from codementor.metrics import AI_REQUESTS

logger = structlog.get_logger()

APOLOGY_MESSAGE = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again in a moment."
)

EXPLANATION_LEVELS = {
    "beginner": "Explain it to someone completely new to programming. Use simple terms and analogies.",
    "intermediate": "Explain it with moderate technical detail, assuming basic programming knowledge.",
    "expert": "Give a detailed technical explanation covering advanced concepts and implementation details.",
}


class AIService:
    """Prompt builder and client for the generateContent endpoint.

    Public operations never raise on upstream failure; they return
    ``APOLOGY_MESSAGE`` instead and log a warning.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.google_api_key
        self.model = model or settings.ai_model
        self.base_url = (base_url or settings.ai_base_url).rstrip("/")
        self.timeout = timeout or settings.ai_timeout_seconds
        self.transport = transport
        self.logger = logger.bind(component="ai_service")

    async def analyze_code(self, code: str, language: str, context: str = "") -> str:
        prompt = (
            f"You are an expert {language} developer and code reviewer. Analyze this code and give "
            f"specific, actionable suggestions for improvement.\n\n"
            f"```{language}\n{code}\n```\n\n"
            f"Context: {context}\n\n"
            "Structure the answer as: a quality score out of 10, strengths, improvement suggestions "
            "with examples, security and best practices, and performance optimizations."
        )
        return await self._generate("analyze_code", prompt)

    async def find_bugs(self, code: str, language: str) -> str:
        prompt = (
            f"You are a senior engineer specialising in bug detection. Find bugs, errors and "
            f"potential issues in this {language} code.\n\n"
            f"```{language}\n{code}\n```\n\n"
            'Answer with JSON: {"summary": str, "bugs": [{"line": int, "type": str, '
            '"severity": str, "description": str, "fix": str, "example": str}], '
            '"overallAssessment": str}. If there are no bugs, give a positive assessment '
            "with preventive suggestions."
        )
        return await self._generate("find_bugs", prompt)

    async def explain_code(self, code: str, language: str, level: str = "intermediate") -> str:
        guidance = EXPLANATION_LEVELS.get(level, EXPLANATION_LEVELS["intermediate"])
        prompt = (
            f"You are a programming instructor. {guidance}\n\n"
            f"Explain this {language} code:\n\n```{language}\n{code}\n```\n\n"
            "Cover what it does, how it works step by step, the key concepts, learning points "
            "and suggested next steps."
        )
        return await self._generate("explain_code", prompt)

    async def refactor_code(self, code: str, language: str) -> str:
        prompt = (
            f"You are an expert {language} developer. Refactor this code for readability, "
            f"maintainability and performance.\n\n```{language}\n{code}\n```\n\n"
            "Return the refactored code in a fenced block, then list the improvements made, "
            "their benefits and further recommendations."
        )
        return await self._generate("refactor_code", prompt)

    async def answer_question(
        self, question: str, code: Optional[str] = None, language: Optional[str] = None
    ) -> str:
        prompt = f"You are a helpful coding mentor. Answer this question clearly:\n\n{question}"
        if code:
            prompt += f"\n\nRelevant {language or ''} code:\n```{language or ''}\n{code}\n```"
        return await self._generate("answer_question", prompt)

    async def _generate(self, operation: str, prompt: str) -> str:
        try:
            text = await self.generate_content(prompt)
        except UpstreamUnavailableError as e:
            AI_REQUESTS.labels(operation=operation, outcome="failure").inc()
            self.logger.warning("AI request failed", operation=operation, error=str(e))
            return APOLOGY_MESSAGE

        AI_REQUESTS.labels(operation=operation, outcome="success").inc()
        return text

    async def generate_content(self, prompt: str) -> str:
        """Call generateContent and return the first candidate's text.

        Raises:
            UpstreamUnavailableError: on missing key, transport error, non-2xx
                status or an unexpected payload.
        """
        if not self.api_key:
            raise UpstreamUnavailableError("Google AI API key is not configured")

        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 2048,
            },
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailableError(f"AI upstream returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"AI upstream unreachable: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailableError("AI upstream returned invalid JSON") from e

        return self._extract_text(payload)

    @staticmethod
    def _extract_text(payload: Dict[str, Any]) -> str:
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamUnavailableError("AI upstream returned no candidates") from e

        if not isinstance(text, str):
            raise UpstreamUnavailableError("AI upstream returned a non-text part")
        return text or "No response generated"


def get_ai_service() -> AIService:
    """Dependency for getting the AI service."""
    return AIService()
