"""
Gemini chat client for the chatbot. Uses the google-genai client with either an
API key (Google AI Studio) or Vertex AI credentials.

One GeminiChatClient is built at startup and shared by every request. When no
credential is configured (or construction fails) the client is kept in an
"unconfigured" state instead of being None; callers check is_configured.
"""
import logging
from pathlib import Path
from typing import Any

from google import genai
from google.genai import types

from chatbot.config import Settings

logger = logging.getLogger(__name__)


def build_contents(history: list[dict], prompt: str) -> list[types.Content]:
    """
    history: list of {"role": "user"|"model", "text": "..."} oldest-first.
    prompt: latest user message, appended as the final user turn.
    """
    contents = [
        types.Content(role=turn["role"], parts=[types.Part.from_text(text=turn["text"])])
        for turn in history
    ]
    contents.append(types.Content(role="user", parts=[types.Part.from_text(text=prompt)]))
    return contents


def _response_text(response: Any) -> str:
    """Text of the first candidate, or "" when the model returned nothing usable."""
    if not response:
        return ""
    text = getattr(response, "text", None)
    if text:
        return text
    candidates = getattr(response, "candidates", None)
    if not candidates:
        return ""
    content = candidates[0].content
    if not content or not content.parts:
        return ""
    return getattr(content.parts[0], "text", None) or ""


class GeminiChatClient:
    """Stateless call-through to Gemini chat completion."""

    def __init__(self, client: Any = None, model: str = "gemini-1.5-flash", max_output_tokens: int = 800):
        self._client = client
        self.model = model
        self.max_output_tokens = max_output_tokens

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def generate_reply(self, history: list[dict], prompt: str) -> str:
        """
        Send role-tagged history plus the new prompt. Returns the reply text,
        possibly empty. Raises on transport, credential or provider errors.
        """
        if self._client is None:
            raise RuntimeError("Gemini client is not configured")
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=build_contents(history, prompt),
            config=types.GenerateContentConfig(max_output_tokens=self.max_output_tokens),
        )
        return _response_text(response)


def _create_genai_client(settings: Settings) -> Any:
    if settings.gemini_api_key.strip():
        return genai.Client(api_key=settings.gemini_api_key.strip())

    if not settings.vertex_project_id:
        return None

    credentials = None
    if settings.vertex_credentials_path:
        from google.oauth2 import service_account

        path = Path(settings.vertex_credentials_path)
        if path.is_file():
            credentials = service_account.Credentials.from_service_account_file(
                str(path),
                scopes=["https://www.googleapis.com/auth/cloud-platform"],
            )
    return genai.Client(
        vertexai=True,
        project=settings.vertex_project_id,
        location=settings.vertex_location,
        credentials=credentials,
    )


def build_ai_client(settings: Settings) -> GeminiChatClient:
    """Build the process-wide client. Never raises: failures leave it unconfigured."""
    try:
        client = _create_genai_client(settings)
    except Exception:
        logger.exception("Error initializing Gemini client; AI replies are disabled")
        client = None

    if client is None:
        logger.error("GEMINI_API_KEY is not defined or is empty; AI replies are disabled")
    else:
        logger.info("Gemini client initialized (model=%s)", settings.gemini_model)

    return GeminiChatClient(
        client,
        model=settings.gemini_model,
        max_output_tokens=settings.chat_max_output_tokens,
    )
