"""
Assistant Bridge

Builds a single prompt from the edit session and project files, sends it
to the Gemini generateContent endpoint and picks a replacement candidate
out of the reply.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

import httpx

from .config import GEMINI_API_URL, GEMINI_MODEL, REQUEST_TIMEOUT
from .errors import (
    BadRequest,
    MalformedResponse,
    MissingCredential,
    NetworkError,
    Unauthorized,
    error_for_status,
)

logger = logging.getLogger(__name__)

# Generation settings are fixed, not user tunable
GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 1024,
}

MAX_CONTEXT_FILES = 5
MAX_CONTEXT_FILE_CHARS = 1500
CONTEXT_SNIPPET_CHARS = 800

MIN_CANDIDATE_CHARS = 100
SOURCE_MARKERS = ("function", "const", "import", "export", "class", "def ", "<!DOCTYPE", "<html")

FENCED_BLOCK = re.compile(r"```[\w+#.-]*[ \t]*\r?\n(.*?)```", re.DOTALL)

EMPTY_REPLY = "I couldn't generate a helpful response. Could you try rephrasing your question?"

PREAMBLE = """You are a friendly, helpful AI coding assistant working inside a code editor.

Guidelines:
- Respond in natural, conversational language
- Explain clearly, going technical only when asked
- When suggesting code changes, explain why you are making them
- Put any code in markdown code blocks
- When you rewrite the current file, return the complete file in one code block
"""

QUICK_ACTIONS: Dict[str, str] = {
    "optimize": "Can you help me optimize this code? I'd like to improve its performance and make it more readable.",
    "comment": "Could you add helpful comments to this code? I want it to be well-documented for other developers.",
    "debug": "I think there might be some bugs or issues in this code. Can you take a look and help me fix them?",
    "improve-ui": "How can I make the user interface better? I'm looking for suggestions on styling and user experience.",
    "explain": "Can you explain how this code works and what each part does?",
}


@dataclass
class AssistantReply:
    text: str
    candidate: Optional[str] = None


def build_prompt(
    user_text: str,
    path: Optional[str],
    content: str,
    folder_structure: str = "",
    other_files: Iterable[Tuple[str, str]] = (),
) -> str:
    """
    Assemble the full prompt.

    At most MAX_CONTEXT_FILES other files are included, skipping the active
    file and anything over MAX_CONTEXT_FILE_CHARS; each is cut to
    CONTEXT_SNIPPET_CHARS.
    """
    parts = [
        PREAMBLE,
        "CURRENT CONTEXT:",
        f"File: {path or 'untitled file'}",
        "Content:",
        f"```\n{content}\n```",
        "",
        "Project Structure:",
        folder_structure or "No structure available",
    ]

    included = 0
    for other_path, other_content in other_files:
        if included >= MAX_CONTEXT_FILES:
            break
        if other_path == path or len(other_content) >= MAX_CONTEXT_FILE_CHARS:
            continue
        if included == 0:
            parts.append("\nOther project files:")
        snippet = other_content[:CONTEXT_SNIPPET_CHARS]
        if len(other_content) > CONTEXT_SNIPPET_CHARS:
            snippet += "...\n[truncated]"
        parts.append(f"\n{other_path}:\n```\n{snippet}\n```")
        included += 1

    parts.append(f'\nUser Question: "{user_text}"')
    return "\n".join(parts)


def extract_code_candidate(reply: str) -> Optional[str]:
    """
    Best-effort pick of a full-file replacement from a reply.

    Returns the first fenced block longer than MIN_CANDIDATE_CHARS that
    contains a source marker, or None. The result is a suggestion only.
    """
    for match in FENCED_BLOCK.finditer(reply):
        code = match.group(1).strip()
        if len(code) > MIN_CANDIDATE_CHARS and any(m in code for m in SOURCE_MARKERS):
            return code
    return None


def resolve_question(text: Optional[str], action: Optional[str]) -> str:
    if action:
        try:
            return QUICK_ACTIONS[action]
        except KeyError:
            raise ValueError(f"Unknown quick action: {action}")
    if not text or not text.strip():
        raise ValueError("Question text is empty")
    return text


class AssistantBridge:
    """
    Client for the hosted completion endpoint.

    One request per question, no conversation state and no retries.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = GEMINI_API_URL,
        model: str = GEMINI_MODEL,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

        if self.api_key:
            logger.info(f"Assistant initialized with model {model}")
        else:
            logger.warning("Assistant initialized without an API key")

    async def ask(
        self,
        user_text: str,
        path: Optional[str],
        content: str,
        folder_structure: str = "",
        other_files: Iterable[Tuple[str, str]] = (),
    ) -> AssistantReply:
        if not self.api_key:
            raise MissingCredential("Gemini API key is not configured.")

        prompt = build_prompt(user_text, path, content, folder_structure, other_files)
        text = await self._generate(prompt)
        return AssistantReply(text=text, candidate=extract_code_candidate(text))

    async def verify(self) -> None:
        """
        Check the key with a one-entry models listing.

        Gemini answers an unknown key with 400, which is reported as
        Unauthorized here.
        """
        if not self.api_key:
            raise MissingCredential("Gemini API key is not configured.")

        try:
            response = await self.client.get(
                f"{self.base_url}/models", params={"key": self.api_key, "pageSize": 1}
            )
        except httpx.TransportError as e:
            raise NetworkError(detail=self._redact(str(e))) from e

        error = error_for_status(response, "Gemini")
        if isinstance(error, BadRequest):
            raise Unauthorized("Gemini rejected the API key.", error.detail)
        if error is not None:
            raise error
        logger.info("Gemini API key verified")

    def _redact(self, text: str) -> str:
        # The key travels in the query string; keep it out of messages
        return text.replace(self.api_key, "***") if self.api_key else text

    async def _generate(self, prompt: str) -> str:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": GENERATION_CONFIG,
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            response = await self.client.post(
                url, params={"key": self.api_key}, json=payload
            )
        except httpx.TransportError as e:
            raise NetworkError(detail=self._redact(str(e))) from e

        error = error_for_status(response, "Gemini")
        if error is not None:
            logger.error(f"Gemini request failed: HTTP {response.status_code}")
            raise error

        try:
            data = response.json()
        except ValueError:
            raise MalformedResponse("Gemini returned a non-JSON response.")
        return _reply_text(data)

    async def close(self):
        if self.client:
            await self.client.aclose()


def _reply_text(data: Any) -> str:
    try:
        part = data["candidates"][0]["content"]["parts"][0]
    except (KeyError, IndexError, TypeError):
        raise MalformedResponse(
            "Received an unexpected response format. Please try asking again."
        )
    if not isinstance(part, dict):
        raise MalformedResponse("Received an unexpected response format.")
    return part.get("text") or EMPTY_REPLY
