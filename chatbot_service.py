"""
Chatbot Service
===============
Answers a student's question about one of their course files with Gemini:

1. The file is downloaded to a temp file and uploaded to the Files API.
2. If the model cannot take the file, its text is inlined into the prompt
   instead (truncated to ``max_context_chars``).
3. Failures never raise; the caller gets an apologetic answer with
   ``modelUsed: "error"``.
"""

import mimetypes
import os
import tempfile
import time
from functools import lru_cache
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import requests
from google import genai
from google.genai import types

from config import settings
from exceptions import ExternalServiceError
from logging_config import get_logger

logger = get_logger(__name__)

ERROR_ANSWER = (
    "I'm sorry, but I encountered an error processing your request. "
    "Please try again later or with a different file."
)
TRUNCATION_MARKER = "... [Content truncated due to length]"
DOWNLOAD_CHUNK_SIZE = 64 * 1024


def file_name_from_url(file_url: str) -> str:
    name = os.path.basename(unquote(urlparse(file_url).path))
    return name or "file"


def truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + TRUNCATION_MARKER
    return text


class ChatbotService:
    """Gemini client wrapper; pass ``client`` to reuse or fake one"""

    def __init__(self, api_key: str, model: str, client: Optional[Any] = None,
                 max_context_chars: int = 10000, download_timeout: int = 30):
        self.api_key = api_key
        self.model = model
        self.max_context_chars = max_context_chars
        self.download_timeout = download_timeout
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ExternalServiceError("chatbot", "CHATBOT_API_KEY environment variable is not set")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def log_interaction(self, user_id: str, question: str, file_url: Optional[str]) -> None:
        logger.info(
            f'User {user_id} asked: "{question}" (File: {file_url})',
            extra={"chatbot_user": user_id, "chatbot_file": file_url},
        )

    def ask(self, question: str, file_url: Optional[str] = None, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Returns ``{"answer", "modelUsed", "processingTime"}``; on failure
        ``modelUsed`` is ``"error"`` and ``error`` carries the reason.
        """
        start = time.perf_counter()
        temp_path = None
        try:
            if not file_url:
                answer = self._generate([types.Part.from_text(text=question)])
                return self._result(answer, self.model, start)

            temp_path = self._download(file_url)
            mime_type = mimetypes.guess_type(temp_path)[0] or "application/octet-stream"
            logger.debug(f"Downloaded {file_url} ({mime_type}) for user {user_id}")

            try:
                answer = self._ask_with_file(question, temp_path, mime_type)
                model_used = self.model
            except Exception as e:
                logger.warning(f"[Chatbot] File upload path failed, falling back to text only: {e}")
                prompt = self._fallback_prompt(question, temp_path, file_name_from_url(file_url))
                answer = self._generate([types.Part.from_text(text=prompt)])
                model_used = f"{self.model} (text-only fallback)"

            return self._result(answer, model_used, start)
        except Exception as e:
            logger.error(f"[Chatbot] Error answering question for user {user_id}: {e}", exc_info=True)
            return {
                "answer": ERROR_ANSWER,
                "modelUsed": "error",
                "processingTime": "0s",
                "error": str(e),
            }
        finally:
            if temp_path and os.path.exists(temp_path):
                os.remove(temp_path)

    def _download(self, file_url: str) -> str:
        fd, temp_path = tempfile.mkstemp(prefix="homiedo_", suffix=f"_{file_name_from_url(file_url)}")
        try:
            with os.fdopen(fd, "wb") as out:
                with requests.get(file_url, stream=True, timeout=self.download_timeout) as response:
                    response.raise_for_status()
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        out.write(chunk)
        except Exception:
            # ask() never learns the path of a failed download
            os.remove(temp_path)
            raise
        return temp_path

    def _ask_with_file(self, question: str, temp_path: str, mime_type: str) -> str:
        uploaded = self.client.files.upload(
            file=temp_path,
            config=types.UploadFileConfig(mime_type=mime_type),
        )
        return self._generate([
            types.Part.from_uri(file_uri=uploaded.uri, mime_type=mime_type),
            types.Part.from_text(text=question),
        ])

    def _fallback_prompt(self, question: str, temp_path: str, file_name: str) -> str:
        with open(temp_path, "r", encoding="utf-8", errors="replace") as f:
            content = f.read()
        content = truncate(content, self.max_context_chars)
        return f"Question: {question}\n\nContext from file ({file_name}):\n{content}"

    def _generate(self, parts: List[Any]) -> str:
        stream = self.client.models.generate_content_stream(
            model=self.model,
            contents=[types.Content(role="user", parts=parts)],
            config=types.GenerateContentConfig(response_mime_type="text/plain"),
        )
        return "".join(chunk.text or "" for chunk in stream)

    @staticmethod
    def _result(answer: str, model_used: str, start: float) -> Dict[str, Any]:
        return {
            "answer": answer,
            "modelUsed": model_used,
            "processingTime": f"{time.perf_counter() - start:.2f}s",
        }


@lru_cache()
def get_chatbot_service() -> ChatbotService:
    return ChatbotService(
        api_key=settings.CHATBOT_API_KEY,
        model=settings.CHATBOT_MODEL,
        max_context_chars=settings.CHATBOT_MAX_CONTEXT_CHARS,
        download_timeout=settings.CHATBOT_DOWNLOAD_TIMEOUT,
    )
