from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, List, Literal, Optional, Tuple

from langchain_openai import ChatOpenAI

from ..config import get_settings
from ..domain.errors import GenerationError
from .model_router import ModelRouter, ProviderSelection


logger = logging.getLogger(__name__)
LOG = logging.getLogger("helpdesk.llm")

Label = Literal["IT Support", "Not IT Support"]
IT_SUPPORT: Label = "IT Support"
NOT_IT_SUPPORT: Label = "Not IT Support"

CLASSIFY_PROMPT = (
    'Is this query related to IT Support? Answer with either "IT Support" or "Not IT Support".\n\n'
    'Query: "{query}"'
)


def parse_classification(text: str) -> Label:
    """Map a free-form model answer onto one of the two labels.

    "Not IT Support" contains "IT Support", so the negative label is checked
    first. Unrecognised answers are treated as not IT related.
    """

    normalized = " ".join((text or "").lower().split())
    if "not it support" in normalized:
        return NOT_IT_SUPPORT
    if "it support" in normalized:
        return IT_SUPPORT
    return NOT_IT_SUPPORT


def _human_message(prompt: str, image: Optional[str]) -> Dict[str, Any]:
    if not image:
        return {"role": "user", "content": prompt}
    url = image if image.startswith(("data:", "http://", "https://")) else f"data:image/jpeg;base64,{image}"
    return {
        "role": "user",
        "content": [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": url}},
        ],
    }


class TextGenerator:
    """Black-box text generation over an OpenAI-compatible chat model."""

    def __init__(
        self,
        router: Optional[ModelRouter] = None,
        timeout: Optional[float] = None,
        temperature: float = 0.2,
    ) -> None:
        self._router = router or ModelRouter()
        self._timeout = timeout if timeout is not None else get_settings().generator_timeout
        self._temperature = temperature
        self._clients: Dict[Tuple[str, str], ChatOpenAI] = {}

    def _get_llm(self, purpose: str) -> Tuple[ChatOpenAI, ProviderSelection]:
        try:
            selection = self._router.select_provider(purpose)
        except RuntimeError as exc:
            raise GenerationError("LLM not configured") from exc
        key = (selection.name, selection.model)
        client = self._clients.get(key)
        if client is None:
            logger.info(
                "Using remote LLM provider name=%s model=%s base_url=%s",
                selection.name,
                selection.model,
                selection.base_url,
            )
            client = ChatOpenAI(
                api_key=os.getenv(selection.api_key_env),
                base_url=selection.base_url,
                model=selection.model,
                temperature=self._temperature,
                timeout=self._timeout,
                max_retries=1,
            )
            self._clients[key] = client
        return client, selection

    async def _invoke(self, purpose: str, messages: List[Dict[str, Any]]) -> str:
        llm, selection = self._get_llm(purpose)
        try:
            res = await asyncio.wait_for(llm.ainvoke(messages), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            LOG.warning("llm_timeout", extra={"purpose": purpose, "provider": selection.name, "timeout_s": self._timeout})
            raise GenerationError(f"LLM call timed out after {self._timeout:.0f}s") from exc
        except Exception as exc:
            LOG.warning("llm_failed", extra={"purpose": purpose, "provider": selection.name, "err": str(exc)})
            raise GenerationError(str(exc)) from exc
        text = res.content if hasattr(res, "content") else str(res)
        if isinstance(text, list):
            text = "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in text)
        if not text or not str(text).strip():
            raise GenerationError("llm_empty_response")
        LOG.debug("llm_ok", extra={"purpose": purpose, "provider": selection.name, "model": selection.model})
        return str(text)

    async def classify(self, text: str) -> Label:
        """Label a user query; raises :class:`GenerationError` on failure."""

        answer = await self._invoke("classification", [{"role": "user", "content": CLASSIFY_PROMPT.format(query=text)}])
        return parse_classification(answer)

    async def generate(self, prompt: str, image: Optional[str] = None, purpose: str = "conversation") -> str:
        return await self._invoke(purpose, [_human_message(prompt, image)])


_generator: TextGenerator | None = None


def get_text_generator() -> TextGenerator:
    global _generator
    if _generator is None:
        _generator = TextGenerator()
    return _generator


def set_text_generator(generator: Optional[TextGenerator]) -> None:
    global _generator
    _generator = generator
