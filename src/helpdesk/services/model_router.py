"""Provider selection for the text generator.

Every supported provider exposes an OpenAI-compatible chat endpoint, so a
selection is just credentials, a base URL and a model name. Policy lives here
so it can be tested without network access.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ProviderSelection:
    name: str
    model: str
    api_key_env: str
    base_url: str


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    key_var: str
    model_var: str
    url_var: str
    default_model: str
    default_url: str


GEMINI = ProviderConfig(
    name="gemini",
    key_var="GEMINI_API_KEY",
    model_var="GEMINI_MODEL",
    url_var="GEMINI_BASE_URL",
    default_model="gemini-2.0-flash",
    default_url="https://generativelanguage.googleapis.com/v1beta/openai/",
)

OPENAI = ProviderConfig(
    name="openai",
    key_var="OPENAI_API_KEY",
    model_var="OPENAI_MODEL",
    url_var="OPENAI_BASE_URL",
    default_model="gpt-4o-mini",
    default_url="https://api.openai.com/v1",
)


class ModelRouter:
    PROVIDERS: Dict[str, ProviderConfig] = {cfg.name: cfg for cfg in (GEMINI, OPENAI)}

    # purpose -> provider preference
    POLICY: Dict[str, Tuple[str, ...]] = {
        "classification": ("gemini", "openai"),
        "conversation": ("gemini", "openai"),
        "article": ("gemini", "openai"),
    }

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        self._env = env if env is not None else os.environ
        self._preferred = (self._env.get("HELPDESK_MODEL_PROVIDER") or "").strip().lower() or None

    def _candidates(self, purpose: str) -> Iterator[ProviderConfig]:
        order = self.POLICY.get(purpose, self.POLICY["conversation"])
        if self._preferred in self.PROVIDERS:
            yield self.PROVIDERS[self._preferred]
        for name in order:
            if name != self._preferred:
                yield self.PROVIDERS[name]

    def select_provider(self, purpose: str) -> ProviderSelection:
        """First configured provider for ``purpose``; RuntimeError when none has a key."""

        for cfg in self._candidates(purpose):
            if not self._env.get(cfg.key_var):
                continue
            return ProviderSelection(
                name=cfg.name,
                model=self._env.get(cfg.model_var) or cfg.default_model,
                api_key_env=cfg.key_var,
                base_url=self._env.get(cfg.url_var) or cfg.default_url,
            )
        raise RuntimeError(f"No model provider configured for {purpose!r}")

    def maybe_select_provider(self, purpose: str) -> Optional[ProviderSelection]:
        try:
            return self.select_provider(purpose)
        except RuntimeError:
            return None
