"""Model factory — create a LangChain chat model for the configured provider.

Credentials come from the ``credentials`` dict of RelaySettings:
  openai_api_key, openai_api_base, azure_api_key, azure_endpoint,
  azure_api_version, anthropic_api_key
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from langchain_core.language_models import BaseChatModel


@dataclass
class ProviderSpec:
    """Registration for an LLM provider."""
    factory: Callable  # fn(name, credentials) -> BaseChatModel
    default: str = ""  # model used when none is configured


def _make_openai(name: str, credentials: dict[str, str]) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    kwargs: dict = {"model": name, "api_key": credentials.get("openai_api_key", "")}
    base_url = credentials.get("openai_api_base")
    if base_url:
        kwargs["base_url"] = base_url
    return ChatOpenAI(**kwargs)


def _make_azure(name: str, credentials: dict[str, str]) -> BaseChatModel:
    from langchain_openai import AzureChatOpenAI

    return AzureChatOpenAI(
        azure_deployment=name,
        azure_endpoint=credentials.get("azure_endpoint", ""),
        api_key=credentials.get("azure_api_key", ""),
        api_version=credentials.get("azure_api_version") or "2024-12-01-preview",
    )


def _make_anthropic(name: str, credentials: dict[str, str]) -> BaseChatModel:
    from langchain_anthropic import ChatAnthropic

    return ChatAnthropic(
        model=name,
        api_key=credentials.get("anthropic_api_key", ""),
        max_tokens=4096,
    )


def _make_local(name: str, credentials: dict[str, str]) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    base_url = credentials.get("openai_api_base") or "http://localhost:8000/v1"
    api_key = credentials.get("openai_api_key") or "not-needed"
    return ChatOpenAI(model=name, api_key=api_key, base_url=base_url)


_REGISTRY: dict[str, ProviderSpec] = {
    "openai": ProviderSpec(_make_openai, "gpt-4o-mini"),
    "azure": ProviderSpec(_make_azure, "gpt-4o-mini"),
    "anthropic": ProviderSpec(_make_anthropic, "claude-haiku-4-5-20251001"),
    "local": ProviderSpec(_make_local),
}


def detect_provider(model_name: str, credentials: dict[str, str], explicit: str = "") -> str:
    """Pick a provider for *model_name*.

    Priority:
      1. Explicit provider (LLM_PROVIDER)
      2. ``provider/`` prefix on the model name
      3. Model-name heuristics
      4. Credential availability
    """
    if explicit:
        return explicit

    for provider in _REGISTRY:
        if model_name.startswith(f"{provider}/"):
            return provider

    if model_name.startswith(("gpt-", "o1-", "o3-", "o4-")):
        if credentials.get("azure_endpoint"):
            return "azure"
        return "openai"
    if model_name.startswith("claude-"):
        return "anthropic"

    if credentials.get("azure_endpoint") and credentials.get("azure_api_key"):
        return "azure"
    if credentials.get("anthropic_api_key"):
        return "anthropic"
    return "openai"


def make_model(
    model_name: str = "",
    *,
    provider: str = "",
    credentials: dict[str, str] | None = None,
) -> BaseChatModel:
    """Create a chat model instance.

    Raises:
        ValueError: if the provider is not registered.
    """
    credentials = credentials or {}
    provider = detect_provider(model_name, credentials, provider)

    spec = _REGISTRY.get(provider)
    if spec is None:
        raise ValueError(
            f"Unknown LLM provider '{provider}'. "
            f"Supported: {', '.join(_REGISTRY)}"
        )

    name = model_name.removeprefix(f"{provider}/") or spec.default
    return spec.factory(name, credentials)
