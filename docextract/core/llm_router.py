"""LiteLLM Router configuration for retry, fallback, and cooldown.

Supports multiple LLM providers:
- OpenRouter (default): Uses OPENROUTER_API_KEY
- Azure OpenAI: Uses AZURE_API_KEY, AZURE_API_BASE, AZURE_API_VERSION
- Ollama: Local server at OLLAMA_API_BASE (no key)

The configured extraction model is always routable, even when it is not one
of the provider defaults.
"""

import os

from litellm import Router

from docextract.core.config import API_KEY_ENV_VAR, FAST_MODEL, LLM_PROVIDER

OPENROUTER_FALLBACK_MODEL = "openrouter/openai/gpt-4o"
DEFAULT_OLLAMA_API_BASE = "http://localhost:11434"


def _deployment(model: str, litellm_params: dict) -> dict:
    return {"model_name": model, "litellm_params": {"model": model, **litellm_params}}


def _provider_params() -> dict:
    """Connection parameters shared by every deployment of the provider."""
    if LLM_PROVIDER == "azure":
        return {
            "api_key": os.environ.get("AZURE_API_KEY", ""),
            "api_base": os.environ.get("AZURE_API_BASE", ""),
            "api_version": os.environ.get("AZURE_API_VERSION", "2024-02-15-preview"),
        }
    if LLM_PROVIDER == "ollama":
        return {"api_base": os.environ.get("OLLAMA_API_BASE", DEFAULT_OLLAMA_API_BASE)}
    return {"api_key": f"os.environ/{API_KEY_ENV_VAR}"}


def _build_model_list(model: str) -> list[dict]:
    """Build deployments for the extraction model and its fallback."""
    params = _provider_params()
    models = [model]
    if LLM_PROVIDER == "openrouter" and model == FAST_MODEL:
        models.append(OPENROUTER_FALLBACK_MODEL)
    return [_deployment(m, params) for m in models]


def _build_fallbacks(model: str) -> list[dict]:
    """Fall back from the fast default to a larger model (OpenRouter only)."""
    if LLM_PROVIDER == "openrouter" and model == FAST_MODEL:
        return [{FAST_MODEL: [OPENROUTER_FALLBACK_MODEL]}]
    return []


def build_router(model: str = FAST_MODEL) -> Router:
    """Build the LLM Router with retry and fallback configuration.

    The router handles:
    - Automatic retries with exponential backoff
    - Fallback from primary to secondary model on exhausted retries
    - Cooldown tracking for failed deployments

    Args:
        model: Provider-qualified model name the client will request.
    """
    return Router(
        model_list=_build_model_list(model),
        num_retries=2,
        retry_after=4,
        cooldown_time=60,
        allowed_fails=2,
        fallbacks=_build_fallbacks(model),
    )
