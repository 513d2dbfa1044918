"""AI-провайдеры для генерации контента.

Каждый провайдер — адаптер, реализующий единый интерфейс BaseProviderAdapter.
Сейчас поддерживается OpenAI (и OpenAI-совместимые API через base_url).

Пример использования:
    from src.providers.ai import GenerationType, OpenAIAdapter

    adapter = OpenAIAdapter(api_key="sk-...")
    result = await adapter.generate(
        model_id="gpt-4-turbo",
        prompt="Write a landing page description...",
        generation_type=GenerationType.CHAT,
    )
"""

from src.core.exceptions import GenerationError, ProviderNotAvailableError
from src.providers.ai.base import (
    BaseProviderAdapter,
    GenerationResult,
    GenerationStatus,
    GenerationType,
)
from src.providers.ai.openai_provider import OpenAIAdapter, create_openai_adapter

__all__ = [
    "BaseProviderAdapter",
    "GenerationError",
    "GenerationResult",
    "GenerationStatus",
    "GenerationType",
    "OpenAIAdapter",
    "ProviderNotAvailableError",
    "create_openai_adapter",
]
