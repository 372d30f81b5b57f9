"""LLM model abstraction for consistent model access across the application."""

from pydantic_ai.models import Model


def get_model(provider: str, model_name: str, api_key: str = "") -> Model:
    if provider == "openai":
        from pydantic_ai.models.openai import OpenAIChatModel
        from pydantic_ai.providers.openai import OpenAIProvider

        # Without an explicit key the provider reads OPENAI_API_KEY itself
        return OpenAIChatModel(model_name, provider=OpenAIProvider(api_key=api_key or None))

    if provider == "google":
        from pydantic_ai.models.google import GoogleModel
        from pydantic_ai.providers.google import GoogleProvider

        return GoogleModel(model_name, provider=GoogleProvider(api_key=api_key or None))

    raise ValueError(f"Unsupported LLM provider: {provider}")
