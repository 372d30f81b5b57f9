"""Language model gateway backed by pydantic-ai.

The prompt handed in is already complete (system instructions included), so
the agent runs without a system prompt of its own. Every failure, including
an empty reply, surfaces as GenerationFailure.
"""

from collections.abc import AsyncIterator

from loguru import logger
from pydantic_ai import Agent
from pydantic_ai.models import Model

from support_chat.core.errors import GenerationFailure


class PydanticAIGateway:
    def __init__(self, model: Model | str) -> None:
        self._agent = Agent(model=model, output_type=str)

    async def complete(self, prompt: str) -> str:
        logger.debug("LLM Prompt: completion", prompt_chars=len(prompt))
        try:
            result = await self._agent.run(prompt)
        except Exception as e:
            logger.error(f"LLM completion failed: {e}")
            raise GenerationFailure(f"LLM completion failed: {e}", original_error=e) from e

        text = (result.output or "").strip()
        if not text:
            raise GenerationFailure("LLM returned an empty completion")
        return text

    async def complete_stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield reply fragments as the model produces them."""
        logger.debug("LLM Prompt: streaming completion", prompt_chars=len(prompt))
        produced = False
        try:
            async with self._agent.run_stream(prompt) as result:
                async for delta in result.stream_text(delta=True):
                    if delta:
                        produced = True
                        yield delta
        except Exception as e:
            logger.error(f"LLM streaming failed: {e}")
            raise GenerationFailure(f"LLM streaming failed: {e}", original_error=e) from e

        if not produced:
            raise GenerationFailure("LLM returned an empty stream")
