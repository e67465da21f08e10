"""
Helpers for calling the synchronous AWS and Supabase clients from async code.
"""

import asyncio
from typing import Any, Callable, Optional, TypeVar

from ..models.results import LLMOk, LLMResult, LLMServiceError
from .bedrock_llm import BedrockLLM
from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


async def run_blocking(fn: Callable[..., T], *args: Any, timeout: float, **kwargs: Any) -> T:
    """
    Run a blocking call in a worker thread with a timeout.

    Raises:
        asyncio.TimeoutError: If the call does not finish within `timeout` seconds
        Exception: Whatever the call itself raises
    """
    return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=timeout)


async def ask_json(llm: BedrockLLM,
                   system_prompt: str,
                   user_text: str,
                   timeout: float,
                   expected_type: type = dict,
                   max_tokens: Optional[int] = None) -> LLMResult:
    """JSON completion off the event loop. A timeout or client error becomes LLMServiceError."""
    try:
        return await run_blocking(llm.complete_json,
                                  system_prompt,
                                  user_text,
                                  expected_type=expected_type,
                                  max_tokens=max_tokens,
                                  timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f'JSON completion timed out after {timeout}s')
        return LLMServiceError(error=f'timed out after {timeout}s')
    except Exception as e:
        return LLMServiceError(error=str(e))


async def ask_text(llm: BedrockLLM, system_prompt: str, user_text: str, timeout: float, max_tokens: Optional[int] = None) -> LLMResult:
    """Plain completion off the event loop, as LLMOk(text) or LLMServiceError."""
    try:
        text = await run_blocking(llm.complete, system_prompt, user_text, max_tokens=max_tokens, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f'Completion timed out after {timeout}s')
        return LLMServiceError(error=f'timed out after {timeout}s')
    except Exception as e:
        return LLMServiceError(error=str(e))

    if not text:
        return LLMServiceError(error='empty completion')
    return LLMOk(data=text)
