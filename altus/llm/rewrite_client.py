"""LLM query rewriter: OpenAI-compatible completions used as the semantic enhancement service."""

import json
import re
from typing import Any

import httpx

from altus.core.config import config
from altus.core.logger import logger
from altus.observability import trace
from altus.orchestrators.search.errors import (
    EnhancementRateLimited,
    EnhancementTimeout,
    EnhancementUnavailable,
)
from altus.orchestrators.search.interface import SemanticEnhancementService

REWRITE_PROMPT = """You rewrite database search queries for a MySQL full-text index.
Expand abbreviations, fix obvious misspellings and add at most three closely
related keywords. Keep the user's intent; do not add operators.

Answer with JSON only: {{"optimizedQuery": "<rewritten query>", "confidence": <0.0-1.0>}}

Query: {query}
JSON:"""


def _extract_json(text: str) -> str:
    text = (text or "").strip()
    if not text:
        return "{}"
    match = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    if match:
        return match.group(1).strip()
    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        return match.group(0)
    return text


def parse_rewrite(text: str) -> dict[str, Any]:
    """Parse the model's answer into ``{"optimizedQuery", "confidence"}``."""
    try:
        cleaned = re.sub(r",\s*}", "}", _extract_json(text))
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as e:
        raise EnhancementUnavailable(f"Unparseable rewrite: {text[:200]!r}") from e
    if not isinstance(data, dict):
        raise EnhancementUnavailable(f"Rewrite is not an object: {text[:200]!r}")
    return {
        "optimizedQuery": str(data.get("optimizedQuery") or data.get("optimized_query") or ""),
        "confidence": data.get("confidence", 0.0),
    }


class LLMQueryRewriter(SemanticEnhancementService):
    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or config.enhancer_url).rstrip("/")
        self.model = model or config.enhancer_model
        self.client = client or httpx.AsyncClient(timeout=timeout or config.enhancer_timeout)

    async def rewrite(self, text: str) -> dict[str, Any]:
        if not self.base_url:
            raise EnhancementUnavailable("No enhancement service URL configured")
        payload = {
            "model": self.model,
            "prompt": REWRITE_PROMPT.format(query=text),
            "max_tokens": 120,
            "temperature": 0.0,
            "stream": False,
        }

        async with trace(
            "query_rewrite",
            "llm",
            inputs={"model": self.model, "query": text},
            metadata={"provider": "openai-compatible"},
        ) as run:
            try:
                response = await self.client.post(
                    f"{self.base_url}/v1/completions",
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
                generated = data["choices"][0]["text"]
            except httpx.TimeoutException as e:
                raise EnhancementTimeout(f"Rewrite timed out: {e}") from e
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                body = e.response.text[:500] if e.response.content else ""
                if status == 429:
                    raise EnhancementRateLimited("Rewrite service rate limited", {"status": status}) from e
                logger.error("Rewrite request failed %s: %s", status, body)
                raise EnhancementUnavailable(
                    f"Rewrite service returned {status}", {"status": status}
                ) from e
            except httpx.HTTPError as e:
                raise EnhancementUnavailable(f"Rewrite service unreachable: {e}") from e
            except (KeyError, IndexError, TypeError, ValueError) as e:
                raise EnhancementUnavailable(f"Malformed rewrite response: {e}") from e

            result = parse_rewrite(generated)
            run.end(outputs=result)
            return result

    async def close(self) -> None:
        await self.client.aclose()
