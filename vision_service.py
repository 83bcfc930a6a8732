"""
vision_service.py — The Inspector
=================================
Sends one batch of appliance photos plus the inspection brief to a
vision-capable model and hands back the text it wrote.

Providers:
  gemini     — google.generativeai (default, Flash is great for fast vision)
  anthropic  — Claude via the Messages API

One request = one model call. A transient transport failure gets exactly one
retry with the identical payload; everything else fails the request.
"""

import asyncio
import logging
from typing import List, Tuple

import anthropic
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from config import AnalysisConfig
from errors import UpstreamCallFailed, UpstreamConfigError, UpstreamResponseInvalid
from uploads import ImageUpload

log = logging.getLogger("gateway")

RETRY_DELAY_SECONDS = 1.0


class TransientModelError(Exception):
    """Connection dropped, upstream 5xx/429 or timeout. Safe to resend once."""


# ── Providers ─────────────────────────────────────────────────────────────────
class GeminiVisionModel:
    name = "gemini"

    def __init__(self, api_key: str, model_name: str):
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.model = genai.GenerativeModel(model_name)

    async def generate(self, prompt: str, images: List[ImageUpload],
                       max_tokens: int, temperature: float) -> str:
        contents = [prompt] + [
            {"mime_type": img.content_type, "data": img.data} for img in images
        ]
        try:
            response = await self.model.generate_content_async(
                contents,
                generation_config=genai.GenerationConfig(
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                ),
            )
        except (google_exceptions.ServiceUnavailable,
                google_exceptions.InternalServerError,
                google_exceptions.DeadlineExceeded,
                google_exceptions.TooManyRequests) as e:
            raise TransientModelError(str(e)) from e
        except google_exceptions.GoogleAPICallError as e:
            raise UpstreamCallFailed(status=e.code) from e

        try:
            return response.text or ""
        except ValueError:
            # Blocked by safety filters: no text parts at all
            log.warning(f"Gemini returned no text parts: {response.prompt_feedback}")
            return ""


class ClaudeVisionModel:
    name = "anthropic"

    def __init__(self, api_key: str, model_name: str):
        self.model_name = model_name
        self.client = anthropic.AsyncAnthropic(api_key=api_key)

    async def generate(self, prompt: str, images: List[ImageUpload],
                       max_tokens: int, temperature: float) -> str:
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": img.content_type,
                    "data": img.to_base64(),
                },
            }
            for img in images
        ]
        content.append({"type": "text", "text": prompt})

        try:
            message = await self.client.messages.create(
                model=self.model_name,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": content}],
            )
        except (anthropic.APIConnectionError, anthropic.RateLimitError,
                anthropic.InternalServerError) as e:
            raise TransientModelError(str(e)) from e
        except anthropic.APIStatusError as e:
            raise UpstreamCallFailed(status=e.status_code) from e

        return "".join(block.text for block in message.content if block.type == "text")


def build_vision_model(cfg: AnalysisConfig):
    """Pick the provider from config. Missing credentials is a config error, not a 400."""
    if cfg.model_provider == "anthropic":
        if not cfg.anthropic_api_key:
            log.error("Anthropic API key not configured")
            raise UpstreamConfigError(
                details="Model API key not configured. Set ANTHROPIC_API_KEY."
            )
        return ClaudeVisionModel(cfg.anthropic_api_key, cfg.anthropic_model)

    if cfg.model_provider == "gemini":
        if not cfg.gemini_api_key:
            log.error("Gemini API key not configured")
            raise UpstreamConfigError(
                details="Model API key not configured. Set GEMINI_API_KEY."
            )
        return GeminiVisionModel(cfg.gemini_api_key, cfg.gemini_model)

    raise UpstreamConfigError(details=f"Unsupported MODEL_PROVIDER '{cfg.model_provider}'")


# ── Budgets ───────────────────────────────────────────────────────────────────
def budget_for(image_count: int, cfg: AnalysisConfig) -> Tuple[int, float]:
    """More images ⇒ more output tokens, so multi-appliance reports aren't truncated."""
    max_tokens = cfg.multi_image_max_tokens if image_count > 1 else cfg.single_image_max_tokens
    return max_tokens, cfg.temperature


# ── Invocation ────────────────────────────────────────────────────────────────
async def _call_with_retry(model, prompt: str, images: List[ImageUpload],
                           max_tokens: int, temperature: float) -> str:
    try:
        return await model.generate(prompt, images, max_tokens, temperature)
    except TransientModelError as e:
        log.warning(f"Transient model failure, retrying once: {e}")
        await asyncio.sleep(RETRY_DELAY_SECONDS)

    try:
        return await model.generate(prompt, images, max_tokens, temperature)
    except TransientModelError as e:
        log.error(f"Model call failed after retry: {e}")
        raise UpstreamCallFailed(details="Model service unavailable after retry") from e


async def run_analysis(model, prompt: str, images: List[ImageUpload],
                       cfg: AnalysisConfig) -> str:
    """Call the model once (plus at most one retry) under the request-level timeout."""
    max_tokens, temperature = budget_for(len(images), cfg)
    log.info(
        f"Calling {model.name} model with {len(images)} image(s), "
        f"max_tokens={max_tokens}, temperature={temperature}"
    )
    try:
        text = await asyncio.wait_for(
            _call_with_retry(model, prompt, images, max_tokens, temperature),
            timeout=cfg.model_timeout_seconds,
        )
    except asyncio.TimeoutError:
        log.error(f"Model call exceeded {cfg.model_timeout_seconds}s")
        raise UpstreamCallFailed(status=504, details="Model call timed out")

    log.info(f"Model response received: {len(text or '')} chars")
    return text


# ── Response validation ───────────────────────────────────────────────────────
def validate_analysis(text: str, cfg: AnalysisConfig) -> str:
    """Reject empty, too-short, or refusal answers. Heuristics, tuned via config."""
    cleaned = (text or "").strip()
    if not cleaned:
        raise UpstreamResponseInvalid("Model returned empty response")

    lowered = cleaned.lower()
    refused = any(phrase in lowered for phrase in cfg.refusal_phrases)
    if refused or len(cleaned) < cfg.min_response_chars:
        log.warning(f"Rejected model answer (refusal={refused}, length={len(cleaned)})")
        raise UpstreamResponseInvalid("Model refused or gave insufficient response")

    return cleaned
