import logging
import re
import time
from dataclasses import dataclass
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, ValidationError, field_validator

from ..models import DigestResult, SummaryResult

logger = logging.getLogger(__name__)

MODEL_NAME = "gemini-2.5-flash"
FALLBACK_MODEL_NAME = "gemini-2.0-flash"
MAX_INPUT_CHARS = 10000
MAX_KEYWORDS = 5

_TITLE_LABEL = re.compile(r"^\s*(제목|title)\s*:\s*", re.IGNORECASE)
_SUMMARY_LABEL = re.compile(r"^\s*(요약|summary)\s*:\s*", re.IGNORECASE)
_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n?```\s*$", re.DOTALL)

SUMMARY_PROMPT = """
You are a technical content summarizer for Korean developers.

Article Title: {title}
Article Content: {body}

Create a JSON response with:
1. title_ko: Natural Korean translation of the title (one line)
2. summary_ko: 3-5 sentence Korean summary covering key points, developer impact, and main concepts
3. keywords: Array of 3-5 key technical terms or concepts

Rules:
- Respond ONLY with valid JSON, no additional text
- Do NOT include labels like "제목:" or "요약:" in the values
- Keep title_ko concise and natural
- Keywords should be technical terms in original language or Korean

Example:
{{
  "title_ko": "안드로이드 MVVM 패턴 마스터하기",
  "summary_ko": "이 글은 Hilt, Repository, Coroutines를 활용한 MVVM 아키텍처 구현 방법을 설명합니다.",
  "keywords": ["MVVM", "Hilt", "Coroutines"]
}}
"""

DIGEST_PROMPT = """
다음은 모바일/웹 개발 관련 기술 콘텐츠야.
이 콘텐츠의 핵심 내용을 한국 개발자가 한눈에 파악할 수 있도록 상세히 정리해줘.

제목: {title}
내용: {body}

다음 항목을 포함해서 정리해줘:
1. **핵심 내용**: 이 글의 주요 주제와 목적
2. **주요 포인트**: 핵심 기능, 변경사항, 또는 새로운 개념 (불릿 포인트로)
3. **개발자에게 미치는 영향**: 실무에 어떻게 적용할 수 있는지
4. **핵심 키워드**: 관련 기술 스택이나 개념

마크다운 형식으로 작성하되, 코드블록(```)으로 감싸지 말고 순수 마크다운만 작성해줘.
"""

T = TypeVar("T")


@dataclass
class Decoded(Generic[T]):
    """Tagged outcome of decoding a model reply."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


class SummaryReply(BaseModel):
    title_ko: Optional[str] = None
    summary_ko: Optional[str] = None
    keywords: List[str] = []

    @field_validator("keywords", mode="before")
    @classmethod
    def _coerce_keywords(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("keywords must be a list")
        return [str(k) for k in value if k is not None]


def strip_label(text: str, pattern: re.Pattern) -> str:
    return pattern.sub("", text, count=1).strip()


def clean_keywords(keywords: Sequence[str]) -> List[str]:
    cleaned = [k.strip() for k in keywords if k and k.strip()]
    return cleaned[:MAX_KEYWORDS]


def decode_summary(raw: Optional[str], title: str, body: str) -> Decoded[SummaryResult]:
    if not raw or not raw.strip():
        return Decoded(ok=False, error="empty reply")

    try:
        reply = SummaryReply.model_validate_json(raw.strip())
    except ValidationError as e:
        return Decoded(ok=False, error=f"invalid reply: {e.errors()[0].get('msg')}")

    title_ko = strip_label(reply.title_ko or title, _TITLE_LABEL)
    summary_ko = strip_label(reply.summary_ko or body[:200], _SUMMARY_LABEL)
    if not title_ko:
        return Decoded(ok=False, error="reply has no usable title")

    return Decoded(
        ok=True,
        value=SummaryResult(
            title_ko=title_ko,
            summary_ko=summary_ko,
            keywords=clean_keywords(reply.keywords),
        ),
    )


def decode_digest(raw: Optional[str]) -> Decoded[str]:
    text = (raw or "").strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1).strip()
    if not text:
        return Decoded(ok=False, error="empty reply")
    return Decoded(ok=True, value=text)


def is_rate_limit_error(error: Exception) -> bool:
    if isinstance(error, google_exceptions.ResourceExhausted):
        return True
    return "429" in str(error) or "rate limit" in str(error).lower()


class EnrichmentClient:
    """Gemini-backed translation/summary and long-form digest generation.

    Every failure (missing key, provider error, empty or malformed reply)
    resolves to None so callers can persist the item without enrichment.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = MODEL_NAME,
        fallback_model: Optional[str] = FALLBACK_MODEL_NAME,
        model_factory=None,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.fallback_model = fallback_model
        if model_factory is None and api_key:
            genai.configure(api_key=api_key)
            model_factory = genai.GenerativeModel
        self._model_factory = model_factory

    @property
    def enabled(self) -> bool:
        return self._model_factory is not None

    def _generate(self, prompt: str, json_mode: bool) -> Tuple[Optional[str], int]:
        generation_config = {"temperature": 0.7}
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        models = [self.model_name]
        if self.fallback_model and self.fallback_model != self.model_name:
            models.append(self.fallback_model)

        last_error: Optional[Exception] = None
        for model_name in models:
            try:
                model = self._model_factory(model_name)
                response = model.generate_content(prompt, generation_config=generation_config)
                usage = getattr(response, "usage_metadata", None)
                tokens = getattr(usage, "total_token_count", 0) or 0
                return response.text, tokens
            except Exception as e:
                last_error = e
                if is_rate_limit_error(e):
                    logger.warning("Rate limit hit on %s: %s", model_name, e)
                else:
                    logger.error("Error with model %s: %s", model_name, e)
        raise last_error

    def summarize(self, title: str, body: str) -> Optional[SummaryResult]:
        if not self.enabled:
            logger.error("No Google API key configured. Skipping summary for %r", title)
            return None

        start = time.monotonic()
        prompt = SUMMARY_PROMPT.format(title=title, body=(body or "")[:MAX_INPUT_CHARS])
        try:
            raw, tokens = self._generate(prompt, json_mode=True)
        except Exception:
            logger.error("Summary failed for %r (%.0fms)", title, (time.monotonic() - start) * 1000)
            return None

        decoded = decode_summary(raw, title, body or "")
        if not decoded.ok:
            logger.error("Could not decode summary for %r: %s", title, decoded.error)
            return None

        result = decoded.value.model_copy(update={"tokens": tokens})
        logger.info(
            "Summarized %r (%.0fms, %d tokens)", title, (time.monotonic() - start) * 1000, tokens
        )
        return result

    def elaborate(self, title: str, body: str) -> Optional[DigestResult]:
        if not self.enabled:
            logger.error("No Google API key configured. Skipping digest for %r", title)
            return None

        prompt = DIGEST_PROMPT.format(title=title, body=(body or "")[:MAX_INPUT_CHARS])
        try:
            raw, tokens = self._generate(prompt, json_mode=False)
        except Exception:
            logger.error("Digest generation failed for %r", title)
            return None

        decoded = decode_digest(raw)
        if not decoded.ok:
            logger.error("Empty digest for %r", title)
            return None
        return DigestResult(content_summary=decoded.value, tokens=tokens)
