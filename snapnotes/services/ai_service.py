"""Study tools generation service.

Composes the task prompt for an action and sends it to the configured text
provider. ``run_study_tool`` is what the HTTP endpoint calls;
``LocalStudyTools`` and ``RemoteStudyTools`` are the async adapters a
``StudySession`` uses to reach it.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

import requests

from snapnotes.errors import GenerationError, StudyToolError

try:
    from openai import OpenAI
except Exception:
    OpenAI = None

logger = logging.getLogger(__name__)

ACTIONS = ("qa", "lesson", "flashcards", "summarize", "quiz")

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}

QA_SYSTEM = """You are an expert Q&A assistant. Answer the user's question ONLY using the provided text. If the answer is not in the text, state clearly that the information cannot be found in the document.

--- PROVIDED DOCUMENT TEXT ---
{text}
--- END OF DOCUMENT TEXT ---"""

LESSON_PROMPT = """Create a detailed lesson plan from this text. Include:
1. Learning Objectives (3-5 key points)
2. Main Concepts (organized by topics)
3. Key Terminology (definitions)
4. Summary
5. Practice Questions (3-5 questions)

Text:
{text}"""

FLASHCARDS_PROMPT = """Create 8-12 flashcards from this text. Format each as:
FRONT: [Question or term]
BACK: [Answer or definition]

Make them concise and focused on key concepts.

Text:
{text}"""

SUMMARIZE_PROMPT = """Create a comprehensive summary of this text. Include:
1. Main Ideas (3-5 bullet points)
2. Key Details
3. Important Conclusions

Keep it clear and organized.

Text:
{text}"""

QUIZ_PROMPT = """Create a 10-question quiz from this text. Format each question as:

Q[number]: [Question]
A) [Option A]
B) [Option B]
C) [Option C]
D) [Option D]
Correct Answer: [A/B/C/D]
Explanation: [Brief explanation]

Mix question types: factual recall, comprehension, and application.

Text:
{text}"""

TASK_PROMPTS = {
    "lesson": (
        "You are an expert educator. Create a structured, comprehensive lesson from the provided text.",
        LESSON_PROMPT,
    ),
    "flashcards": (
        "You are an expert at creating educational flashcards. Extract key concepts and create clear, concise flashcards.",
        FLASHCARDS_PROMPT,
    ),
    "summarize": (
        "You are an expert at creating clear, concise summaries while preserving key information.",
        SUMMARIZE_PROMPT,
    ),
    "quiz": (
        "You are an expert at creating engaging educational quizzes.",
        QUIZ_PROMPT,
    ),
}


def build_prompt(text: str, action: str, question: Optional[str] = None) -> Tuple[str, str]:
    """Returns (system_prompt, user_prompt) for an action."""
    if action == "qa":
        if not question:
            raise StudyToolError("Question is required for Q&A action")
        return QA_SYSTEM.format(text=text), question
    if action not in TASK_PROMPTS:
        raise StudyToolError("Invalid action")
    system, user = TASK_PROMPTS[action]
    return system, user.format(text=text)


def _cfg(cfg, name: str, default: Any = "") -> Any:
    """Read a setting from a Flask config mapping or a config class."""
    if cfg is None:
        return default
    if isinstance(cfg, Mapping):
        return cfg.get(name, default)
    return getattr(cfg, name, default)


def provider_name(cfg) -> str:
    return (_cfg(cfg, "GENERATION_PROVIDER", "gemini") or "gemini").strip().lower()


def provider_ready(cfg) -> Tuple[bool, str]:
    provider = provider_name(cfg)
    if provider == "openai":
        if OpenAI is None:
            return False, "OpenAI SDK not installed"
        if not (_cfg(cfg, "OPENAI_API_KEY") or "").strip():
            return False, "OPENAI_API_KEY is not configured"
        return True, ""
    if provider != "gemini":
        return False, f"Unknown generation provider: {provider}"
    if not (_cfg(cfg, "GEMINI_API_KEY") or "").strip():
        return False, "GEMINI_API_KEY is not configured"
    return True, ""


def call_gemini(system_prompt: str, user_prompt: str, cfg) -> str:
    key = _cfg(cfg, "GEMINI_API_KEY").strip()
    base = _cfg(cfg, "GEMINI_API_BASE").rstrip("/")
    url = f"{base}/{_cfg(cfg, 'GEMINI_MODEL')}:generateContent"
    body = {
        "contents": [
            {
                "parts": [
                    {"text": system_prompt},
                    {"text": user_prompt},
                ]
            }
        ],
        "generationConfig": dict(GENERATION_CONFIG),
    }
    try:
        r = requests.post(
            url,
            params={"key": key},
            json=body,
            headers={"Content-Type": "application/json"},
            timeout=_cfg(cfg, "GENERATION_TIMEOUT", 60),
        )
    except requests.RequestException as e:
        raise StudyToolError(f"Gemini request failed: {type(e).__name__}: {e}") from e

    if not r.ok:
        logger.error("Gemini API error: %s %s", r.status_code, r.text[:500])
        raise StudyToolError(f"Gemini API error: {r.status_code}")

    try:
        data = r.json() or {}
    except ValueError:
        data = {}
    result = ""
    try:
        result = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        result = ""
    if not result:
        raise StudyToolError("No response from Gemini API")
    return result


def call_openai(system_prompt: str, user_prompt: str, cfg) -> str:
    if OpenAI is None:
        raise StudyToolError("OpenAI SDK not installed")
    client = OpenAI(api_key=_cfg(cfg, "OPENAI_API_KEY").strip(), timeout=_cfg(cfg, "GENERATION_TIMEOUT", 60))
    try:
        res = client.chat.completions.create(
            model=_cfg(cfg, "OPENAI_MODEL") or "gpt-4.1",
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=GENERATION_CONFIG["temperature"],
            top_p=GENERATION_CONFIG["topP"],
            max_tokens=GENERATION_CONFIG["maxOutputTokens"],
        )
    except Exception as e:
        raise StudyToolError(f"OpenAI request failed: {type(e).__name__}: {e}") from e
    result = ""
    if res.choices:
        result = res.choices[0].message.content or ""
    if not result:
        raise StudyToolError("No response from OpenAI API")
    return result


PROVIDERS = {
    "gemini": call_gemini,
    "openai": call_openai,
}


def run_study_tool(text: str, action: str, question: Optional[str] = None, cfg=None) -> str:
    """Validate a request, call the provider once and return its text verbatim."""
    if not text:
        raise StudyToolError("Text is required")
    ok, msg = provider_ready(cfg)
    if not ok:
        raise StudyToolError(msg)
    system_prompt, user_prompt = build_prompt(text, action, question)

    logger.info("Processing %s request", action)
    return PROVIDERS[provider_name(cfg)](system_prompt, user_prompt, cfg)


class LocalStudyTools:
    """Calls the provider in-process."""

    def __init__(self, cfg):
        self.cfg = cfg

    async def __call__(self, document: str, task: str, question: Optional[str] = None) -> str:
        try:
            return await asyncio.to_thread(run_study_tool, document, task, question, self.cfg)
        except StudyToolError as e:
            raise GenerationError(e.message) from e


class RemoteStudyTools:
    """Posts to a deployed ``/ai-study-tools`` endpoint."""

    def __init__(self, url: str, timeout: int = 60, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg) -> "RemoteStudyTools":
        return cls(_cfg(cfg, "STUDY_TOOLS_URL"), timeout=_cfg(cfg, "GENERATION_TIMEOUT", 60))

    def _post(self, payload: Dict[str, Any]) -> str:
        try:
            r = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise GenerationError(f"Network error: {e}") from e
        try:
            data = r.json() or {}
        except ValueError:
            data = {}
        if r.status_code != 200:
            raise GenerationError(data.get("error") or f"Study tools error: {r.status_code}")
        result = data.get("result")
        if not result:
            raise GenerationError("No response from study tools service")
        return result

    async def __call__(self, document: str, task: str, question: Optional[str] = None) -> str:
        payload: Dict[str, Any] = {"text": document, "action": task}
        if question is not None:
            payload["question"] = question
        return await asyncio.to_thread(self._post, payload)
