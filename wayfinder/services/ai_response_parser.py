import logging
import re
from json import JSONDecodeError, JSONDecoder
from typing import Any

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_INVALID_ESCAPE_RE = re.compile(r'\\([^"\\/bfnrtu])')
_FORBIDDEN_KEYS = {
    "thought",
    "thoughts",
    "thought_signature",
    "thought-signature",
    "thoughtSignature",
}
_CONTROL_CHAR_REPLACEMENTS = {
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}
_SMART_QUOTES = {
    "\u201c": '"',
    "\u201d": '"',
}


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    match = _CODE_FENCE_RE.match(stripped)
    return match.group(1) if match else stripped


def _extract_json_block(text: str) -> str:
    """Cut away prose the model wrapped around the first JSON array or object."""
    starts = [index for index in (text.find("["), text.find("{")) if index != -1]
    if not starts:
        return text
    start = min(starts)
    closing = "]" if text[start] == "[" else "}"
    end = text.rfind(closing)
    if end <= start:
        return text
    return text[start:end + 1]


def _escape_invalid_backslashes(text: str) -> str:
    def _replace(match: re.Match) -> str:
        return "\\\\" + match.group(1)

    return _INVALID_ESCAPE_RE.sub(_replace, text)


def _normalize_characters(text: str) -> str:
    for needle, replacement in _CONTROL_CHAR_REPLACEMENTS.items():
        text = text.replace(needle, replacement)
    return text


def _replace_smart_quotes(text: str) -> str:
    for needle, replacement in _SMART_QUOTES.items():
        text = text.replace(needle, replacement)
    return text


def _generate_candidates(base_text: str) -> list[str]:
    candidates: list[str] = []

    def _add(candidate: str):
        candidate = candidate.strip()
        if candidate and candidate not in candidates:
            candidates.append(candidate)

    block = _extract_json_block(base_text)
    _add(base_text)
    _add(block)
    _add(_escape_invalid_backslashes(block))
    _add(_replace_smart_quotes(_escape_invalid_backslashes(block)))
    return candidates


def _remove_forbidden_fields(payload: Any):
    if isinstance(payload, dict):
        return {
            key: _remove_forbidden_fields(value)
            for key, value in payload.items()
            if key not in _FORBIDDEN_KEYS
        }
    if isinstance(payload, list):
        return [_remove_forbidden_fields(item) for item in payload]
    return payload


def parse_ai_response_text(raw_text: str) -> Any:
    """
    Sanitize and parse the JSON (object or array) contained in raw model text.
    """
    cleaned = _strip_code_fence(raw_text or "")
    if not cleaned.strip():
        raise JSONDecodeError("AI response payload is empty", raw_text or "", 0)
    cleaned = cleaned.lstrip("\ufeff")
    cleaned = _normalize_characters(cleaned)

    decoders = (JSONDecoder(), JSONDecoder(strict=False))

    last_error: JSONDecodeError | None = None
    for candidate in _generate_candidates(cleaned):
        for decoder in decoders:
            try:
                parsed = decoder.decode(candidate)
                return _remove_forbidden_fields(parsed)
            except JSONDecodeError as exc:
                last_error = exc
                continue

    logger.error("Failed to parse AI response after sanitization attempts: %s", last_error)
    raise last_error if last_error else JSONDecodeError("Unable to parse AI response", raw_text, 0)
