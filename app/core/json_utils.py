"""LLM 응답 텍스트에서 JSON을 복구하는 유틸리티."""

from __future__ import annotations

import json
import re
from typing import Any

_JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


def strip_code_fence(text: str) -> str:
    """코드 펜스를 제거합니다."""
    content = (text or "").strip()
    if content.startswith("```"):
        parts = content.split("```")
        if len(parts) > 1:
            content = parts[1].strip()
            if content.startswith("json"):
                content = content[4:].strip()
    return content.strip()


def extract_json_object(text: str) -> dict[str, Any] | None:
    """LLM 응답 문자열에서 JSON 객체를 최대한 복구해 파싱합니다.

    앞뒤에 설명 문장이 붙은 경우 첫 `{`부터 마지막 `}`까지를 다시 시도한다.
    파싱 한도를 넘는 깊은 중첩은 복구하지 않고 None을 돌려준다.
    """
    content = strip_code_fence(text)
    if not content:
        return None

    try:
        parsed = json.loads(content)
        return parsed if isinstance(parsed, dict) else None
    except RecursionError:
        return None
    except ValueError:
        pass

    match = _JSON_OBJECT_PATTERN.search(content)
    if not match:
        return None

    try:
        parsed = json.loads(match.group(0))
    except (ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None
