# JSON-in-prose extraction for model replies
import json
from typing import Any, Dict, List, Union


class ParseError(ValueError):
    """Model reply held no usable JSON object."""


def content_to_text(content: Union[str, List[Any], None]) -> str:
    """Flatten langchain message content (str or Gemini block list) to text."""
    if content is None:
        return ""
    if isinstance(content, list):
        # Gemini sends [{'type': 'text', 'text': '...'}] blocks
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return str(content)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the span from the first "{" to the last "}" of ``text``.

    Replies may wrap the object in prose or markdown fences; anything outside
    the span is ignored. Raises ParseError when there is no such span, or the
    span is not valid JSON.
    """
    start = text.find("{") if text else -1
    end = text.rfind("}") if text else -1
    if start == -1 or end < start:
        raise ParseError("No JSON object found in model reply")

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in model reply: {e}") from e

    return data
