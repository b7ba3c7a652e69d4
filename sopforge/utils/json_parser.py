import json
import re
from typing import Any, Dict, List, Optional, Union

from sopforge.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_safely(text: Optional[str]) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from generated text, handling common LLM formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading/trailing whitespace or prose around a single object
    - Concatenated JSON objects (e.g., {...}\\n{...})

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON object or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = _FENCE_PATTERN.sub("", text.strip()).strip()

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    objects = _decode_all(cleaned_text)
    if objects:
        if len(objects) > 1:
            LOGGER.info(f"Parsed {len(objects)} concatenated JSON values, merging")
        return _merge_json_objects(objects)

    LOGGER.error("Failed to parse JSON from generated text")
    return None


def _decode_all(text: str) -> List[Any]:
    """Decode every top-level JSON value found in ``text``, skipping noise."""
    decoder = json.JSONDecoder()
    results: List[Any] = []
    idx = 0

    while idx < len(text):
        starts = [pos for pos in (text.find("{", idx), text.find("[", idx)) if pos != -1]
        if not starts:
            break
        start = min(starts)
        try:
            obj, end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            idx = start + 1
            continue
        results.append(obj)
        idx = end

    return results


def _merge_json_objects(objects: List[Any]) -> Union[Dict[str, Any], List[Any]]:
    """Merge a list of parsed JSON values into a single result.

    Dicts are merged key by key (list values are concatenated); lists are
    flattened; mixed input is returned as a list.
    """
    if len(objects) == 1:
        return objects[0]

    if all(isinstance(obj, dict) for obj in objects):
        merged: Dict[str, Any] = {}
        for obj in objects:
            for key, value in obj.items():
                if key in merged and isinstance(merged[key], list) and isinstance(value, list):
                    merged[key] = merged[key] + value
                else:
                    merged[key] = value
        return merged

    flattened: List[Any] = []
    for obj in objects:
        if isinstance(obj, list):
            flattened.extend(obj)
        else:
            flattened.append(obj)
    return flattened
