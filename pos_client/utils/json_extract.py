"""
Tolerant JSON decoding for backend responses.

The PHP endpoints sometimes wrap their JSON in HTML error pages or prefix it
with stray warnings. We locate the first '{' or '[' and scan forward for its
balanced closing bracket, ignoring brackets that appear inside strings.
"""
import json
from typing import Any, Optional

_CLOSERS = {'{': '}', '[': ']'}


def extract_json_text(body: str) -> Optional[str]:
    """Return the first balanced JSON object/array embedded in body, if any."""
    if not body:
        return None

    starts = [i for i in (body.find('{'), body.find('[')) if i != -1]
    if not starts:
        return None
    start = min(starts)

    expected = []
    in_string = False
    escaped = False
    for index in range(start, len(body)):
        ch = body[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            expected.append(_CLOSERS[ch])
        elif ch in ('}', ']'):
            if not expected or ch != expected[-1]:
                return None
            expected.pop()
            if not expected:
                return body[start:index + 1]
    return None


def parse_json_body(body: str) -> Any:
    """
    Decode a response body, falling back to the embedded-JSON scan.

    Raises:
        ValueError: if no parseable JSON can be found.
    """
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        pass

    fragment = extract_json_text(body or '')
    if fragment is None:
        raise ValueError('No JSON document found in response body')
    return json.loads(fragment)
