import json
from typing import Any, AsyncIterator, Dict, List

from graphrag_core.errors import DecodeError

# Server-push framing (text/event-stream): events end with a blank line,
# the payload is carried by one or more "data:" lines.

def format_sse_event(payload: Dict[str, Any]) -> str:
    """Frames one JSON payload as a server-push event."""
    return f"data: {json.dumps(payload)}\n\n"

async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """
    Consumes raw text lines from a push channel and yields the data of each
    complete event. Comments and the event/id/retry fields are skipped.
    """
    data_lines: List[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)

    # A server may end the stream without the trailing blank line
    if data_lines:
        yield "\n".join(data_lines)

def decode_event_data(data: str) -> Dict[str, Any]:
    """Parses the JSON body of one push message."""
    try:
        decoded = json.loads(data)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Stream message is not valid JSON: {e.msg}", raw=data) from e
    if not isinstance(decoded, dict):
        raise DecodeError("Stream message is not a JSON object", raw=data)
    return decoded
