from typing import Iterable, Iterator, List

from eventstream.schemas import Event


def format_frame(event: Event) -> str:
    """
    One event -> one `data: <json>\\n\\n` frame. `data` is left out when absent.
    """
    return f"data: {event.model_dump_json(exclude_none=True)}\n\n"


def _split_lines(buffer: str) -> List[str]:
    # "\r\n", "\r" and "\n" all end a line; a lone trailing "\r" might be half of "\r\n"
    lines: List[str] = []
    start = 0
    i = 0
    while i < len(buffer):
        ch = buffer[i]
        if ch == "\n":
            lines.append(buffer[start:i])
            start = i + 1
        elif ch == "\r":
            if i + 1 == len(buffer):
                break
            lines.append(buffer[start:i])
            if buffer[i + 1] == "\n":
                i += 1
            start = i + 1
        i += 1
    lines.append(buffer[start:])
    return lines


def iter_sse_data(chunks: Iterable[str]) -> Iterator[str]:
    """
    Incremental text/event-stream decoder.

    Yields the joined `data` field of every dispatched frame. Chunks may be
    split anywhere. Comments and other fields (event, id, retry) are ignored.
    An unterminated frame at end of input is not dispatched.
    """
    buffer = ""
    data_lines: List[str] = []

    for chunk in chunks:
        if not chunk:
            continue
        buffer += chunk

        *complete, buffer = _split_lines(buffer)
        for line in complete:
            if line == "":
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
