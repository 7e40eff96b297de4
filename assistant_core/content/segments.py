"""Split message text into plain-text and fenced code segments."""

import re
from dataclasses import dataclass
from typing import List, Literal, Optional

SegmentKind = Literal["text", "code"]

DEFAULT_LANGUAGE = "plaintext"

# ```language\ncode```
CODE_FENCE = re.compile(r"```(\w+)?\n([\s\S]*?)```")


@dataclass(frozen=True)
class Segment:
    kind: SegmentKind
    content: str
    language: Optional[str] = None

    @property
    def is_code(self) -> bool:
        return self.kind == "code"


def split_segments(text: str) -> List[Segment]:
    """Return the ordered segments of ``text``.

    Code blocks keep their language tag (``plaintext`` when absent) and have
    surrounding whitespace stripped; text between blocks is kept verbatim.
    Text without any fenced block comes back as a single text segment.
    """

    segments: List[Segment] = []
    last = 0
    for match in CODE_FENCE.finditer(text):
        if match.start() > last:
            segments.append(Segment(kind="text", content=text[last:match.start()]))
        segments.append(
            Segment(
                kind="code",
                content=match.group(2).strip(),
                language=match.group(1) or DEFAULT_LANGUAGE,
            )
        )
        last = match.end()
    if last < len(text):
        segments.append(Segment(kind="text", content=text[last:]))
    if not segments:
        return [Segment(kind="text", content=text)]
    return segments


def has_code_blocks(text: str) -> bool:
    return CODE_FENCE.search(text) is not None
