"""Prompt-based response framing for the interactive DBMS protocol.

The DBMS has no message framing. A response is considered complete once the
accumulated output ends with a fresh prompt line such as ``\\nmydb> ``. This is
a heuristic over unstructured text with known limitations:

* a result row that itself ends in ``word> `` at a chunk boundary completes
  the response early;
* context names containing spaces or non-word characters never match, so such
  commands only resolve by inactivity timeout.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

PROMPT_PATTERN = re.compile(r"(?:\n|\r\n)\w+> \Z", re.ASCII)
ERROR_MARKER = "error"


@dataclass(frozen=True)
class PromptMatch:
    """Outcome of one framing attempt over a response buffer."""

    complete: bool
    body: str = ""
    is_error: bool = False


INCOMPLETE = PromptMatch(complete=False)


def try_extract(buffer: str, command: str) -> PromptMatch:
    """Return the response body when ``buffer`` ends with a prompt line."""
    match = PROMPT_PATTERN.search(buffer)
    if match is None:
        return INCOMPLETE
    body = buffer[: match.start()]
    if command:
        body = body.replace(command, "", 1)
    body = body.strip()
    return PromptMatch(
        complete=True,
        body=body,
        is_error=ERROR_MARKER in body.lower(),
    )
