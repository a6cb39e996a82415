from __future__ import annotations

import re
from typing import Optional

from .errors import GenerationError

_FENCE_RE = re.compile(r"```(?:[\w+#.-]*[ \t]*\r?\n)?(.*?)```", re.S)


def extract_code(reply: Optional[str]) -> str:
    """Return the first fenced code block of a model reply, or the whole reply."""

    text = reply or ""
    match = _FENCE_RE.search(text)
    code = match.group(1).strip() if match else text.strip()
    if not code:
        raise GenerationError("Model reply contained no extractable source.", reply=reply)
    return code
