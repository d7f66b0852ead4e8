"""
Ragline - Context Assembler
============================
Composes retrieved units into the context block of the user prompt.

The output is a pure function of the input sequence: units keep their
given order and every entry uses ``CONTEXT_ENTRY_TEMPLATE``.  An empty
input returns ``EMPTY_CONTEXT``, which the synthesizer treats as
"no relevant context".
"""

from __future__ import annotations

from typing import Sequence

from ragline.config.prompt_templates import CONTEXT_ENTRY_TEMPLATE, CONTEXT_SEPARATOR
from ragline.src.core.models import EMPTY_CONTEXT, AssembledContext, RetrievedUnit


def assemble(units: Sequence[RetrievedUnit]) -> AssembledContext:
    """``[A, B]`` → ``"Context:\\nA\\n\\nContext:\\nB\\n"``."""
    if not units:
        return EMPTY_CONTEXT
    text = CONTEXT_SEPARATOR.join(CONTEXT_ENTRY_TEMPLATE.format(text=unit.chunk_text) for unit in units)
    return AssembledContext(text=text, units=tuple(units))
