"""
Ragline - Prompt Templates
===========================
Centralised prompt management for the answer synthesizer.  All prompt
text lives here so it can be versioned and reviewed independently of
application logic.

The context block format and the user message layout are part of the
prompt surface: changing them changes model output.  Golden tests in
``tests/test_context.py`` and ``tests/test_rag_engine.py`` pin them.

Exports
-------
SYSTEM_PROMPT, USER_PROMPT_TEMPLATE, CONTEXT_ENTRY_TEMPLATE,
CONTEXT_SEPARATOR, NO_MATCHES_RESPONSE.
"""

# ══════════════════════════════════════════════════════════════════════
#  SYSTEM INSTRUCTION
# ══════════════════════════════════════════════════════════════════════

SYSTEM_PROMPT: str = """You are a helpful assistant that answers questions using only the context provided by the user.

Rules:
1. Use ONLY the information in the supplied context. Do not use prior knowledge.
2. If the context does not contain the answer, say that the provided context does not contain enough information to answer.
3. Do not invent facts, names, numbers, or sources.
4. Answer concisely and directly."""


# ══════════════════════════════════════════════════════════════════════
#  USER MESSAGE
# ══════════════════════════════════════════════════════════════════════
# Assembled context first, then the literal question.

USER_PROMPT_TEMPLATE: str = """{context}
Question: {question}"""


# ══════════════════════════════════════════════════════════════════════
#  CONTEXT ASSEMBLY
# ══════════════════════════════════════════════════════════════════════
# Each entry ends with a newline; entries are joined by one more newline,
# which leaves exactly one blank line between entries.

CONTEXT_ENTRY_TEMPLATE: str = "Context:\n{text}\n"
CONTEXT_SEPARATOR: str = "\n"


# ══════════════════════════════════════════════════════════════════════
#  FIXED RESPONSES
# ══════════════════════════════════════════════════════════════════════

NO_MATCHES_RESPONSE: str = "No matches found."
