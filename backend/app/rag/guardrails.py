"""Out-of-scope question guardrail.

A heuristic pre-filter for clearly off-topic questions (live weather, current
time or news, market prices, navigation). Patterns are anchored at the start
of the question so document questions such as "when was the weather policy
updated?" pass through.
"""

import re

OUT_OF_SCOPE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        # Weather and forecast
        r"^what(?:'s|s| is)?\s+(?:the\s+)?weather\b",
        r"^(?:will\s+it\s+)?rain\b",
        r"^(?:temperature|forecast|snow|wind)\b",
        # Current time, date and news
        r"^what(?:'s|s| is)?\s+(?:the\s+)?current\s+(?:time|date|news|weather)",
        r"^what(?:'s|s| is)?\s+(?:today|tomorrow|next week|on the news)",
        r"^what\s+time\s+is\s+it\b",
        # Live market data
        r"^(?:what|where|who|how)\s+(?:are|is)\s+(?:the\s+)?(?:stock|crypto|price|exchange)",
        r"^what(?:'s|s| is)?\s+(?:trending|the\s+latest\s+(?:news|score|headline))",
        # Navigation
        r"^(?:how\s+do\s+i\s+)?get\s+(?:to|directions|a\s+ride)",
        r"^what(?:'s|s| is)\s+near\s+me\b",
    )
)


def normalize_question(question: str) -> str:
    """Lowercase, trim and fold typographic apostrophes."""
    return question.replace("’", "'").replace("‘", "'").strip().lower()


def is_out_of_scope_question(question: str) -> bool:
    """True when the question matches a known off-topic intent."""
    normalized = normalize_question(question)
    return any(pattern.search(normalized) for pattern in OUT_OF_SCOPE_PATTERNS)
