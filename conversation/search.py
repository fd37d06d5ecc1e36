"""
Web Search Hooks
================

The chat service can enrich a turn with web results. Concrete search
backends live outside this package; they only need to implement
SearchProvider. should_search decides when a message warrants a lookup.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from core.schemas import SearchResult

TECH_KEYWORDS = [
    "react", "vue", "angular", "svelte", "next.js", "nextjs", "nuxt",
    "typescript", "javascript", "python", "rust", "go", "golang", "java",
    "kotlin", "swift", "node", "deno", "bun", "postgres", "postgresql",
    "mysql", "mongodb", "redis", "sqlite", "docker", "kubernetes", "k8s",
    "aws", "gcp", "azure", "terraform", "graphql", "rest api", "grpc",
    "webpack", "vite", "tailwind", "prisma", "drizzle", "supabase", "firebase",
]

TRIGGER_PATTERNS = [
    " vs ", " versus ", "should i use", "best practice", "best way to",
    "how to implement", "latest version", "what is the difference",
    "compare ", "comparison", "recommend", "alternative to", "pros and cons",
    "trade-off", "tradeoff", "which is better",
]

MAX_QUERY_CHARS = 80


class SearchProvider(ABC):
    """Returns ranked snippets for a query. Failures must not break a chat turn."""

    @abstractmethod
    async def search(self, query: str) -> List[SearchResult]:
        pass


def should_search(message: str) -> Optional[str]:
    """
    Return a search query when the message asks for a comparison or
    recommendation about a known technology, else None.
    """
    lower = message.lower()
    if not any(p in lower for p in TRIGGER_PATTERNS):
        return None
    if not any(k in lower for k in TECH_KEYWORDS):
        return None
    return build_search_query(message)


def build_search_query(message: str) -> str:
    comparison = _comparison_query(message.lower())
    if comparison:
        return comparison

    start = 0
    while start < len(message) and not message[start].isalnum():
        start += 1
    end = len(message)
    while end > start and not (message[end - 1].isalnum() or message[end - 1] == "?"):
        end -= 1
    cleaned = message[start:end]

    if len(cleaned) <= MAX_QUERY_CHARS:
        return cleaned
    truncated = cleaned[:MAX_QUERY_CHARS]
    space = truncated.rfind(" ")
    return truncated[:space] if space > 0 else truncated


def _comparison_query(lower: str) -> Optional[str]:
    """'react vs vue' -> 'react vs vue comparison'"""
    for separator in (" vs ", " versus "):
        if separator not in lower:
            continue
        left, right = lower.split(separator, 1)
        left_words, right_words = left.split(), right.split()
        if left_words and right_words:
            a = left_words[-1].strip("?,.!")
            b = right_words[0].strip("?,.!")
            if a and b:
                return f"{a} vs {b} comparison"
    return None


def build_search_context(query: str, results: List[SearchResult]) -> str:
    """System message handing search results to the model."""
    lines = [
        f'Web search results for "{query}" (use them if relevant, cite URLs when you rely on them):',
        "",
    ]
    for i, result in enumerate(results, start=1):
        lines.append(f"{i}. {result.title} ({result.url})")
        lines.append(f"   {result.snippet}")
    return "\n".join(lines)
