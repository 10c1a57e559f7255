"""
Text normalization shared by clustering, keyword extraction and topic naming
"""
import re
from collections import Counter
from typing import FrozenSet, List

STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had", "her",
    "was", "one", "our", "out", "has", "have", "been", "from", "this", "that",
    "with", "they", "will", "each", "make", "like", "than", "them", "then",
    "what", "when", "who", "how", "said", "its", "also", "into", "just",
    "about", "more", "some", "very", "would", "could", "should", "their",
    "which", "there", "other", "were", "after", "being", "those", "does",
    "did", "get", "got", "may", "over", "only", "new", "his", "she", "say",
    "says", "news", "article", "report", "here", "now", "way", "still",
})

KEYWORD_STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "was", "one", "our", "has", "have", "been", "from", "this", "that",
    "with", "they", "will", "each", "make", "like", "than", "them", "then",
    "what", "when", "who", "how", "said", "its", "also", "into", "just",
    "about", "more", "some", "very", "would", "could", "should", "their",
    "which", "there", "other", "were", "after", "being", "those", "does",
    "here", "says", "news", "over", "only", "still",
})

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_LEADING_LABEL = re.compile(r"^(breaking|exclusive|update|opinion|analysis):\s*", re.IGNORECASE)
_OUTLET_SUFFIX = re.compile(r"\s+[-–—|]\s+.*$")
_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")

MAX_TOPIC_LENGTH = 120
MAX_SLUG_LENGTH = 80
MAX_KEYWORDS = 10


def _words(text: str) -> List[str]:
    return _NON_ALNUM.sub(" ", (text or "").lower()).split()


def tokenize(text: str) -> List[str]:
    """Meaningful tokens: lowercase alphanumerics longer than 2 chars, no stopwords."""
    return [w for w in _words(text) if len(w) > 2 and w not in STOP_WORDS]


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """
    Most frequent terms longer than 3 chars.
    Equal counts keep the order the terms first appear in.
    """
    counts = Counter(
        w for w in _words(text)
        if len(w) > 3 and w not in KEYWORD_STOP_WORDS
    )
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [word for word, _ in ranked[:limit]]


def extract_topic(title: str) -> str:
    """
    Headline without a leading "BREAKING:"-style label or a trailing
    " - Outlet" suffix.
    """
    topic = _LEADING_LABEL.sub("", title or "")
    topic = _OUTLET_SUFFIX.sub("", topic)
    return topic.strip()[:MAX_TOPIC_LENGTH]


def slugify(text: str) -> str:
    slug = _SLUG_STRIP.sub("", (text or "").lower())
    slug = _WHITESPACE.sub("-", slug)
    return slug[:MAX_SLUG_LENGTH]
