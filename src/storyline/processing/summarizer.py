from dataclasses import dataclass
from typing import List, Optional, Sequence

from storyline.services.llm import OllamaClient

MAX_SUMMARY_ARTICLES = 10
MAX_DIGEST_TOPICS = 10

CLUSTER_SUMMARY_SYSTEM = "You are a concise news summarizer. Output only the summary, nothing else."
DIGEST_SYSTEM = "You are a news digest writer. Write naturally, concisely. Include key numbers and facts."


@dataclass(frozen=True)
class DigestTopic:
    topic: str
    summary: Optional[str]
    article_count: int


async def summarize_cluster(
    *,
    llm: OllamaClient,
    headlines: Sequence[str],
    descriptions: Sequence[str],
) -> str:
    """Short factual synthesis across a cluster's headlines and snippets."""
    lines = []
    for i, headline in enumerate(headlines[:MAX_SUMMARY_ARTICLES]):
        snippet = (descriptions[i] if i < len(descriptions) else "") or ""
        lines.append(f"- {headline}: {snippet[:200]}")

    prompt = f"""Summarize these related news articles into 2-3 sentences (max 60 words). Be factual and concise. No opinions.

Articles:
{chr(10).join(lines)}

Summary:"""

    return (await llm.chat(prompt, system_prompt=CLUSTER_SUMMARY_SYSTEM)).strip()


async def compose_digest(*, llm: OllamaClient, topics: Sequence[DigestTopic]) -> str:
    topic_list = "\n".join(
        f"- {t.topic} ({t.article_count} sources): {t.summary or t.topic}"
        for t in topics[:MAX_DIGEST_TOPICS]
    )

    prompt = f"""Write a 150-word daily news digest from these top stories. Conversational but factual. Start with "Good morning." End with a brief closing line.

Today's top stories:
{topic_list}

Digest:"""

    return (await llm.chat(prompt, system_prompt=DIGEST_SYSTEM)).strip()


def template_digest(topics: Sequence[DigestTopic]) -> str:
    """Deterministic digest used when no text generator is available."""
    entries: List[str] = []
    for i, t in enumerate(topics, start=1):
        line = f"{i}. {t.topic or 'Developing story'} ({t.article_count} sources)"
        if t.summary:
            line += f": {t.summary}"
        entries.append(line)

    return (
        "Today's top stories:\n\n"
        + "\n\n".join(entries)
        + f"\n\n{len(topics)} stories tracked today."
    )
