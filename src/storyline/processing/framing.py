"""
Media framing (bias) analysis for a cluster
"""
import logging
import re
from typing import Dict, List, Sequence

from pydantic import ValidationError

from storyline.core.entities import ClusterMember, bias_bucket
from storyline.core.schemas import BiasAnalysis, placeholder_analysis
from storyline.services.llm import OllamaClient

logger = logging.getLogger(__name__)

TEXTS_PER_BUCKET = 3
SNIPPET_LENGTH = 150

FRAMING_SYSTEM = "You output only valid JSON. No markdown. No explanation."


def _extract_json(content: str) -> str:
    """
    Extract a JSON object from an LLM response, stripping markdown code
    blocks and surrounding prose.
    """
    content = content.strip()

    pattern = r'^```(?:json)?\s*\n?(.*?)\n?```$'
    match = re.match(pattern, content, re.DOTALL)
    if match:
        content = match.group(1).strip()

    object_match = re.search(r'\{.*\}', content, re.DOTALL)
    if object_match:
        return object_match.group(0)

    return content


def partition_by_bias(members: Sequence[ClusterMember]) -> Dict[str, List[str]]:
    """
    "title: snippet" texts grouped into left / center / right buckets.
    International coverage is not part of the framing comparison.
    """
    buckets: Dict[str, List[str]] = {"left": [], "center": [], "right": []}
    for member in members:
        bucket = bias_bucket(member.bias_label)
        if bucket in buckets:
            snippet = (member.description or "")[:SNIPPET_LENGTH]
            buckets[bucket].append(f"{member.title}: {snippet}")
    return buckets


def parse_bias_analysis(content: str) -> BiasAnalysis:
    """Tolerant parse; anything malformed becomes the placeholder."""
    try:
        return BiasAnalysis.model_validate_json(_extract_json(content))
    except ValidationError as e:
        logger.warning(f"Malformed bias analysis, using placeholder: {e.error_count()} errors")
        logger.debug(f"Raw content: {content[:500]}")
        return placeholder_analysis()


def _coverage(texts: Sequence[str]) -> str:
    return "\n".join(texts[:TEXTS_PER_BUCKET]) or "No coverage"


async def analyze_bias(
    *,
    llm: OllamaClient,
    topic: str,
    left: Sequence[str],
    center: Sequence[str],
    right: Sequence[str],
) -> BiasAnalysis:
    """
    Service failures propagate to the caller; only a malformed response
    degrades to the placeholder.
    """
    prompt = f"""Analyze media framing for this news story: "{topic}"

Left-leaning coverage:
{_coverage(left)}

Center coverage:
{_coverage(center)}

Right-leaning coverage:
{_coverage(right)}

Respond ONLY with valid JSON (no markdown, no explanation):
{{"leftEmphasizes":"1 sentence","rightEmphasizes":"1 sentence","consistentAcrossAll":"1 sentence","whatsMissing":"1 sentence"}}"""

    response = await llm.chat(prompt, system_prompt=FRAMING_SYSTEM)
    return parse_bias_analysis(response)
