"""
Structured outputs expected back from the text generator
"""
from pydantic import BaseModel, ConfigDict, Field


class BiasAnalysis(BaseModel):
    """
    Four-facet framing breakdown for a cluster.
    Serialized with the camelCase keys the model is prompted with.
    """
    model_config = ConfigDict(populate_by_name=True)

    left_emphasizes: str = Field(..., alias="leftEmphasizes")
    right_emphasizes: str = Field(..., alias="rightEmphasizes")
    consistent_across_all: str = Field(..., alias="consistentAcrossAll")
    whats_missing: str = Field(..., alias="whatsMissing")


PENDING_ANALYSIS = "Analysis pending."


def placeholder_analysis() -> BiasAnalysis:
    return BiasAnalysis(
        left_emphasizes=PENDING_ANALYSIS,
        right_emphasizes=PENDING_ANALYSIS,
        consistent_across_all=PENDING_ANALYSIS,
        whats_missing=PENDING_ANALYSIS,
    )
