"""
Pipeline exceptions.

Orchestrators catch these at the item, source or cluster boundary; none of
them are meant to escape a stage run.
"""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class DuplicateArticleError(PipelineError):
    """An article with the same link is already stored."""

    def __init__(self, link: str):
        super().__init__(f"Article already stored: {link}")
        self.link = link


class CandidateQueryError(PipelineError):
    """Looking up recent clustering candidates failed."""


class TextGenerationError(PipelineError):
    """The text generator could not produce a response."""
