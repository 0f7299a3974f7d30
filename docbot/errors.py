"""
Exception types for the Document Q&A Bot.
"""


class DocbotError(Exception):
    """Base exception for the Document Q&A Bot."""

    pass


class EmbeddingUnavailable(DocbotError):
    """The embedding model could not be reached or returned malformed output."""

    pass


class DimensionMismatch(DocbotError):
    """Two embedding vectors of different length were compared."""

    pass


class WebSearchFailure(DocbotError):
    """The web search provider failed. Always recovered by the router."""

    pass


class CompletionUnavailable(DocbotError):
    """The language model could not produce a completion."""

    pass


class PipelineNotReady(DocbotError):
    """The pipeline has not finished (or failed) its initialization."""

    pass
