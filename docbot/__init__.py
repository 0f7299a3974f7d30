"""
Retrieval and relevance-routing package for the Document Q&A Bot.
"""

from docbot.pipeline import DocumentQAPipeline

__all__ = ["DocumentQAPipeline"]
