"""
HTTP layer for the Document Q&A Bot.
"""
