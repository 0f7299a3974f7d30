"""
Prompt templates for the Document Q&A Bot.
Designed for grounded answering with conversation memory and a fixed refusal.
"""

from typing import Sequence

SYSTEM_PROMPT = """You are a helpful assistant that answers questions based on the provided document context.

Your job is to extract and provide information from the context below to answer the user's question.

STRICT INSTRUCTIONS:
1. READ the context carefully and extract relevant information to answer the question
2. If the context contains information that answers the question, provide a direct answer using that information
3. DO NOT say you cannot answer if the information is present in the context
4. If the context includes WEB SEARCH RESULTS, prefer the document context and use web results only to fill gaps, naming the web source
5. Only respond with "{refusal_text}" if the question is about completely unrelated topics
6. Use the conversation history to understand context and references (like "that policy", "tell me more", "what about X")
7. If the user refers to something mentioned earlier in the conversation, use that context"""

CONVERSATION_PROMPT_TEMPLATE = """{system_prompt}

Context:
{context}
{history}
Current User Question: {question}

Instructions: Look through the context and conversation history above to provide a helpful answer. Be direct and specific, and use conversation context to understand references."""


def format_history(history: Sequence) -> str:
    """Render prior turns as 'User:' / 'Assistant:' lines."""
    if not history:
        return ""

    lines = ["", "Previous Conversation:"]
    for msg in history:
        role = "User" if msg.role == "user" else "Assistant"
        lines.append(f"{role}: {msg.content}")
    lines.append("")
    return "\n".join(lines)


def build_conversation_prompt(
    question: str,
    context: str,
    history: Sequence,
    refusal_text: str,
) -> str:
    """Build the full prompt with instructions, context, history, and question."""
    return CONVERSATION_PROMPT_TEMPLATE.format(
        system_prompt=SYSTEM_PROMPT.format(refusal_text=refusal_text),
        context=context,
        history=format_history(history),
        question=question,
    )
