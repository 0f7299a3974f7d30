"""
Flask web server for the Document Q&A Bot.
Exposes the chat, status and document-inspection endpoints as JSON.
"""

import logging

from flask import Flask, jsonify, request

from docbot.errors import CompletionUnavailable, EmbeddingUnavailable, PipelineNotReady
from docbot.llm_backend import parse_history

logger = logging.getLogger(__name__)


def create_app(pipeline):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    @app.route("/")
    def index():
        """Describe the API."""
        return jsonify({
            "name": "Document-Based Chatbot API",
            "status": "running",
            "endpoints": {
                "health": "/health",
                "status": "/api/status",
                "chat": "POST /api/chat",
                "documents": "/api/documents",
            },
        })

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "message": "Chatbot backend is running"})

    @app.route("/api/chat", methods=["POST"])
    def chat():
        """
        Chat endpoint.
        Request:  {"message": "...", "conversationHistory": [{"role": "user", "content": "..."}]}
        Response: {"response": "...", "sources": [...], "tier": "...", "bestSimilarity": 0.xx, ...}
        """
        data = request.get_json(silent=True)

        if not data or not isinstance(data.get("message"), str):
            return jsonify({"error": "Message is required"}), 400

        message = data["message"].strip()
        if not message:
            return jsonify({"error": "Message cannot be empty"}), 400

        history = parse_history(data.get("conversationHistory"))

        try:
            pipeline.initialize()
            return jsonify(pipeline.ask(message, history))
        except (EmbeddingUnavailable, PipelineNotReady) as e:
            logger.error("Retrieval unavailable: %s", e)
            return jsonify({
                "error": "Retrieval unavailable",
                "details": str(e),
                "offline": True,
            }), 503
        except CompletionUnavailable as e:
            logger.error("Completion unavailable: %s", e)
            return jsonify({"error": "Language model unavailable", "details": str(e)}), 503
        except Exception as e:
            logger.exception("Chat endpoint error")
            return jsonify({
                "error": "Failed to process chat message",
                "details": str(e),
            }), 500

    @app.route("/api/status", methods=["GET"])
    def status():
        """Return pipeline statistics."""
        try:
            return jsonify({"status": "running", **pipeline.get_stats()})
        except Exception as e:
            logger.exception("Status endpoint error")
            return jsonify({"status": "error", "error": str(e)}), 500

    @app.route("/api/documents", methods=["GET"])
    def documents():
        """List indexed chunks, including those without embeddings."""
        try:
            pipeline.initialize()
            chunks = pipeline.document_chunks()
            return jsonify({"totalChunks": len(chunks), "chunks": chunks})
        except PipelineNotReady as e:
            return jsonify({"error": "Retrieval unavailable", "details": str(e)}), 503

    return app
