"""Quart application exposing notes ingestion and retrieval."""
import asyncio

from quart import Quart, request, jsonify
import structlog

from notesrag import config
from notesrag.errors import EmbeddingServiceError, SourceStreamError, StorageWriteError
from notesrag.llm_client import ollama_client
from notesrag.logging_setup import configure_logging
from notesrag.rag import ingest
from notesrag.rag.retriever import count_indexed_notes, list_folders, query_notes

configure_logging()

logger = structlog.get_logger()

app = Quart(__name__)

# One ingestion run at a time
_ingest_lock = asyncio.Lock()


def _parse_number(value, cast, name):
    if value is None:
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{name}' must be a number")


@app.route("/api/ingest", methods=["POST"])
async def run_ingest():
    """Clear the index and ingest every note from the source.

    Returns JSON ingestion statistics, 409 if a run is already active.
    """
    if _ingest_lock.locked():
        return jsonify({"error": "Ingestion already running"}), 409

    async with _ingest_lock:
        try:
            stats = await ingest.run_full_ingestion()
            return jsonify({"status": "completed", "stats": stats})

        except SourceStreamError as e:
            logger.error("ingest_source_failed", error=str(e), exit_code=e.exit_code)
            return jsonify({
                "status": "failed",
                "error": e.message,
                "stats": e.stats,
            }), 502

        except StorageWriteError as e:
            logger.error("ingest_storage_failed", error=str(e))
            return jsonify({"status": "failed", "error": e.message}), 500


@app.route("/api/notes/count", methods=["GET"])
async def notes_count():
    """Return the note counts of the source and of the index."""
    response = {"indexed": count_indexed_notes(), "source": None}

    try:
        response["source"] = await ingest.count_source_notes()
    except SourceStreamError as e:
        logger.warning("source_count_unavailable", error=str(e))
        response["source_error"] = e.message

    return jsonify(response)


@app.route("/api/folders", methods=["GET"])
async def folders():
    """Return the folder names of indexed notes."""
    return jsonify({"folders": list_folders()})


@app.route("/api/query", methods=["POST"])
async def query():
    """Retrieve the note windows closest to a query.

    Expects JSON body:
    {
        "query": "text",
        "k": 5,                 // optional
        "max_distance": 19.0,   // optional
        "folder": "Travel"      // optional
    }
    """
    data = await request.get_json(silent=True)

    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    if not isinstance(data.get("query"), str) or not data["query"].strip():
        return jsonify({"error": "Missing 'query' in request body"}), 400

    folder = data.get("folder")
    if folder is not None and not isinstance(folder, str):
        return jsonify({"error": "'folder' must be a string"}), 400

    try:
        k = _parse_number(data.get("k"), int, "k")
        max_distance = _parse_number(data.get("max_distance"), float, "max_distance")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        results = await query_notes(
            data["query"].strip(),
            k=k,
            max_distance=max_distance,
            folder_name=folder or None,
        )
    except EmbeddingServiceError as e:
        logger.error("query_embedding_failed", error=str(e))
        return jsonify({"error": "Embedding service unavailable"}), 503

    return jsonify({
        "query": data["query"],
        "results": [result.to_dict() for result in results],
    })


@app.route("/health/ready")
async def health_ready():
    """Readiness probe - check Ollama and the embedding model."""
    checks = {
        "status": "healthy",
        "ollama": False,
        "models": False,
    }

    try:
        models = await ollama_client.list_models()
        checks["ollama"] = True

        wanted = config.EMBEDDING_MODEL
        if any(m == wanted or m.split(":")[0] == wanted for m in models):
            checks["models"] = True
        else:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing embedding model: {wanted}"

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        checks["status"] = "unhealthy"
        checks["error"] = str(e)
        return jsonify(checks), 503


@app.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@app.errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    # For development - use hypercorn in production
    app.run(host="127.0.0.1", port=5000, debug=True)
