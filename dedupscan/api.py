"""
Read-only HTTP JSON API over a scan session.

Every handler reads through the session's read lock, so the API can be
started before the scan and queried while it is still running.
"""

import logging
import string
import threading

from flask import Flask, abort, jsonify, request
from flask_cors import CORS

from .core.session import ScanSession

logger = logging.getLogger(__name__)

ENDPOINTS = {
    "/api/stats": "total unique digests and total files",
    "/api/digests": "dense index and reference count per digest",
    "/api/chunks": "hex digest, dense index and count; ?prefix=<hex> filters",
    "/api/files": "reference and unique-chunk counts per index file",
    "/api/refchunks": "ordered dense indices referenced by ?filename=<path>",
    "/api/accucounter": "65536-bucket distinct and occurrence prefix histograms",
}

_HEX_DIGITS = set(string.hexdigits)


def create_app(session: ScanSession) -> Flask:
    """Build the Flask application serving ``session``."""
    app = Flask(__name__)
    app.json.sort_keys = False
    CORS(app, origins="*", methods=["GET", "OPTIONS"], allow_headers=["Content-Type"])

    @app.get("/")
    def index():
        return jsonify({"endpoints": ENDPOINTS})

    @app.get("/api/stats")
    def stats():
        data = session.stats()
        return jsonify({
            "total_unique_digests": data["total_unique_digests"],
            "total_files": data["total_files"],
        })

    @app.get("/api/digests")
    def digests():
        return jsonify(session.digest_entries())

    @app.get("/api/chunks")
    def chunks():
        prefix = request.args.get("prefix", "").lower()
        if prefix and not set(prefix) <= _HEX_DIGITS:
            abort(400, description="prefix must be hexadecimal")
        return jsonify(session.digest_entries(include_digest=True, prefix=prefix or None))

    @app.get("/api/files")
    def files():
        return jsonify(session.file_entries())

    @app.get("/api/refchunks")
    def refchunks():
        filename = request.args.get("filename", "")
        if not filename:
            abort(400, description="filename parameter required")
        refs = session.file_references(filename)
        if refs is None:
            abort(404, description="file not found")
        return jsonify({"ref_chunks": refs})

    @app.get("/api/accucounter")
    def accucounter():
        distinct, occurrences = session.prefix_histograms()
        return jsonify({
            "accu_count": distinct.tolist(),
            "accu_ref_count": occurrences.tolist(),
        })

    return app


def start_api_server(session: ScanSession, host: str = "0.0.0.0", port: int = 8080) -> threading.Thread:
    """Serve the API from a daemon thread and return that thread."""
    app = create_app(session)

    def _serve():
        logger.info(f"Starting webserver on {host}:{port} (API at /api/)")
        app.run(host=host, port=port, threaded=True, use_reloader=False)

    thread = threading.Thread(target=_serve, name="dedupscan-api", daemon=True)
    thread.start()
    return thread
