"""HTTP responder for the CA's HTTP-01 probe.

``GET /.well-known/acme-challenge/<token>`` answers with the key
authorization from the HTTP-01 store as ``text/plain`` (404 when the
token is unknown).  ``GET /challenges/<type>`` returns the JSON
diagnostic export of a challenge store.

Usage::

    from acmelib.challenge.responder import ResponderThread, create_responder_app

    app = create_responder_app(registry)
    thread = ResponderThread(app, "0.0.0.0", 80)
    thread.start()
    ...
    thread.stop()
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from flask import Blueprint, Flask, current_app, make_response
from werkzeug.serving import make_server

from acmelib.core.types import ChallengeType

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue

    from acmelib.challenge.registry import ProviderRegistry

log = logging.getLogger(__name__)

responder_bp = Blueprint("responder", __name__)


def _registry() -> ProviderRegistry:
    return current_app.extensions["provider_registry"]


@responder_bp.route("/.well-known/acme-challenge/<token>", methods=["GET"])
def serve_token(token: str) -> ResponseReturnValue:
    """GET /.well-known/acme-challenge/<token> -- the HTTP-01 proof."""
    provider = _registry().get_provider_or_none(ChallengeType.HTTP_01)
    content = provider.lookup(token) if provider is not None else None
    if content is None:
        log.info("HTTP-01 probe for unknown token %s", token)
        response = make_response("Not Found", 404)
    else:
        log.info("Served HTTP-01 token %s", token)
        response = make_response(content, 200)
    response.mimetype = "text/plain"
    return response


@responder_bp.route("/challenges/<challenge_type>", methods=["GET"])
def export_challenges(challenge_type: str) -> ResponseReturnValue:
    """GET /challenges/<type> -- JSON array of published records."""
    registry = _registry()
    if not registry.is_enabled(challenge_type):
        return make_response(
            {"error": f"challenge type '{challenge_type}' is not enabled"},
            404,
        )
    response = make_response(registry.get_store(challenge_type).snapshot(), 200)
    response.mimetype = "application/json"
    response.headers["Cache-Control"] = "no-store"
    return response


def create_responder_app(registry: ProviderRegistry) -> Flask:
    """Create the Flask app answering challenge probes.

    Parameters
    ----------
    registry:
        The provider registry whose stores back the responses.

    """
    app = Flask("acmelib.responder")
    app.extensions["provider_registry"] = registry
    app.register_blueprint(responder_bp)
    return app


class ResponderThread:
    """Runs the responder app with werkzeug in a daemon thread."""

    def __init__(self, app: Flask, host: str, port: int) -> None:
        self._server = make_server(host, port, app, threaded=True)
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        return self._server.server_port

    def start(self) -> None:
        """Start serving in the background."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="challenge-responder",
            daemon=True,
        )
        self._thread.start()
        log.info("Challenge responder listening on %s:%d", self._server.host, self.port)

    def stop(self) -> None:
        """Shut the server down and wait for the thread."""
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=5)
        log.info("Challenge responder stopped")
