"""Serve a slot-rotated badge image"""

import logging
import os
import time

from flask import Flask, Response, current_app, request, send_file

import badges
from badges import BadgeCatalog, BadgeError, FileMissingError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_BADGES_DIR = "./badges"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, public, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %d", name, raw, default)
        return default


def create_app(badges_dir: str | None = None, catalog: BadgeCatalog | None = None) -> Flask:
    """Build the badge app around one shared catalog"""
    app = Flask(__name__)
    app.config["SEND_FILE_MAX_AGE_DEFAULT"] = 0
    app.config["BADGE_TIME_WINDOW"] = _env_int(
        "BADGE_TIME_WINDOW", badges.DEFAULT_TIME_WINDOW
    )

    if catalog is None:
        catalog = BadgeCatalog(
            badges_dir or os.environ.get("BADGES_DIR", DEFAULT_BADGES_DIR),
            interval=_env_int("DISCOVERY_INTERVAL", badges.DEFAULT_DISCOVERY_INTERVAL),
        )
    app.extensions["badge_catalog"] = catalog

    @app.route("/")
    def home():
        """Usage hint"""
        return Response(
            "Animated Badge Rotator (slot-based). "
            "Use /badge.gif?slot=1, /badge.gif?slot=2, etc.\n",
            mimetype="text/plain",
        )

    @app.route("/badge.gif")
    def badge():
        """Serve the badge picked for this slot in the current time window"""
        store = current_app.extensions["badge_catalog"]
        store.refresh_if_stale()
        available = store.snapshot()
        if not available:
            logger.warning("No badges available to serve")

        seed = badges.time_seed(time.time(), current_app.config["BADGE_TIME_WINDOW"])
        slot = badges.parse_slot(request.args.get("slot"))
        filename = badges.select_badge(available, slot, seed)

        path = os.path.abspath(store.path_for(filename))
        if not os.path.isfile(path):
            logger.warning("Badge %s listed in catalog but missing on disk", path)
            raise FileMissingError(filename)

        logger.info("Slot %d (TimeSeed %d): Serving badge: %s", slot, seed, path)
        return send_file(path, mimetype=badges.content_type_for(filename))

    @app.errorhandler(BadgeError)
    def badge_error(error: BadgeError):
        """Report a failed badge request without taking the server down"""
        return {"error": error.message}, error.status_code

    @app.after_request
    def disable_badge_cache(response: Response):
        """Disable caching so every embed fetches a fresh badge"""
        if request.endpoint == "badge":
            response.headers.update(NO_CACHE_HEADERS)
        return response

    return app


app = create_app()


def main():
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.extensions["badge_catalog"].refresh()

    port = _env_int("PORT", DEFAULT_PORT)
    logger.info("Starting slot-based badge rotator on port %d (.gif and .png/apng)", port)
    try:
        app.run(host="0.0.0.0", port=port)
    except SystemExit as exc:
        # werkzeug reports a failed bind by exiting with status 1
        if exc.code not in (0, None):
            logger.critical("Failed to start server on port %d", port)
        raise


if __name__ == "__main__":
    main()
