#!/usr/bin/env python3
"""
Router Flask API
================

HTTP surface of the router daemon.

Endpoints:
    GET  /status      current mode and available exit nodes (JSON)
    POST /set-mode    switch mode: ?mode=direct or ?mode=tailscale&node=<name>
    GET  /login       login page
    POST /login       form login, sets the session cookie
    GET  /logout      clears the session cookie

Everything except /login, /logout and the static assets requires a
valid session.
"""

import os
from typing import Optional

from flask import Flask, jsonify, make_response, redirect, request, send_from_directory
from flask_cors import CORS
from loguru import logger

from core.api_auth import SessionAuth
from core.errors import ClientConfigFailed, DirectoryUnavailable, NodeNotFound
from core.state_machine import ModeStateMachine
from core.tailscale_client import TailscaleClient

STATIC_ASSETS = ("styles.css", "script.js", "friendly-names.json")


def create_app(config: dict, state_machine: ModeStateMachine,
               client: TailscaleClient, auth: Optional[SessionAuth] = None) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Application configuration dict
        state_machine: Router state shared by all handlers
        client: Tailscale client used for liveness checks
        auth: Session authenticator (built from config if omitted)

    Returns:
        Configured Flask app
    """
    app = Flask(
        __name__,
        template_folder="../dashboard/templates",
        static_folder="../dashboard/static",
        static_url_path="/static",
    )

    api_config = config.get("api", {})
    app.config["DEBUG"] = config.get("general", {}).get("debug", False)

    CORS(app, origins=api_config.get("cors_origins", []), supports_credentials=True)

    app.state_machine = state_machine
    app.tailscale = client
    app.auth = auth or SessionAuth(config.get("auth", {}))
    app.config_data = config

    register_routes(app)

    logger.info("Flask app created successfully")
    return app


def register_routes(app: Flask):
    """Register all routes."""
    auth = app.auth
    templates = os.path.join(app.root_path, app.template_folder)

    # =========================================================================
    # Authentication
    # =========================================================================

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if request.method == "GET":
            return send_from_directory(templates, "login.html")

        username = request.form.get("username", "")
        password = request.form.get("password", "")

        if not auth.authenticate(username, password):
            return _text("Invalid username or password", 401)

        return auth.start_session(redirect("/", code=303), username)

    @app.route("/logout", methods=["GET", "POST"])
    def logout():
        return auth.end_session(redirect("/login", code=303))

    # =========================================================================
    # Dashboard
    # =========================================================================

    @app.route("/")
    @auth.require_auth
    def index():
        return send_from_directory(templates, "index.html")

    def serve_asset(filename):
        return lambda: send_from_directory(app.static_folder, filename)

    for asset in STATIC_ASSETS:
        app.add_url_rule(f"/{asset}", endpoint=f"asset_{asset}", view_func=serve_asset(asset))

    # =========================================================================
    # Router API
    # =========================================================================

    @app.route("/status")
    @auth.require_auth
    def status():
        """Current mode and exit nodes."""
        if not app.tailscale.is_running():
            return _text("Tailscale is not running or not installed", 503)

        mode, nodes = app.state_machine.snapshot()

        return jsonify({
            "mode": mode.serialize(),
            "exitNodes": {name: node.to_dict() for name, node in nodes.items()},
        })

    @app.route("/set-mode", methods=["POST"])
    @auth.require_auth
    def set_mode():
        """Switch routing mode."""
        mode_type = request.args.get("mode", "")
        machine = app.state_machine

        try:
            if mode_type == "direct":
                mode = machine.set_direct()
            elif mode_type == "tailscale":
                node = request.args.get("node", "")
                if not node:
                    return _text("Missing node parameter", 400)
                mode = machine.set_exit_node(node)
            else:
                return _text("Invalid mode", 400)

        except NodeNotFound as e:
            return _text(str(e), 400)
        except DirectoryUnavailable as e:
            return _text(str(e), 503)
        except ClientConfigFailed as e:
            return _text(str(e), 500)

        return _text(f"Switched to mode: {mode}\n", 200)

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.errorhandler(404)
    def not_found(e):
        return _text("Not found", 404)

    @app.errorhandler(500)
    def internal_error(e):
        return _text("Internal server error", 500)


def _text(body: str, status: int):
    response = make_response(body, status)
    response.mimetype = "text/plain"
    return response
