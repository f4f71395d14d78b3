from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Dict, List, Optional, Tuple

import requests
from flask import Flask, Response, jsonify, make_response, redirect, render_template, request

from .call_log import DEFAULT_CAPACITY, CallHistory
from .config import GUMROAD_API_BASE, TokenStore
from .gumroad import GumroadAPI
from .models import Product
from .upstream import PayloadError, UpstreamClient, UpstreamError

logger = logging.getLogger(__name__)

_OPEN_PATHS = ("/setup", "/setup/submit", "/favicon.ico", "/health")
_BACK_LINK_PREFIXES = ("/licenses/", "/sales/")


def _back_link(referer: Optional[str]) -> str:
    if not referer:
        return "/"
    path = urllib.parse.urlparse(referer).path
    if path == "/" or path.startswith(_BACK_LINK_PREFIXES):
        return path
    return "/"


def _text_error(message: str, status: int) -> Response:
    resp = make_response(message, status)
    resp.mimetype = "text/plain"
    return resp


def create_app(
    token_store: TokenStore,
    *,
    history: Optional[CallHistory] = None,
    session: Optional[requests.Session] = None,
    api_base: str = GUMROAD_API_BASE,
    history_size: int = DEFAULT_CAPACITY,
    verbose: bool = False,
) -> Flask:
    app = Flask(__name__)
    call_history = history if history is not None else CallHistory(capacity=history_size)
    client = UpstreamClient(call_history, session=session, verbose=verbose)
    api = GumroadAPI(client, lambda: token_store.token, base_url=api_base)

    app.extensions["call_history"] = call_history
    app.extensions["gumroad_api"] = api
    app.extensions["token_store"] = token_store
    app.config.update(
        VERBOSE=bool(verbose),
        API_BASE=api_base,
        HISTORY_SIZE=call_history.capacity,
    )

    @app.before_request
    def _require_token():
        if request.path in _OPEN_PATHS or request.path.startswith("/static/"):
            return None
        if not token_store.is_configured():
            logger.info("No usable token configured; redirecting %s to setup", request.path)
            return redirect("/setup", code=307)
        return None

    def _product_at(index: int) -> Tuple[Optional[Product], Optional[Response]]:
        try:
            products = api.list_products()
        except UpstreamError as exc:
            logger.warning("Failed to fetch products: %s", exc)
            return None, _text_error(f"Failed to fetch products: {exc}", 500)
        if index < 0 or index >= len(products):
            return None, _text_error("Product not found", 404)
        return products[index], None

    @app.get("/health")
    def health() -> Response:
        return jsonify({"status": "ok"})

    @app.get("/favicon.ico")
    def favicon() -> Response:
        return make_response("", 204)

    @app.get("/setup")
    def setup():
        if token_store.is_configured():
            return redirect("/", code=307)
        return render_template("setup.html", title="Setup - Gumroad Token", current_page="setup")

    @app.post("/setup/submit")
    def setup_submit():
        payload = request.get_json(force=True, silent=True)
        if not isinstance(payload, dict):
            return jsonify({"success": False, "error": "Invalid JSON data"}), 400
        token = payload.get("token")
        token = token.strip() if isinstance(token, str) else ""
        if not token:
            return jsonify({"success": False, "error": "Token cannot be empty"}), 400
        try:
            api.check_token(token)
        except UpstreamError as exc:
            return jsonify({"success": False, "error": f"Invalid token: {exc}"}), 400
        try:
            token_store.save(token)
        except OSError as exc:
            logger.error("Failed to save token to %s: %s", token_store.path, exc)
            return jsonify({"success": False, "error": f"Failed to save token: {exc}"}), 500
        logger.info("Gumroad token saved to %s", token_store.path)
        return jsonify({"success": True, "message": "Token saved successfully"})

    @app.get("/")
    def index():
        try:
            products = api.list_products()
        except UpstreamError as exc:
            logger.warning("Failed to fetch products: %s", exc)
            return _text_error(f"Failed to fetch products: {exc}", 500)
        logger.info("Fetched %d products", len(products))
        return render_template("products.html", title="Products", current_page="products", products=products)

    @app.get("/licenses/<int:index>")
    def licenses(index: int):
        product, error = _product_at(index)
        if error is not None:
            return error
        try:
            rows = api.list_licenses(product.id or "")
        except UpstreamError as exc:
            logger.warning("Failed to fetch licenses for %s: %s", product.id, exc)
            return _text_error(f"Failed to fetch licenses: {exc}", 500)
        return render_template(
            "licenses.html",
            title=f"License Keys - {product.name or ''}",
            current_page="licenses",
            back_link="/",
            licenses=rows,
            product_id=product.id or "",
        )

    @app.get("/sales/<int:index>")
    def sales(index: int):
        product, error = _product_at(index)
        if error is not None:
            return error
        try:
            rows = api.list_sales(product.id or "")
        except UpstreamError as exc:
            logger.warning("Failed to fetch sales for %s: %s", product.id, exc)
            return _text_error(f"Failed to fetch sales: {exc}", 500)
        return render_template(
            "sales.html",
            title=f"Sales - {product.name or ''}",
            current_page="sales",
            back_link="/",
            sales=rows,
            product_id=product.id or "",
        )

    @app.get("/api-log")
    def api_log():
        return render_template(
            "api_log.html",
            title="API Call Log",
            current_page="api-log",
            back_link=_back_link(request.headers.get("Referer")),
            calls=call_history.snapshot(),
        )

    @app.get("/api/api-calls")
    def api_calls_json() -> Response:
        rows: List[Dict[str, Any]] = [record.to_json() for record in call_history.snapshot()]
        return jsonify(rows)

    @app.delete("/api/api-calls")
    def clear_api_calls() -> Response:
        call_history.clear()
        return jsonify({"ok": True})

    @app.post("/validate-license")
    def validate_license():
        payload = request.get_json(force=True, silent=True)
        if not isinstance(payload, dict):
            return _text_error("Invalid JSON", 400)
        product_id = payload.get("product_id")
        license_key = payload.get("license_key")
        if not isinstance(product_id, str) or not isinstance(license_key, str) or not product_id or not license_key:
            return _text_error("Missing product_id or license_key", 400)
        try:
            result = api.verify_license(product_id, license_key)
        except PayloadError as exc:
            logger.warning("Failed to parse verification response: %s", exc)
            return _text_error("Failed to parse response", 500)
        except UpstreamError as exc:
            logger.warning("License verification failed: %s", exc)
            return _text_error("Failed to validate license", 500)
        return jsonify(result.to_json())

    return app
