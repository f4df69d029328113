import logging
import time

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from quart import Quart, jsonify, request
from werkzeug.exceptions import HTTPException

from .admin.controller import bp as admin_bp
from .auth.controller import bp as auth_bp
from .common.config import settings
from .common.database import init_db
from .common.errors import StorefrontError
from .common.kafka_client import close_producer
from .common.metrics import REQUEST_COUNT, REQUEST_LATENCY, normalize_endpoint
from .common.redis_client import close_redis
from .custom_requests.controller import bp as custom_requests_bp
from .inventory.controller import bp as inventory_bp
from .orders.controller import bp as orders_bp

log = logging.getLogger(__name__)


def create_app() -> Quart:
    app = Quart(__name__)

    # Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(custom_requests_bp)
    app.register_blueprint(admin_bp)

    @app.before_request
    async def before_request():
        request._start_time = time.time()
        log.debug("[Instance %s] %s %s", settings.INSTANCE_ID, request.method, request.path)

    @app.after_request
    async def after_request(response):
        start = getattr(request, "_start_time", None)
        if start is not None:
            endpoint = normalize_endpoint(request.path)
            REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - start)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=str(response.status_code)
            ).inc()
        response.headers["X-Instance-ID"] = settings.INSTANCE_ID
        return response

    @app.errorhandler(StorefrontError)
    async def handle_storefront_error(error: StorefrontError):
        if error.status >= 500:
            log.error("Request failed | %s %s error=%s message=%s", request.method, request.path, error.kind, error.message)
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(HTTPException)
    async def handle_http_error(error: HTTPException):
        kind = (error.name or "error").upper().replace(" ", "_")
        return jsonify({"message": error.description, "error": kind}), error.code

    @app.errorhandler(Exception)
    async def handle_unexpected(error: Exception):
        log.exception("Unhandled error | %s %s", request.method, request.path)
        return jsonify({"message": "Internal server error", "error": "INTERNAL_ERROR"}), 500

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({"status": "ok", "instance": settings.INSTANCE_ID})

    @app.before_serving
    async def startup():
        logging.basicConfig(level=settings.LOG_LEVEL.upper())
        log.info("Initializing database...")
        await init_db()
        log.info("Database ready.")

    @app.after_serving
    async def shutdown():
        await close_producer()
        await close_redis()
        log.info("Shutdown complete.")

    return app
