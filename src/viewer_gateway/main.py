"""HTTP server entrypoint for the database viewer."""

import logging

import uvicorn
from dotenv import load_dotenv
from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from common.config.env import get_env_int, get_env_str
from dal.tracing import trace_enabled
from viewer_gateway.app import create_app

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


def configure_logging() -> None:
    level_name = (get_env_str("LOG_LEVEL", "INFO") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def setup_telemetry() -> None:
    """Install an OTEL tracer provider when query tracing is enabled."""
    if not trace_enabled():
        return

    resource = Resource.create({SERVICE_NAME: get_env_str("OTEL_SERVICE_NAME", "dbviewer")})
    provider = TracerProvider(resource=resource)
    endpoint = get_env_str("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        logger.info("OTEL tracing enabled, exporting to %s", endpoint)
    else:
        logger.info("OTEL tracing enabled without exporter (OTEL_EXPORTER_OTLP_ENDPOINT unset)")
    trace.set_tracer_provider(provider)


def main() -> None:
    """Load configuration and serve the API until interrupted."""
    load_dotenv()
    configure_logging()
    setup_telemetry()

    host = get_env_str("SERVER_HOST", DEFAULT_HOST)
    port = get_env_int("SERVER_PORT", DEFAULT_PORT)
    app = create_app()
    limit = app.state.connection_manager.resources.max_concurrent_requests
    logger.info(
        "Starting database viewer API on %s:%s (limit_concurrency=%d)", host, port, limit
    )
    uvicorn.run(app, host=host, port=port, log_config=None, limit_concurrency=limit)


if __name__ == "__main__":
    main()
