from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from classifieds.core.config import settings
from classifieds.core.db import engine


def setup_telemetry(app) -> None:
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.env,
            "classifieds.app_id": settings.app_id,
        }
    )
    provider = TracerProvider(resource=resource)
    if settings.otlp_endpoint:
        processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{settings.otlp_endpoint}/v1/traces"))
        provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
