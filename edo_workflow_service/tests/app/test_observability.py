import logging

import pytest
from unittest.mock import MagicMock
from pythonjsonlogger import jsonlogger

from edo_workflow_service.app import observability
from edo_workflow_service.app.config import settings


@pytest.fixture(autouse=True)
def preserve_original_settings():
    original_log_level = settings.LOG_LEVEL
    original_traces_endpoint = settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT
    original_metrics_endpoint = settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT
    yield
    settings.LOG_LEVEL = original_log_level
    settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT = original_traces_endpoint
    settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT = original_metrics_endpoint


@pytest.fixture
def isolated_root_logger(mocker):
    root_logger = logging.getLogger()
    original_root_level = root_logger.level
    original_service_level = observability.logger.level
    mocker.patch.object(root_logger, "handlers", [])
    yield root_logger
    root_logger.setLevel(original_root_level)
    observability.logger.setLevel(original_service_level)


def test_setup_json_logging_installs_single_json_handler(isolated_root_logger):
    settings.LOG_LEVEL = "debug"

    observability.setup_json_logging()
    observability.setup_json_logging()

    assert len(isolated_root_logger.handlers) == 1
    handler = isolated_root_logger.handlers[0]
    assert isinstance(handler.formatter, jsonlogger.JsonFormatter)
    assert isolated_root_logger.level == logging.DEBUG
    assert observability.logger.level == logging.DEBUG


@pytest.fixture
def mock_otel_sdk(mocker):
    mocks = {
        name: mocker.patch(f"edo_workflow_service.app.observability.{name}")
        for name in (
            "Resource", "TracerProvider", "BatchSpanProcessor", "ConsoleSpanExporter", "OTLPSpanExporter",
            "MeterProvider", "PeriodicExportingMetricReader", "ConsoleMetricExporter", "OTLPMetricExporter",
        )
    }
    mocks["TracerProvider"].return_value = MagicMock()
    mocks["set_tracer_provider"] = mocker.patch("edo_workflow_service.app.observability.trace.set_tracer_provider")
    mocks["set_meter_provider"] = mocker.patch("edo_workflow_service.app.observability.metrics.set_meter_provider")
    mocker.patch.object(observability.logger, "info")
    return mocks


def test_setup_opentelemetry_console_only(mock_otel_sdk):
    settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT = None
    settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT = None

    observability.setup_opentelemetry("edo-test")

    mock_otel_sdk["OTLPSpanExporter"].assert_not_called()
    mock_otel_sdk["OTLPMetricExporter"].assert_not_called()
    tracer_provider = mock_otel_sdk["TracerProvider"].return_value
    assert tracer_provider.add_span_processor.call_count == 1
    mock_otel_sdk["set_tracer_provider"].assert_called_once_with(tracer_provider)
    mock_otel_sdk["set_meter_provider"].assert_called_once_with(mock_otel_sdk["MeterProvider"].return_value)


def test_setup_opentelemetry_with_otlp_endpoints(mock_otel_sdk):
    settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT = "http://collector:4317"
    settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT = "http://collector:4317"

    observability.setup_opentelemetry("edo-test")

    mock_otel_sdk["OTLPSpanExporter"].assert_called_once_with(endpoint="http://collector:4317", insecure=True)
    mock_otel_sdk["OTLPMetricExporter"].assert_called_once_with(endpoint="http://collector:4317", insecure=True)
    assert mock_otel_sdk["TracerProvider"].return_value.add_span_processor.call_count == 2
    _, meter_kwargs = mock_otel_sdk["MeterProvider"].call_args
    assert len(meter_kwargs["metric_readers"]) == 2


def test_custom_counters_are_defined():
    for counter in (
        observability.workflow_transitions_counter,
        observability.workflow_concurrency_retries_counter,
        observability.domain_events_published_counter,
    ):
        assert hasattr(counter, "add")
