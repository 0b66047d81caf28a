"""Tests for status lookups and the function entry points."""

import importlib
import json
from unittest.mock import Mock

import pytest

from application.factories import PipelineFactory
from application.registry import TemplateRegistry, build_index
from application.status_service import StatusService
from domain.templates import Template
from domain.exceptions import TransientInfraError, WebhookDeliveryError
from infrastructure.config import PipelineSettings
handlers = importlib.import_module("presentation.handler")


@pytest.fixture
def registry():
    return TemplateRegistry(build_index(
        Template(id="hooked", webhook_url="https://hooks.example.com/x", webhook_secret="s"),
        Template(id="plain"),
    ))


@pytest.fixture
def service(status, registry, notifier):
    return StatusService(status, registry=registry, notifier=notifier)


class TestStatusService:
    """Test lookup responses."""

    def test_missing_id(self, service):
        assert service.lookup("")[0] == 400

    def test_unknown_assembly(self, service):
        code, body = service.lookup("nope")

        assert code == 404
        assert body["assembly_id"] == "nope"

    @pytest.mark.parametrize("record", [
        {"message": "Upload pending"},
        {"message": "Processing started", "execution_start": "t"},
        {"ok": "ASSEMBLY_COMPLETED", "progress_pct": 100},
        {"error": "PROCESSING_ERROR", "progress_pct": 100},
    ])
    def test_known_assembly_any_state(self, service, status, record):
        status.update("asm-1", record)

        code, body = service.lookup("asm-1")

        assert code == 200
        assert body["assembly_id"] == "asm-1"

    def test_store_unreachable(self, notifier):
        broken = Mock()
        broken.get.side_effect = TransientInfraError("timeout")

        code, body = StatusService(broken).lookup("asm-1")

        assert code == 500
        assert "timeout" in body["message"]

    def test_owner_check(self, service, status):
        status.update("asm-1", {"user": {"userId": "u-1"}})

        assert service.lookup("asm-1", user_id="u-1")[0] == 200
        assert service.lookup("asm-1", user_id="u-2")[0] == 403

    def test_trigger_webhook(self, service, status, notifier):
        status.update("asm-1", {"template_id": "hooked", "ok": "ASSEMBLY_COMPLETED"})

        service.lookup("asm-1", trigger_webhook=True)

        args, kwargs = notifier.deliver.call_args
        assert args[0] == "https://hooks.example.com/x"
        assert args[1]["ok"] == "ASSEMBLY_COMPLETED"
        assert kwargs["secret"] == "s"

    def test_trigger_webhook_failure_does_not_fail_lookup(self, service, status, notifier):
        notifier.deliver.side_effect = WebhookDeliveryError("down")
        status.update("asm-1", {"template_id": "hooked"})

        assert service.lookup("asm-1", trigger_webhook=True)[0] == 200

    def test_trigger_webhook_without_configuration(self, service, status, notifier):
        status.update("asm-1", {"template_id": "plain"})
        status.update("asm-2", {"template_id": "unknown"})

        assert service.lookup("asm-1", trigger_webhook=True)[0] == 200
        assert service.lookup("asm-2", trigger_webhook=True)[0] == 200
        notifier.deliver.assert_not_called()


class TestHandlers:
    """Test the function entry points."""

    @pytest.fixture(autouse=True)
    def factory(self, status, storage, notifier, tools, tmp_path):
        settings = PipelineSettings(status_table="status", upload_bucket="tmp-bucket", temp_dir=tmp_path / "scratch")
        factory = PipelineFactory(settings, storage=storage, status=status, notifier=notifier, tools=tools)
        handlers.reset_factory(factory)
        yield factory
        handlers.reset_factory(None)

    def test_status_handler(self, status):
        status.update("asm-1", {"message": "Processing started"})

        response = handlers.status_handler({"assemblyId": "asm-1"})

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["message"] == "Processing started"
        assert response["headers"]["Cache-Control"] == "no-cache"

    def test_status_handler_missing_id(self):
        assert handlers.status_handler({})["statusCode"] == 400

    def test_status_handler_requires_table(self, factory):
        factory.settings.status_table = None

        assert handlers.status_handler({"assemblyId": "a"})["statusCode"] == 500

    def test_processing_handler(self, upload, status):
        upload("uploads/main/a.mp3")
        event = {"Records": [{"messageId": "m-1", "body": json.dumps({
            "assemblyId": "asm-1",
            "uploadId": "asm-1",
            "templateId": "preview",
            "objects": [{"bucket": "tmp-bucket", "key": "uploads/main/a.mp3"}],
            "branch": "main",
        })}]}

        assert handlers.handler(event) == {"batchItemFailures": []}
        assert status.get("asm-1")["ok"] == "ASSEMBLY_COMPLETED"

    def test_bridge_handler_requires_queue(self):
        from domain.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            handlers.bridge_handler({"Records": []})

    @pytest.mark.parametrize("records", [
        ["not a record"],
        [{"s3": {"bucket": {"name": "tmp-bucket"}, "object": {"key": "a.mp3"}}}, "not a record"],
        [{"messageId": "m-1", "body": "{}"}],
    ])
    def test_bridge_handler_rejects_other_shapes(self, factory, monkeypatch, records):
        from domain.exceptions import ValidationError
        bridge = Mock()
        monkeypatch.setattr(factory, "create_bridge", lambda: bridge)

        with pytest.raises(ValidationError):
            handlers.bridge_handler({"Records": records})

        bridge.enqueue.assert_not_called()

    def test_bridge_handler_empty_event(self, factory, monkeypatch):
        monkeypatch.setattr(factory, "create_bridge", lambda: Mock())

        assert handlers.bridge_handler({"Records": []}) == {"enqueued": 0, "dropped": 0}
