import sys
import os
import json
from pathlib import Path
from unittest.mock import Mock

import pytest

# Ensure src/ is on sys.path so the layer packages are importable
SRC = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src'))
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from domain.models import ObjectRef, ProcessingJob
from domain.exceptions import ExternalToolError
from domain.templates import Step, Template
from application.processor import JobProcessor
from application.registry import TemplateRegistry, build_index
from infrastructure.config import PipelineSettings
from infrastructure.media.tools import ToolRunner, ToolResult
from infrastructure.status import InMemoryStatusStore
from infrastructure.storage import LocalObjectStorage, TempStorage

TEMP_BUCKET = "tmp-bucket"
OUTPUT_BUCKET = "out-bucket"


class FakeToolRunner(ToolRunner):
    """Records tool invocations; ffmpeg writes its last argument as output."""

    def __init__(self, fail_on=None, probe_output=None):
        super().__init__()
        self.calls = []
        self.fail_on = fail_on
        self.probe_output = probe_output or {"format": {"format_name": "mp3", "duration": "42.0"}}

    def run(self, program, args, cwd=None, env=None, check=True):
        args = [str(a) for a in args]
        self.calls.append((program, args))
        if program == self.fail_on:
            if check:
                raise ExternalToolError(program, 1, "boom")
            return ToolResult(1, "", "boom")
        if program == self.ffmpeg_bin:
            Path(args[-1]).write_bytes(b"ID3 fake mp3")
            return ToolResult(0, "", "")
        return ToolResult(0, json.dumps(self.probe_output), "")


@pytest.fixture
def settings(tmp_path):
    """Settings with a temp upload bucket and a separate output bucket."""
    return PipelineSettings(
        project="demo",
        branch="main",
        upload_bucket=TEMP_BUCKET,
        output_bucket=OUTPUT_BUCKET,
        allowed_buckets=[TEMP_BUCKET],
        temp_dir=tmp_path / "scratch"
    )


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(tmp_path / "store")


@pytest.fixture
def status():
    return InMemoryStatusStore()


@pytest.fixture
def tools():
    return FakeToolRunner()


@pytest.fixture
def notifier():
    notifier = Mock()
    notifier.deliver.return_value = 1
    return notifier


@pytest.fixture
def upload(storage):
    """Put an object into the temp bucket and return its reference."""
    def _upload(key, data=b"audio-bytes", bucket=TEMP_BUCKET, content_type="audio/mpeg", metadata=None):
        ref = ObjectRef(bucket, key)
        storage.put(ref, data, content_type=content_type, metadata=metadata)
        return ref
    return _upload


@pytest.fixture
def make_job():
    def _make_job(refs, template_id="preview", assembly_id="asm-1", **kwargs):
        return ProcessingJob(
            assembly_id=assembly_id,
            upload_id=kwargs.pop("upload_id", assembly_id),
            template_id=template_id,
            objects=list(refs),
            branch=kwargs.pop("branch", "main"),
            **kwargs
        )
    return _make_job


@pytest.fixture
def make_processor(settings, storage, status, tools, notifier, tmp_path):
    """Processor over local storage; extra templates shadow the built-in ones."""
    def _make_processor(*templates: Template, **overrides):
        registry = TemplateRegistry.default(build_index(*templates) if templates else None)
        return JobProcessor(
            settings=overrides.get("settings", settings),
            storage=overrides.get("storage", storage),
            status=overrides.get("status", status),
            registry=overrides.get("registry", registry),
            notifier=overrides.get("notifier", notifier),
            temp_storage=TempStorage(tmp_path / "scratch"),
            tools=overrides.get("tools", tools)
        )
    return _make_processor


@pytest.fixture
def recording_step():
    """Builds steps that append their name to ``calls`` and optionally raise."""
    def _step(name, calls, fail=False):
        def run(ctx):
            calls.append(name)
            if fail:
                raise RuntimeError(f"{name} failed")
        return Step(name, run)
    return _step
