"""Tests for the step context and output key helpers."""

import pytest

from application.paths import (
    branch_from_key, output_prefix, sanitize_branch, sanitize_path_component
)
from application.step_context import OutputTarget, StepContext
from domain.models import ObjectRef, ProcessingJob, UploadEntry, UserContext
from domain.exceptions import ValidationError


def make_job(user=None, branch="main"):
    return ProcessingJob("asm-1", "up-1", "preview", [ObjectRef("tmp-bucket", "uploads/main/a.mp3")],
                         branch=branch, fields={"title": "Song"}, user=user)


@pytest.fixture
def context(storage, tools, tmp_path):
    def _context(user_root=None, job=None):
        input_path = tmp_path / "a.mp3"
        input_path.write_bytes(b"audio")
        return StepContext(
            job=job or make_job(),
            input_paths=[input_path],
            output=OutputTarget("out-bucket", "outputs/main/preview/asm-1/"),
            tmp_dir=tmp_path,
            storage=storage,
            tools=tools,
            uploads=[UploadEntry(id="upload_1", name="a.mp3", size=5)],
            user_root=user_root
        )
    return _context


class TestPaths:
    """Test output key derivation."""

    @pytest.mark.parametrize("raw,expected", [
        ("User@Example.com", "user-example.com"),
        ("../../etc", "------etc"),
        ("..hidden..", "--hidden--"),
        ("a" * 150, "a" * 100),
    ])
    def test_sanitize_path_component(self, raw, expected):
        assert sanitize_path_component(raw) == expected

    def test_sanitize_branch(self):
        assert sanitize_branch("Feature/New_UI") == "feature-new-ui"
        assert sanitize_branch("") == "main"

    def test_branch_from_key(self):
        assert branch_from_key("uploads/dev/a.mp3") == "dev"
        assert branch_from_key("incoming/a.mp3") is None

    def test_output_prefix(self):
        assert output_prefix(make_job()) == "outputs/main/preview/asm-1/"
        assert output_prefix(make_job(branch="")) == "outputs/main/preview/asm-1/"
        assert output_prefix(make_job(), "exports/") == "exports/main/preview/asm-1/"

    def test_user_output_prefix(self):
        job = make_job(user=UserContext("Alice@Example.com"))

        assert output_prefix(job) == "outputs/main/users/alice-example.com/preview/asm-1/"


class TestStepContext:
    """Test step utilities."""

    def test_job_attributes(self, context, tmp_path):
        ctx = context()

        assert ctx.assembly_id == "asm-1"
        assert ctx.upload_id == "up-1"
        assert ctx.fields == {"title": "Song"}
        assert ctx.input == ObjectRef("tmp-bucket", "uploads/main/a.mp3")
        assert ctx.input_path == tmp_path / "a.mp3"

    def test_upload_result_records_artifact(self, context, storage, tmp_path):
        ctx = context()
        ctx.current_step_name = "encode"
        out = tmp_path / "out.mp3"
        out.write_bytes(b"12345678")

        artifact = ctx.upload_result(out, "nested/out.mp3", "audio/mpeg")

        assert artifact.key == "outputs/main/preview/asm-1/nested/out.mp3"
        assert artifact.size == 8
        assert artifact.original_id == "upload_1"
        assert artifact.id.startswith("result_")
        assert storage.exists(ObjectRef("out-bucket", artifact.key))
        assert ctx.results_dict()["encode"][0]["name"] == "out.mp3"

    def test_upload_result_defaults_to_file_name(self, context, tmp_path):
        ctx = context()

        artifact = ctx.upload_result(tmp_path / "a.mp3")

        assert artifact.key == "outputs/main/preview/asm-1/a.mp3"
        assert list(ctx.results) == ["default"]

    def test_generate_key_rejects_traversal(self, context):
        ctx = context()

        assert ctx.generate_key("thumb.jpg") == "outputs/main/preview/asm-1/thumb.jpg"
        with pytest.raises(ValidationError):
            ctx.generate_key("../other/thumb.jpg")

    def test_upload_to_key_confined_to_user_root(self, context, tmp_path):
        ctx = context(user_root="outputs/main/users/u-1/")

        artifact = ctx.upload_to_key(tmp_path / "a.mp3", "outputs/main/users/u-1/library/a.mp3")

        assert artifact.key == "outputs/main/users/u-1/library/a.mp3"
        with pytest.raises(ValidationError):
            ctx.upload_to_key(tmp_path / "a.mp3", "outputs/main/users/u-2/a.mp3")
        with pytest.raises(ValidationError):
            ctx.upload_to_key(tmp_path / "a.mp3", "outputs/main/users/u-1/../u-2/a.mp3")

    def test_tools_run_in_scratch_dir(self, context, tools, tmp_path):
        ctx = context()

        probe = ctx.probe_json(ctx.input_path)
        ctx.exec_ffmpeg(["-i", str(ctx.input_path), str(tmp_path / "x.mp3")])

        assert probe["format"]["format_name"] == "mp3"
        assert [p for p, _ in tools.calls] == ["ffprobe", "ffmpeg"]
        assert (tmp_path / "x.mp3").exists()

    def test_publish_only_logs(self, context):
        context().publish("halfway")
