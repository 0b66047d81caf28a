"""Tests for domain models."""

import pytest

from domain.models import (
    ASSEMBLY_COMPLETED, AssemblyGroup, AssemblyState, BatchReport, JobOutcome,
    JobResult, ObjectHead, ObjectRef, ProcessingJob, SoloGroup, UploadEntry,
    UploadedObject, UserContext, derive_assembly_id
)
from domain.templates import Step, Template
from domain.exceptions import ValidationError


class TestProcessingJob:
    """Test ProcessingJob wire parsing."""

    def test_from_dict_full_body(self):
        """Test parsing a body with every field."""
        job = ProcessingJob.from_dict({
            "assemblyId": "asm-1",
            "uploadId": "up-1",
            "templateId": "preview",
            "objects": [{"bucket": "b", "key": "uploads/main/a.mp3"}],
            "branch": "main",
            "fields": {"title": "Song", "track": 3},
            "user": {"userId": "u-1", "permissions": ["read"]},
        })

        assert job.assembly_id == "asm-1"
        assert job.objects == [ObjectRef("b", "uploads/main/a.mp3")]
        assert job.fields == {"title": "Song", "track": "3"}
        assert job.user.user_id == "u-1"
        assert job.user.permissions == ["read"]

    def test_assembly_id_falls_back_to_upload_id(self):
        """Test bodies from older producers without assemblyId."""
        job = ProcessingJob.from_dict({
            "uploadId": "up-1",
            "templateId": "preview",
            "objects": [{"bucket": "b", "key": "k"}],
        })

        assert job.assembly_id == "up-1"

    @pytest.mark.parametrize("body", [
        "not a dict",
        {"uploadId": "u", "templateId": "t"},
        {"uploadId": "u", "templateId": "t", "objects": []},
        {"uploadId": "u", "objects": [{"bucket": "b", "key": "k"}]},
        {"uploadId": "u", "templateId": "t", "objects": [{"bucket": "b"}]},
        {"uploadId": "u", "templateId": "t", "objects": [{"bucket": "b", "key": "k"}], "fields": []},
        {"uploadId": "u", "templateId": "t", "objects": [{"bucket": "b", "key": "k"}], "user": {"x": 1}},
    ])
    def test_malformed_bodies_raise_validation_error(self, body):
        """Test that malformed bodies are rejected."""
        with pytest.raises(ValidationError):
            ProcessingJob.from_dict(body)

    def test_to_dict_omits_empty_optionals(self):
        """Test that fields and user are only present when set."""
        job = ProcessingJob("asm", "up", "preview", [ObjectRef("b", "k")])

        data = job.to_dict()

        assert "fields" not in data
        assert "user" not in data
        assert data["objects"] == [{"bucket": "b", "key": "k"}]

    def test_buckets_are_unique(self):
        """Test bucket listing."""
        job = ProcessingJob("asm", "up", "preview", [
            ObjectRef("b2", "x"), ObjectRef("b1", "y"), ObjectRef("b2", "z")
        ])

        assert job.buckets == ["b1", "b2"]


class TestAssemblyIdentity:
    """Test deterministic assembly ids and grouping keys."""

    def test_derived_id_ignores_key_order(self):
        """Test that the same objects always produce the same id."""
        first = derive_assembly_id(["a.mp3", "b.mp3"], "preview", "u-1")
        second = derive_assembly_id(["b.mp3", "a.mp3"], "preview", "u-1")

        assert first == second
        assert len(first) == 64

    def test_derived_id_depends_on_template_and_user(self):
        """Test that template and user are part of the identity."""
        base = derive_assembly_id(["a.mp3"], "preview")

        assert base == derive_assembly_id(["a.mp3"], "preview", None)
        assert base != derive_assembly_id(["a.mp3"], "other")
        assert base != derive_assembly_id(["a.mp3"], "preview", "u-1")

    def test_group_key_variants(self):
        """Test assembly and solo grouping keys."""
        grouped = UploadedObject(ObjectRef("b", "k1"), assembly_id="asm")
        solo = UploadedObject(ObjectRef("b", "k2"))

        assert grouped.group_key == AssemblyGroup("asm")
        assert solo.group_key == SoloGroup("b", "k2")


class TestAssemblyState:
    """Test state derivation from status records."""

    @pytest.mark.parametrize("record,expected", [
        (None, AssemblyState.PENDING_UPLOAD),
        ({"message": "Upload pending"}, AssemblyState.PENDING_UPLOAD),
        ({"execution_start": "t"}, AssemblyState.PROCESSING),
        ({"execution_start": "t", "ok": ASSEMBLY_COMPLETED}, AssemblyState.COMPLETED),
        ({"execution_start": "t", "error": "PROCESSING_ERROR"}, AssemblyState.ERROR),
    ])
    def test_state_of_record(self, record, expected):
        assert AssemblyState.of(record) is expected

    def test_terminal_states(self):
        assert AssemblyState.COMPLETED.is_terminal
        assert AssemblyState.ERROR.is_terminal
        assert not AssemblyState.PROCESSING.is_terminal


class TestObjectHead:
    """Test metadata access."""

    def test_meta_is_case_insensitive(self):
        head = ObjectHead(ObjectRef("b", "k"), metadata={"AssemblyId": "asm", "templateid": ""})

        assert head.meta("assemblyid") == "asm"
        assert head.meta("templateid") is None
        assert head.meta("missing", "ASSEMBLYID") == "asm"


class TestLedgerEntries:
    """Test upload and result entries."""

    def test_upload_entry_name_parts(self):
        entry = UploadEntry(id="upload_1", name="song.final.mp3", size=10, mime="audio/mpeg")

        data = entry.to_dict()

        assert data["basename"] == "song.final"
        assert data["ext"] == "mp3"
        assert data["field"] == "file"

    def test_user_context_requires_user_id(self):
        assert UserContext.from_dict(None) is None
        with pytest.raises(ValidationError):
            UserContext.from_dict({"permissions": []})


class TestBatchReport:
    """Test partial batch responses."""

    def test_only_retryable_results_are_reported(self):
        report = BatchReport()
        report.add(JobResult("a", JobOutcome.COMPLETED, message_id="m1"))
        report.add(JobResult("b", JobOutcome.FAILED, message_id="m2"))
        report.add(JobResult("c", JobOutcome.RETRYABLE, message_id="m3"))
        report.add(JobResult("d", JobOutcome.REJECTED, message_id="m4"))

        assert report.to_response() == {"batchItemFailures": [{"itemIdentifier": "m3"}]}
        assert report.count(JobOutcome.FAILED) == 1


class TestTemplate:
    """Test template definitions."""

    def test_duplicate_step_names_rejected(self):
        step = Step("a", lambda ctx: None)

        with pytest.raises(ValueError):
            Template(id="t", steps=[step, Step("a", lambda ctx: None)])

    def test_step_must_be_callable(self):
        with pytest.raises(ValueError):
            Step("a", "not callable")

    def test_step_names_in_order(self):
        tpl = Template(id="t", steps=[Step("b", print), Step("a", print)])

        assert tpl.step_names == ["b", "a"]
        assert not tpl.has_webhook
