"""Runs one processing job end to end."""

import hashlib
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from domain.models import (
    ASSEMBLY_COMPLETED, AssemblyState, ErrorKind, JobOutcome, JobResult,
    ProcessingJob, UploadEntry
)
from domain.templates import Template
from domain.protocols import (
    IMetricsCollector, IObjectStorage, IStatusStore, ITempStorage, IWebhookNotifier
)
from domain.exceptions import (
    AssemblyAlreadyStartedError, AssemblyNotFoundError, DomainException,
    ExternalToolError, TemplateNotFoundError, ValidationError, WebhookDeliveryError
)
from application.paths import output_prefix, user_root
from application.registry import TemplateRegistry
from application.step_context import OutputTarget, StepContext
from infrastructure.config.loader import PipelineSettings
from infrastructure.media.tools import ToolRunner
from shared.logging import assembly_logger, get_logger
from shared.metrics import MetricsCollector

logger = get_logger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def file_md5(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


class JobProcessor:
    """
    Executes a job: validate, claim, run template steps, record the outcome.

    The status record is claimed with a conditional create before the first
    step runs, so a redelivered message for an assembly that already started
    is a no-op. The one exception is a record whose steps all ran but whose
    final write was lost; a redelivery only records the completion. Every
    job gets its own scratch directory, removed on every exit path.
    Failures are confined to the job that raised them.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        storage: IObjectStorage,
        status: IStatusStore,
        registry: TemplateRegistry,
        notifier: IWebhookNotifier,
        temp_storage: ITempStorage,
        tools: Optional[ToolRunner] = None,
        metrics: Optional[IMetricsCollector] = None
    ):
        self.settings = settings
        self._storage = storage
        self._status = status
        self._registry = registry
        self._notifier = notifier
        self._temp = temp_storage
        self._tools = tools or ToolRunner()
        self._metrics = metrics or MetricsCollector()
        self._logger = get_logger(__name__)

    def process_job(self, job: ProcessingJob, message_id: Optional[str] = None) -> JobResult:
        """Process a job and report how it ended; never raises."""
        try:
            result = self._process(job)
        except Exception as e:
            self._logger.exception(f"Unexpected error processing {job.assembly_id}: {e}")
            result = JobResult(job.assembly_id, JobOutcome.RETRYABLE, str(e))
        result.message_id = message_id
        self._metrics.increment_counter(f"jobs_{result.outcome.value}")
        return result

    def _process(self, job: ProcessingJob) -> JobResult:
        assembly_id = job.assembly_id
        self._logger.info(f"Processing {assembly_id} with template {job.template_id}")

        try:
            self.check_buckets(job)
        except ValidationError as e:
            self._logger.error(f"Rejected {assembly_id}: {e}")
            return JobResult(assembly_id, JobOutcome.REJECTED, str(e))

        try:
            existing = self._existing_record(assembly_id)
            state = AssemblyState.of(existing)
            resuming = self.awaits_final_write(existing)
            if state is not AssemblyState.PENDING_UPLOAD and not resuming:
                self._logger.info(f"Skipping {assembly_id}: already {state.value}")
                return JobResult(assembly_id, JobOutcome.DUPLICATE)
            template = self._registry.resolve(job.template_id)
        except TemplateNotFoundError as e:
            self._logger.error(f"Job {assembly_id} failed: {e}")
            fields = self._error_fields(job, ErrorKind.TEMPLATE_NOT_FOUND, str(e))
            if not self._write_terminal(job, fields):
                return JobResult(assembly_id, JobOutcome.RETRYABLE, "final status not recorded")
            self.cleanup_inputs(job)
            return JobResult(assembly_id, JobOutcome.FAILED, str(e))
        except DomainException as e:
            self._logger.warning(f"Job {assembly_id} will be retried: {e}")
            return JobResult(assembly_id, JobOutcome.RETRYABLE, str(e))

        if resuming:
            return self._finish_recorded_steps(job, template, existing)

        output_bucket = self.output_bucket_for(job, template)
        metrics = MetricsCollector()

        with self._temp.workspace(assembly_id) as tmp_dir:
            try:
                ctx, record = self._claim(job, template, existing, tmp_dir, output_bucket)
            except AssemblyAlreadyStartedError:
                self._logger.info(f"Skipping {assembly_id}: claimed by another delivery")
                return JobResult(assembly_id, JobOutcome.DUPLICATE)
            except ValidationError as e:
                self._logger.error(f"Rejected {assembly_id}: {e}")
                return JobResult(assembly_id, JobOutcome.REJECTED, str(e))
            except Exception as e:
                self._logger.warning(f"Job {assembly_id} will be retried: {e}")
                return JobResult(assembly_id, JobOutcome.RETRYABLE, str(e))

            started = time.monotonic()
            try:
                self._run_steps(template, ctx, metrics)
            except Exception as e:
                self._logger.exception(f"Job {assembly_id} failed in step {ctx.current_step_name}: {e}")
                kind = ErrorKind.EXTERNAL_TOOL_ERROR if isinstance(e, ExternalToolError) else ErrorKind.PROCESSING_ERROR
                fields = self._error_fields(job, kind, str(e))
                fields["results"] = ctx.results_dict()
                outcome, error = JobOutcome.FAILED, str(e)
            else:
                fields = self._success_fields(template, ctx.results_dict(), time.monotonic() - started)
                outcome, error = JobOutcome.COMPLETED, None

            if not self._write_terminal(job, fields):
                return JobResult(assembly_id, JobOutcome.RETRYABLE, "final status not recorded")

        self._after_terminal(job, template, {**record, **fields})
        self._logger.info(f"Job {assembly_id} {outcome.value}: {metrics.get_summary()}")
        return JobResult(assembly_id, outcome, error)

    @staticmethod
    def awaits_final_write(record: Optional[Dict[str, Any]]) -> bool:
        """True for a started record whose steps all ran but which never became terminal."""
        if AssemblyState.of(record) is not AssemblyState.PROCESSING:
            return False
        total = record.get("steps_total")
        return bool(total) and record.get("steps_completed") == total

    def _finish_recorded_steps(self, job: ProcessingJob, template: Template, record: Dict[str, Any]) -> JobResult:
        """Complete an assembly from an earlier delivery whose final write was lost."""
        self._logger.info(f"Recording completion of {job.assembly_id} from an earlier delivery")
        fields = self._success_fields(template, record.get("results") or {})
        if not self._write_terminal(job, fields):
            return JobResult(job.assembly_id, JobOutcome.RETRYABLE, "final status not recorded")
        self._after_terminal(job, template, {**record, **fields})
        return JobResult(job.assembly_id, JobOutcome.COMPLETED)

    def _after_terminal(self, job: ProcessingJob, template: Template, fallback: Dict[str, Any]) -> None:
        self.cleanup_inputs(job)
        if template.has_webhook:
            self.notify(template, job.assembly_id, fallback)

    def check_buckets(self, job: ProcessingJob) -> None:
        """
        Raises:
            ValidationError: If an input lives outside the allowed buckets
        """
        allowed = set(self.settings.input_buckets)
        denied = [b for b in job.buckets if b not in allowed]
        if denied:
            raise ValidationError(f"Bucket(s) not allowed: {', '.join(denied)}")

    def output_bucket_for(self, job: ProcessingJob, template: Template) -> str:
        return template.output_bucket or self.settings.output_bucket or job.objects[0].bucket

    def _existing_record(self, assembly_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._status.get(assembly_id)
        except AssemblyNotFoundError:
            return None

    def _claim(
        self,
        job: ProcessingJob,
        template: Template,
        existing: Optional[Dict[str, Any]],
        tmp_dir: Path,
        output_bucket: str
    ) -> Tuple[StepContext, Dict[str, Any]]:
        """Download inputs, build the step context and write the initial record."""
        input_paths, uploads = self._download_inputs(job, tmp_dir)

        ctx = StepContext(
            job=job,
            input_paths=input_paths,
            output=OutputTarget(output_bucket, output_prefix(job, template.output_prefix)),
            tmp_dir=tmp_dir,
            storage=self._storage,
            tools=self._tools,
            uploads=uploads,
            user_root=user_root(job.branch, job.user.user_id, template.output_prefix or "outputs") if job.user else None
        )

        now = utc_now()
        bytes_expected = sum(u.size for u in uploads)
        record: Dict[str, Any] = {
            "assembly_id": job.assembly_id,
            "message": "Processing started",
            "project": self.settings.project,
            "branch": job.branch,
            "template_id": template.id,
            "user": {"userId": job.user.user_id} if job.user else None,
            "uploads": [u.to_dict() for u in uploads],
            "results": {},
            "bytes_expected": bytes_expected,
            "bytes_received": bytes_expected,
            "steps_total": len(template.steps),
            "steps_completed": 0,
            "current_step": 0,
            "progress_pct": 0,
            "execution_start": now,
            "created_at": (existing or {}).get("created_at") or now,
            "updated_at": now,
        }
        record = {k: v for k, v in record.items() if v is not None}
        self._status.create(record)
        return ctx, record

    def _download_inputs(self, job: ProcessingJob, tmp_dir: Path) -> Tuple[List[Path], List[UploadEntry]]:
        input_paths = []
        uploads = []
        for index, ref in enumerate(job.objects):
            head = self._storage.head(ref)
            local = tmp_dir / ref.name
            if local.exists():
                # Same basename under a different prefix
                local = tmp_dir / f"input{index}" / ref.name
            self._storage.download(ref, local)
            input_paths.append(local)
            uploads.append(UploadEntry(
                id=f"upload_{uuid.uuid4().hex}",
                name=ref.name,
                size=local.stat().st_size,
                mime=head.content_type,
                md5hash=file_md5(local)
            ))
        return input_paths, uploads

    def _run_steps(self, template: Template, ctx: StepContext, metrics: MetricsCollector) -> None:
        total = len(template.steps)
        log = assembly_logger(__name__, ctx.assembly_id)
        for index, step in enumerate(template.steps):
            ctx.current_step_name = step.name
            self._status.update(ctx.assembly_id, {
                "steps_completed": index,
                "current_step": index + 1,
                "current_step_name": step.name,
                "progress_pct": index * 100 // total,
                "message": f"Running step {step.name}",
                "updated_at": utc_now(),
            })

            log.info(f"Step {index + 1}/{total}: {step.name}")
            with metrics.timed(f"step_{step.name}"):
                step.run(ctx)

            self._status.update(ctx.assembly_id, {
                "steps_completed": index + 1,
                "progress_pct": (index + 1) * 100 // total,
                "results": ctx.results_dict(),
                "updated_at": utc_now(),
            })

    def _success_fields(
        self,
        template: Template,
        results: Dict[str, Any],
        duration: Optional[float] = None
    ) -> Dict[str, Any]:
        now = utc_now()
        fields = {
            "ok": ASSEMBLY_COMPLETED,
            "message": "Processing completed",
            "progress_pct": 100,
            "steps_completed": len(template.steps),
            "last_job_completed": now,
            "results": results,
            "updated_at": now,
        }
        if duration is not None:
            fields["execution_duration"] = round(duration, 3)
        return fields

    @staticmethod
    def _error_fields(job: ProcessingJob, kind: str, message: str) -> Dict[str, Any]:
        now = utc_now()
        return {
            "error": kind,
            "message": message,
            "template_id": job.template_id,
            "branch": job.branch,
            "progress_pct": 100,
            "last_job_completed": now,
            "updated_at": now,
        }

    def _write_terminal(self, job: ProcessingJob, fields: Dict[str, Any]) -> bool:
        """Persist the final fields; False when the store refused them."""
        try:
            self._status.update(job.assembly_id, fields)
        except DomainException as e:
            self._logger.error(f"Could not record final status of {job.assembly_id}, leaving it for redelivery: {e}")
            return False
        return True

    def cleanup_inputs(self, job: ProcessingJob) -> None:
        """Delete inputs held in the upload bucket; other buckets are left alone."""
        temp_bucket = self.settings.upload_bucket
        if not temp_bucket:
            return
        for ref in job.objects:
            if ref.bucket != temp_bucket:
                continue
            try:
                self._storage.delete(ref)
            except DomainException as e:
                self._logger.warning(f"Could not delete input {ref}: {e}")

    def notify(self, template: Template, assembly_id: str, fallback: Dict[str, Any]) -> None:
        """Send the stored record to the template's webhook; failures are logged only."""
        try:
            payload = self._status.get(assembly_id)
        except DomainException as e:
            self._logger.warning(f"Using local record for webhook of {assembly_id}: {e}")
            payload = fallback

        try:
            attempts = self._notifier.deliver(
                template.webhook_url,
                payload,
                secret=template.webhook_secret,
                max_retries=self.settings.webhook_max_retries
            )
            self._logger.info(f"Webhook for {assembly_id} delivered after {attempts} attempt(s)")
        except WebhookDeliveryError as e:
            self._logger.error(f"Webhook for {assembly_id} failed after {e.attempts} attempt(s): {e}")
