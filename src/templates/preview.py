"""30-second MP3 preview of audio inputs."""

from pathlib import Path

from application.step_context import StepContext
from domain.templates import Step, Template
from shared.logging import get_logger

logger = get_logger(__name__)

PREVIEW_SECONDS = 30
PREVIEW_MIME = "audio/mpeg"


def preview_name(input_path: Path, multiple: bool) -> str:
    return f"preview_{input_path.stem}.mp3" if multiple else "preview.mp3"


def encode_preview(ctx: StepContext, input_path: Path, name: str) -> Path:
    """Encode the first seconds of ``input_path`` to MP3 in the scratch dir."""
    out = ctx.tmp_dir / name
    ctx.exec_ffmpeg([
        "-i", str(input_path),
        "-t", str(PREVIEW_SECONDS),
        "-acodec", "libmp3lame",
        "-y", str(out)
    ])
    return out


def probe(ctx: StepContext) -> None:
    """Record ffprobe output for every input in ``ctx.state['probe']``."""
    ctx.state["probe"] = {
        path.name: ctx.probe_json(path) for path in ctx.input_paths
    }
    ctx.publish(f"Probed {len(ctx.input_paths)} input(s)")


def make_preview(ctx: StepContext) -> None:
    multiple = len(ctx.input_paths) > 1
    for input_path in ctx.input_paths:
        out = encode_preview(ctx, input_path, preview_name(input_path, multiple))
        ctx.upload_result(out, out.name, PREVIEW_MIME)
    logger.info(f"Created {len(ctx.input_paths)} preview(s) for {ctx.assembly_id}")


PREVIEW = Template(
    id="preview",
    steps=[
        Step("probe", probe),
        Step("makePreview", make_preview),
    ]
)
