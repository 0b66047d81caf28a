"""Preview plus master copy for each uploaded audio file."""

from application.step_context import StepContext
from domain.templates import Step, Template
from templates.preview import PREVIEW_MIME, encode_preview


def preview_and_master(ctx: StepContext) -> None:
    for input_path in ctx.input_paths:
        out = encode_preview(ctx, input_path, f"preview_{input_path.name}.mp3")
        ctx.upload_result(out, out.name, PREVIEW_MIME)
        ctx.upload_result(input_path, input_path.name, PREVIEW_MIME)


BASIC_AUDIO = Template(
    id="tpl_basic_audio",
    steps=[Step("preview", preview_and_master)]
)
