from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

import gradio as gr
from PIL import Image

from amigurumi.config import (
    CONCEPT_PRESETS,
    DEFAULT_COLOR_COUNT,
    DEFAULT_STYLE,
    setup_logging,
)
from amigurumi.errors import ExportFailure
from amigurumi.images import data_url_from_path, is_image_file, to_pil
from amigurumi.llm.gemini import GeminiClient
from amigurumi.orchestrator import Orchestrator
from amigurumi.state import Concept, GenerationInputs, GenerationStatus

logger = logging.getLogger(__name__)

TABLE_HEADERS = ["#", "Name", "Description", "Colors", "Size", "Yarn", "Hook", "Image"]
PLACEHOLDER_COLOR = (241, 245, 249)

STATUS_TEXT = {
    GenerationStatus.IDLE: "Upload reference images and generate a collection.",
    GenerationStatus.GENERATING_CONCEPTS: "**Synthesizing patterns...** Extracting stylistic DNA from your references.",
    GenerationStatus.COMPLETE: "**Generated Concepts**",
    GenerationStatus.ERROR: "Concept generation failed.",
}

View = Tuple[Any, ...]


def _new_orchestrator() -> Orchestrator:
    try:
        client = GeminiClient.from_env()
    except RuntimeError as e:
        raise gr.Error(str(e))
    return Orchestrator(client, output_dir=client.settings.output_dir)


def _placeholder() -> Image.Image:
    return Image.new("RGB", (512, 512), PLACEHOLDER_COLOR)


def _image_label(concept: Concept) -> str:
    if concept.is_generating_image:
        return "generating..."
    return "ready" if concept.image_url else "missing"


def _gallery_items(concepts: Sequence[Concept]) -> List[Tuple[Image.Image, str]]:
    items = []
    for i, c in enumerate(concepts):
        img = _placeholder()
        if c.image_url:
            try:
                img = to_pil(c.image_url)
            except (ValueError, OSError) as e:
                logger.warning("Cannot display image for %r: %s", c.name, e)
        items.append((img, f"#{i + 1} {c.name} ({_image_label(c)})"))
    return items


def _table_rows(concepts: Sequence[Concept]) -> List[List[Any]]:
    return [
        [i + 1, c.name, c.description, c.color_scheme, c.size, c.yarn, c.hook, _image_label(c)]
        for i, c in enumerate(concepts)
    ]


def _status_markdown(orch: Orchestrator) -> str:
    run = orch.run
    text = STATUS_TEXT.get(run.status, run.status.value)
    if run.status is GenerationStatus.COMPLETE:
        text += f"\n\n{run.summary}"
        if run.is_generating_images:
            text += f"\n\nRendering images... {run.missing_images} still missing."
    return text


def _view(orch: Optional[Orchestrator]) -> View:
    if orch is None:
        return orch, STATUS_TEXT[GenerationStatus.IDLE], gr.update(value="", visible=False), [], []
    error = orch.error
    return (
        orch,
        _status_markdown(orch),
        gr.update(value=f"**Error:** {error}" if error else "", visible=bool(error)),
        _gallery_items(orch.concepts),
        _table_rows(orch.concepts),
    )


async def _read_references(files: Optional[Sequence[Any]]) -> List[str]:
    images: List[str] = []
    for f in files or []:
        p = f if isinstance(f, str) else getattr(f, "name", None)
        if p and is_image_file(p):
            images.append(await asyncio.to_thread(data_url_from_path, p))
    return images


async def _stream(orch: Orchestrator, task: asyncio.Future, poll: float = 0.5) -> AsyncIterator[View]:
    # show progress while the foreground task runs, then follow queued image work
    while not task.done():
        yield _view(orch)
        await asyncio.wait({task}, timeout=poll)
    try:
        task.result()
    except (ValueError, RuntimeError) as e:
        raise gr.Error(str(e))
    yield _view(orch)
    async for _ in orch.updates(poll):
        yield _view(orch)


async def on_generate(orch, files, color_count, style, mode, character) -> AsyncIterator[View]:
    images = await _read_references(files)
    try:
        GenerationInputs.build(images, color_count, style, mode, character)
    except ValueError as e:
        raise gr.Error(str(e))
    orch = orch or _new_orchestrator()
    task = asyncio.ensure_future(orch.generate(images, color_count, style, mode, character))
    await asyncio.sleep(0)
    async for view in _stream(orch, task):
        yield view


async def on_regenerate(orch) -> AsyncIterator[View]:
    if orch is None:
        yield _view(orch)
        return
    task = asyncio.ensure_future(orch.regenerate_missing_images())
    async for view in _stream(orch, task):
        yield view


async def on_single(orch, card_number) -> AsyncIterator[View]:
    if orch is None:
        yield _view(orch)
        return
    task = asyncio.ensure_future(orch.generate_image_for(int(card_number or 0) - 1))
    async for view in _stream(orch, task):
        yield view


async def on_download(orch):
    if orch is None or not orch.can_download:
        gr.Warning("Nothing to download yet: wait until all images have settled.")
        return (*_view(orch), None)
    try:
        path = await orch.download_archive()
    except ExportFailure:
        return (*_view(orch), None)
    return (*_view(orch), str(path))


def on_reset(orch) -> View:
    if orch is not None:
        orch.reset()
    return _view(orch)


def on_dismiss(orch) -> View:
    if orch is not None:
        orch.dismiss_error()
    return _view(orch)


def app() -> gr.Blocks:
    with gr.Blocks(title="Amigurumi Architect") as demo:
        gr.Markdown("""
        # Amigurumi Architect
        - Upload several reference images: their shared stitch style, proportions and palette define the design DNA.
        - Generate 10 cohesive crochet toy concepts, then an illustrative image for each one.
        - Download everything as a zip with one folder per concept.
        """)
        orch_state = gr.State(None)

        with gr.Row():
            refs = gr.Files(label="Reference images", file_types=["image"], type="filepath")
            with gr.Column():
                mode = gr.Radio(["diverse", "specific"], value="diverse", label="Generation mode")
                character = gr.Textbox(label="Target character (specific mode)", placeholder="e.g. Bunny")
                color_count = gr.Slider(1, 8, value=DEFAULT_COLOR_COUNT, step=1, label="Color count")
                style = gr.Textbox(label="Style / theme", value=DEFAULT_STYLE)
                preset = gr.Dropdown(CONCEPT_PRESETS, label="Theme presets")
                generate_btn = gr.Button("Generate Collection", variant="primary")

        status = gr.Markdown(STATUS_TEXT[GenerationStatus.IDLE])
        with gr.Row():
            error = gr.Markdown(visible=False)
            dismiss_btn = gr.Button("Dismiss", size="sm")

        gallery = gr.Gallery(label="Generated Concepts", columns=4)
        table = gr.Dataframe(headers=TABLE_HEADERS, interactive=False, wrap=True)

        with gr.Row():
            regen_btn = gr.Button("Regenerate Missing Images")
            card = gr.Number(value=1, precision=0, label="Card #")
            single_btn = gr.Button("Generate Image for Card")
            download_btn = gr.Button("Download All Outputs", variant="primary")
            reset_btn = gr.Button("Back to Upload")
        zip_file = gr.File(label="Download Amigurumi_Concepts.zip", interactive=False)

        view = [orch_state, status, error, gallery, table]
        preset.change(lambda p: p or gr.update(), inputs=[preset], outputs=[style])
        generate_btn.click(on_generate, inputs=[orch_state, refs, color_count, style, mode, character], outputs=view)
        regen_btn.click(on_regenerate, inputs=[orch_state], outputs=view)
        single_btn.click(on_single, inputs=[orch_state, card], outputs=view)
        download_btn.click(on_download, inputs=[orch_state], outputs=view + [zip_file])
        reset_btn.click(on_reset, inputs=[orch_state], outputs=view)
        dismiss_btn.click(on_dismiss, inputs=[orch_state], outputs=view)

    return demo


if __name__ == "__main__":
    setup_logging()
    app().queue().launch(server_name="0.0.0.0", server_port=7860)
