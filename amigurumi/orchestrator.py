from __future__ import annotations

import asyncio
import logging
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import AsyncIterator, Awaitable, List, Optional, Protocol, Set, Tuple

from .archive import write_archive
from .errors import ExportFailure
from .state import Concept, GenerationInputs, GenerationMode, GenerationRun, GenerationStatus

logger = logging.getLogger(__name__)


class ConceptBackend(Protocol):
    async def generate_concepts(
        self,
        images: List[str],
        color_count: int,
        style: str,
        mode: GenerationMode,
        character: str,
    ) -> List[Concept]: ...

    async def generate_image(self, concept: Concept) -> str: ...


class Orchestrator:
    """Owns one GenerationRun and drives concept and image generation for it.

    Every change to the concept batch replaces ``run`` with a new value built
    from the old one, so interleaved per-item completions never overwrite each
    other. Image results are applied by concept id; results for a concept that
    is no longer in the batch (after a reset or a new run) are dropped.
    """

    def __init__(
        self,
        client: ConceptBackend,
        *,
        auto_generate_images: bool = True,
        output_dir: Optional[str | Path] = None,
    ) -> None:
        self.client = client
        self.auto_generate_images = auto_generate_images
        self.output_dir = output_dir
        self._export_dir: Optional[Path] = None
        self._run = GenerationRun()
        self._tasks: Set[asyncio.Task] = set()
        self._changed = asyncio.Event()

    @property
    def run(self) -> GenerationRun:
        return self._run

    def _set_run(self, run: GenerationRun) -> None:
        self._run = run
        self._changed.set()

    @property
    def status(self) -> GenerationStatus:
        return self._run.status

    @property
    def concepts(self) -> Tuple[Concept, ...]:
        return self._run.concepts

    @property
    def error(self) -> Optional[str]:
        return self._run.error

    @property
    def can_download(self) -> bool:
        return bool(self._run.concepts) and not self._run.is_generating_images

    @property
    def has_background_work(self) -> bool:
        return bool(self._tasks)

    # --- concept batch -----------------------------------------------------

    async def generate(
        self,
        images: List[str],
        color_count: int,
        style: str,
        mode: str | GenerationMode = GenerationMode.DIVERSE,
        character: str = "",
    ) -> None:
        """Start a new run: generate the concept batch, then queue the image pass.

        Invalid inputs raise ValueError before any state change or backend call.
        """
        inputs = GenerationInputs.build(images, color_count, style, mode, character)
        if self._run.status is GenerationStatus.GENERATING_CONCEPTS:
            raise RuntimeError("Concept generation is already running")

        run = GenerationRun(status=GenerationStatus.GENERATING_CONCEPTS, inputs=inputs)
        self._set_run(run)
        try:
            concepts = await self.client.generate_concepts(
                list(inputs.images), inputs.color_count, inputs.style, inputs.mode, inputs.character
            )
        except Exception as e:
            if self._run.batch_id != run.batch_id:
                logger.info("Dropping concept failure for a discarded run: %s", e)
                return
            logger.error("Concept generation failed: %s", e)
            self._set_run(
                replace(self._run, status=GenerationStatus.ERROR, concepts=(), error=str(e) or "An unexpected error occurred.")
            )
            return

        if self._run.batch_id != run.batch_id:
            logger.info("Dropping %d concepts for a discarded run", len(concepts))
            return
        self._set_run(replace(self._run, status=GenerationStatus.COMPLETE, concepts=tuple(concepts)))
        logger.info("Generated %d concepts", len(concepts))
        if self.auto_generate_images:
            self._enqueue(self.generate_all_images())

    def reset(self) -> None:
        self._set_run(GenerationRun())

    def dismiss_error(self) -> None:
        if self._run.error is not None:
            self._set_run(replace(self._run, error=None))

    # --- images ------------------------------------------------------------

    async def generate_image_for(self, index: int) -> bool:
        """Generate the image of one concept; a no-op if it has one or is in flight."""
        if self._run.status is not GenerationStatus.COMPLETE:
            return False
        if not 0 <= index < len(self._run.concepts):
            return False
        return await self._generate_one(self._run.concepts[index].id)

    async def generate_all_images(self) -> int:
        """Sequential pass over the batch, one request at a time, in list order."""
        batch_id = self._run.batch_id
        generated = 0
        for concept in self._run.concepts:
            if self._run.batch_id != batch_id or self._run.status is not GenerationStatus.COMPLETE:
                break
            if await self._generate_one(concept.id):
                generated += 1
        return generated

    async def regenerate_missing_images(self) -> int:
        if self._run.status is not GenerationStatus.COMPLETE:
            return 0
        return await self.generate_all_images()

    async def _generate_one(self, concept_id: str) -> bool:
        # check and mark in flight with no await in between
        idx = self._run.index_of(concept_id)
        if idx < 0:
            return False
        concept = self._run.concepts[idx]
        if concept.image_url or concept.is_generating_image:
            return False
        self._set_run(self._run.replace_concept(concept_id, is_generating_image=True))

        try:
            image_url = await self.client.generate_image(concept)
        except Exception as e:
            logger.warning("Failed to generate image for %r: %s", concept.name, e)
            self._set_run(self._run.replace_concept(concept_id, is_generating_image=False))
            return False

        if self._run.index_of(concept_id) < 0:
            logger.info("Dropping image for %r: concept no longer in the batch", concept.name)
            return False
        self._set_run(self._run.replace_concept(concept_id, image_url=image_url, is_generating_image=False))
        return True

    # --- background work ---------------------------------------------------

    def _enqueue(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_background(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def updates(self, poll: float = 0.5) -> AsyncIterator[GenerationRun]:
        """Yield the run after each change until no image work is pending."""
        while self._tasks or self._run.is_generating_images:
            self._changed.clear()
            try:
                await asyncio.wait_for(self._changed.wait(), poll)
            except asyncio.TimeoutError:
                continue
            yield self._run
        yield self._run

    # --- export ------------------------------------------------------------

    async def download_archive(self) -> Path:
        """Write the concept archive and return its path; failures are kept as the run error."""
        concepts = self._run.concepts
        try:
            if not concepts:
                raise ExportFailure("There are no concepts to export")
            outdir = self._archive_dir()
            return await asyncio.to_thread(write_archive, concepts, outdir)
        except ExportFailure as e:
            logger.error("Download all failed: %s", e)
            self._set_run(replace(self._run, error=str(e)))
            raise

    def _archive_dir(self) -> Path:
        # one temp directory per session, reused by every download
        if self.output_dir is not None:
            return Path(self.output_dir)
        if self._export_dir is None:
            try:
                self._export_dir = Path(tempfile.mkdtemp(prefix="amigurumi_"))
            except OSError as e:
                raise ExportFailure(f"Failed to create zip file: {e}") from e
        return self._export_dir
