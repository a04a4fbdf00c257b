"""
Batch controller - runs jobs sequentially and streams progress per session.
"""
import asyncio
from typing import List, Optional, Tuple
import logging

from fashion_prompts.config.settings import Settings
from fashion_prompts.schemas import (
    BatchOptions,
    BatchSummary,
    CurrentItem,
    ErrorKind,
    EventType,
    Job,
    JobResult,
    ProgressEvent,
    RelayBatchResult,
)
from fashion_prompts.services.abort_registry import AbortRegistry
from fashion_prompts.services.midjourney_relay import MidjourneyRelay, with_fast_mode
from fashion_prompts.services.progress_broadcaster import ProgressBroadcaster, SessionProgressSink
from fashion_prompts.services.prompt_generator import PromptGenerator
from fashion_prompts.utils.exceptions import GenerationError, PolicyRefusalError, RelayError, ValidationError
from fashion_prompts.utils.image_utils import display_name

logger = logging.getLogger(__name__)

ABORTED_MESSAGE = "Processing aborted by user"


class BatchController:
    """
    Batch orchestrator.

    One job at a time, in submission order. A failing job becomes a failed
    JobResult and the loop continues; only an abort or the end of the job
    list stops it.
    """

    def __init__(
        self,
        prompt_generator: PromptGenerator,
        relay: MidjourneyRelay,
        abort_registry: AbortRegistry,
        broadcaster: ProgressBroadcaster,
        settings: Settings,
    ):
        self.prompt_generator = prompt_generator
        self.relay = relay
        self.abort_registry = abort_registry
        self.broadcaster = broadcaster
        self.settings = settings

    def validate(self, jobs: List[Job]) -> None:
        """Reject batches that cannot start."""
        if not jobs:
            raise ValidationError("No items provided for batch processing")

        if len(jobs) > self.settings.max_batch_items:
            raise ValidationError(f"Maximum {self.settings.max_batch_items} items allowed per batch")

        seen = set()
        for job in jobs:
            if job.id in seen:
                raise ValidationError(f"Duplicate item id: {job.id}")
            seen.add(job.id)

    def _publish(self, session_id: str, event: ProgressEvent) -> None:
        try:
            self.broadcaster.publish(session_id, event)
        except Exception as e:
            logger.warning(f"Progress publish failed for session {session_id}: {e}")

    @staticmethod
    def _relay_error(relayed: RelayBatchResult) -> Tuple[Optional[str], Optional[ErrorKind]]:
        """First per-prompt error, timeouts taking precedence."""
        failed = [r for r in relayed.results if r.error]
        if not failed:
            return None, None
        timeouts = [r for r in failed if r.error_kind == ErrorKind.RELAY_TIMEOUT]
        first = timeouts[0] if timeouts else failed[0]
        return first.error, first.error_kind or ErrorKind.RELAY_PROMPT_FAILED

    async def run_batch(
        self,
        jobs: List[Job],
        session_id: str,
        options: Optional[BatchOptions] = None,
    ) -> BatchSummary:
        """
        Process every job and return the batch summary.

        Raises:
            ValidationError: empty batch, too many jobs, or duplicate job ids.
        """
        try:
            self.validate(jobs)
        except ValidationError:
            self.abort_registry.clear(session_id)
            raise
        options = options or BatchOptions()
        total = len(jobs)
        results: List[JobResult] = []
        terminal_published = False

        logger.info(
            f"Starting batch for session {session_id}: {total} items "
            f"(midjourney: {options.send_to_midjourney}, fast: {options.fast_mode})"
        )

        try:
            self._publish(session_id, ProgressEvent(
                type=EventType.BATCH_STARTED,
                total=total,
                completed=0,
                processing=0,
                status="Starting batch processing...",
            ))

            for index, job in enumerate(jobs):
                if self.abort_registry.should_abort(session_id):
                    logger.info(f"Batch {session_id} aborted before item {index + 1}/{total}")
                    summary = self._aborted(session_id, total, results)
                    terminal_published = True
                    return summary

                current = CurrentItem(
                    id=job.id,
                    file_name=display_name(job.file_name, index),
                    clothing_part=job.part_label,
                    prompt_type=job.prompt_type.value,
                )
                self._publish(session_id, ProgressEvent(
                    type=EventType.PROGRESS_UPDATE,
                    total=total,
                    completed=index,
                    processing=1,
                    current_item=current,
                    status=f"Processing image {index + 1} of {total}...",
                ))

                result, relay_aborted = await self._process_job(job, index, total, current, session_id, options)
                results.append(result)

                if result.success:
                    self._publish(session_id, ProgressEvent(
                        type=EventType.ITEM_COMPLETED,
                        total=total,
                        completed=index + 1,
                        processing=0,
                        item_result=result,
                        status=f"Completed {index + 1} of {total} images",
                    ))
                else:
                    self._publish(session_id, ProgressEvent(
                        type=EventType.ITEM_FAILED,
                        total=total,
                        completed=index + 1,
                        processing=0,
                        item_result=result,
                        status=f"Failed to process image {index + 1} of {total}",
                    ))

                if relay_aborted:
                    logger.info(f"Batch {session_id} aborted during relay of item {index + 1}/{total}")
                    summary = self._aborted(session_id, total, results)
                    terminal_published = True
                    return summary

                if index < total - 1:
                    await asyncio.sleep(self.settings.batch_item_delay_seconds)

            success_count = sum(1 for r in results if r.success)
            error_count = len(results) - success_count
            self._publish(session_id, ProgressEvent(
                type=EventType.BATCH_COMPLETED,
                total=total,
                completed=total,
                processing=0,
                results=results,
                success_count=success_count,
                error_count=error_count,
                status="Batch processing completed!",
            ))
            terminal_published = True

            logger.info(f"Batch {session_id} completed: {success_count} succeeded, {error_count} failed")
            return BatchSummary(
                success=True,
                session_id=session_id,
                results=results,
                total_processed=len(results),
                success_count=success_count,
                error_count=error_count,
            )
        finally:
            self.abort_registry.clear(session_id)
            if not terminal_published:
                self.broadcaster.detach(session_id)

    def _aborted(self, session_id: str, total: int, results: List[JobResult]) -> BatchSummary:
        success_count = sum(1 for r in results if r.success)
        error_count = len(results) - success_count
        self._publish(session_id, ProgressEvent(
            type=EventType.BATCH_ABORTED,
            total=total,
            completed=len(results),
            processing=0,
            results=results,
            success_count=success_count,
            error_count=error_count,
            aborted_at=len(results),
            status=f"Batch processing aborted by user after {len(results)} of {total} images",
        ))
        return BatchSummary(
            success=True,
            session_id=session_id,
            results=results,
            total_processed=len(results),
            success_count=success_count,
            error_count=error_count,
            aborted=True,
            aborted_at=len(results),
        )

    async def _process_job(
        self,
        job: Job,
        index: int,
        total: int,
        current: CurrentItem,
        session_id: str,
        options: BatchOptions,
    ) -> Tuple[JobResult, bool]:
        """Generate (and optionally relay) one job. Returns the result and whether the relay aborted."""
        try:
            generated = await self.prompt_generator.generate(
                job.image_base64,
                job.part_label,
                job.prompt_type,
                job.gender_type,
                job.guidance,
                job.file_name,
            )
        except PolicyRefusalError as e:
            logger.warning(f"Item {job.id}: {e}")
            return JobResult(
                id=job.id,
                success=False,
                prompt=e.raw_text,
                error=str(e),
                error_kind=ErrorKind.POLICY_REFUSAL,
            ), False
        except GenerationError as e:
            logger.error(f"Item {job.id} generation failed: {e}")
            return JobResult(
                id=job.id,
                success=False,
                prompt=e.raw_text,
                error=str(e),
                error_kind=ErrorKind.GENERATION_FAILURE,
            ), False
        except Exception as e:
            logger.error(f"Error processing item {job.id}: {e}", exc_info=True)
            return JobResult(
                id=job.id,
                success=False,
                error=str(e) or "Processing failed",
                error_kind=ErrorKind.GENERATION_FAILURE,
            ), False

        self._publish(session_id, ProgressEvent(
            type=EventType.OPENAI_PROCESSING_COMPLETE,
            total=total,
            completed=index,
            processing=1,
            current_item=current,
            status=f"Generated {len(generated.prompts)} prompts for {current.file_name}",
        ))

        result = JobResult(
            id=job.id,
            success=True,
            prompt=generated.raw_text,
            midjourney_prompts=generated.prompts,
            outfit_names=generated.names,
        )
        if not options.send_to_midjourney:
            return result, False

        prompts = generated.prompts
        if options.fast_mode:
            prompts = [with_fast_mode(p, self.settings.fast_mode_suffix) for p in prompts]

        sink = SessionProgressSink(
            self.broadcaster,
            session_id,
            snapshot=lambda: {
                "total": total,
                "completed": index,
                "processing": 1,
                "current_item": current,
            },
        )

        try:
            relayed = await self.relay.relay_batch(
                prompts,
                reference_image=job.image_base64,
                credentials=options.credentials,
                sink=sink,
                session_id=session_id,
            )
        except RelayError as e:
            logger.warning(f"Item {job.id} relay failed: {e}")
            return result.model_copy(update={
                "error": str(e),
                "error_kind": ErrorKind.RELAY_FAILURE,
            }), False
        except Exception as e:
            logger.error(f"Unexpected relay error for item {job.id}: {e}", exc_info=True)
            return result.model_copy(update={
                "error": str(e) or "Relay failed",
                "error_kind": ErrorKind.RELAY_FAILURE,
            }), False

        error, error_kind = self._relay_error(relayed)
        if relayed.aborted:
            error, error_kind = ABORTED_MESSAGE, ErrorKind.ABORTED

        return result.model_copy(update={
            "midjourney_results": relayed.results,
            "cdn_image_url": relayed.cdn_image_url,
            "error": error,
            "error_kind": error_kind,
        }), relayed.aborted
