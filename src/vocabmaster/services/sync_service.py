"""Background delivery of completed sessions to the authoritative progress store."""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vocabmaster import monitoring
from vocabmaster.config import MasterySettings, ReviewIntervalSettings, SyncSettings
from vocabmaster.date_utils import utc_now
from vocabmaster.exceptions import (
    AuthorizationError,
    BatchTimeoutError,
    SyncError,
    TransportError,
    ValidationError,
)
from vocabmaster.models.base import SessionLocal
from vocabmaster.models.progress_models import (
    BatchCompletionRequest,
    BatchCompletionResponse,
    SessionFeedback,
)
from vocabmaster.services.mastery import DEFAULT_MASTERY_SETTINGS
from vocabmaster.services.progress_service import ProgressService
from vocabmaster.services.reconciler import ProgressReconciler
from vocabmaster.services.review_scheduler import DEFAULT_REVIEW_SETTINGS

logger = logging.getLogger(__name__)


class ProgressGateway(Protocol):
    """Authoritative collaborator receiving completed session batches."""

    async def complete_session(
        self,
        user_id: int,
        request: BatchCompletionRequest,
        deadline: datetime,
    ) -> BatchCompletionResponse:
        """Commit the batch, rolling back if the deadline passes before commit."""
        ...


class LocalProgressGateway:
    """Runs the authoritative pass in-process against the database."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        mastery_config: MasterySettings = DEFAULT_MASTERY_SETTINGS,
        review_config: ReviewIntervalSettings = DEFAULT_REVIEW_SETTINGS,
    ):
        self.session_factory = session_factory
        self.mastery_config = mastery_config
        self.review_config = review_config

    def _complete(self, user_id: int, request: BatchCompletionRequest, deadline: datetime) -> BatchCompletionResponse:
        db = self.session_factory()
        try:
            service = ProgressService(db, self.mastery_config, self.review_config)
            return service.complete_session(user_id, request, deadline=deadline)
        except SQLAlchemyError as e:
            raise TransportError(f"Database error while saving session: {e}") from e
        finally:
            db.close()

    async def complete_session(
        self,
        user_id: int,
        request: BatchCompletionRequest,
        deadline: datetime,
    ) -> BatchCompletionResponse:
        return await asyncio.to_thread(self._complete, user_id, request, deadline)


@dataclass
class SyncHandle:
    """Tracks one session's background save and the feedback on display."""
    user_id: int
    request: BatchCompletionRequest
    feedback: SessionFeedback
    task: Optional[asyncio.Task] = None
    response: Optional[BatchCompletionResponse] = None
    error: Optional[BaseException] = None
    corrected: bool = False
    listeners: List[Callable[[SessionFeedback], None]] = field(default_factory=list, repr=False)

    def add_listener(self, on_update: Optional[Callable[[SessionFeedback], None]]) -> None:
        if on_update is not None:
            self.listeners.append(on_update)

    @property
    def done(self) -> bool:
        return self.task is None or self.task.done()

    async def wait(self) -> SessionFeedback:
        """Wait for the background save and return the feedback to display."""
        if self.task is not None:
            await asyncio.shield(self.task)
        return self.feedback


class SessionSyncService:
    """Dispatches one batch per completed session without blocking the caller."""

    def __init__(
        self,
        gateway: ProgressGateway,
        config: Optional[SyncSettings] = None,
        reconciler: Optional[ProgressReconciler] = None,
    ):
        """Initialize the service with the authoritative gateway."""
        self.gateway = gateway
        self.config = config or SyncSettings()
        self.reconciler = reconciler or ProgressReconciler()
        self.tasks: Dict[str, asyncio.Task] = {}
        self.handles: Dict[str, SyncHandle] = {}

    def submit(
        self,
        user_id: int,
        request: BatchCompletionRequest,
        displayed: SessionFeedback,
        on_update: Optional[Callable[[SessionFeedback], None]] = None,
    ) -> SyncHandle:
        """Schedule the authoritative save of a session.

        Must be called from a running event loop. Returns immediately. A session
        that is already being saved returns the handle of that save.
        """
        request.validate()
        name = request.client_session_id
        handle = self.handles.get(name)
        if handle is not None:
            logger.warning("Session %s is already being saved", name)
            handle.add_listener(on_update)
            return handle

        handle = SyncHandle(user_id=user_id, request=request, feedback=displayed)
        handle.add_listener(on_update)
        handle.task = asyncio.create_task(self._run(handle))
        self.tasks[name] = handle.task
        self.handles[name] = handle
        handle.task.add_done_callback(lambda _: self._forget(name))
        logger.info("Scheduled background save of session %s for user %s", name, user_id)
        return handle

    def _forget(self, name: str) -> None:
        self.tasks.pop(name, None)
        self.handles.pop(name, None)

    async def save_with_retry(self, user_id: int, request: BatchCompletionRequest) -> BatchCompletionResponse:
        """Send the batch, retrying transport failures with exponential backoff.

        Each attempt gets its commit deadline before dispatch, so the check
        before commit runs against the caller's clock. An attempt that still
        commits after timing out is replayed by the retry through the client
        session id instead of being applied twice. Authorization failures are
        raised at once.
        """
        delay = self.config.backoff_seconds
        for attempt in range(1, self.config.max_attempts + 1):
            monitoring.batch_save_attempts.inc()
            deadline = utc_now() + timedelta(seconds=self.config.timeout_seconds)
            try:
                with monitoring.batch_save_duration.time():
                    return await asyncio.wait_for(
                        self.gateway.complete_session(user_id, request, deadline),
                        timeout=self.config.timeout_seconds,
                    )
            except AuthorizationError:
                logger.error("Not authorized to save progress for user %s", user_id)
                raise
            except asyncio.TimeoutError:
                error: SyncError = BatchTimeoutError(
                    f"Batch save timed out after {self.config.timeout_seconds}s"
                )
            except SyncError as e:
                error = e

            logger.warning(
                "Batch save attempt %d/%d for user %s failed: %s",
                attempt,
                self.config.max_attempts,
                user_id,
                error,
            )
            if attempt == self.config.max_attempts:
                raise error
            await asyncio.sleep(delay)
            delay *= self.config.backoff_factor

        raise TransportError("No batch save attempt was made")

    async def _run(self, handle: SyncHandle) -> None:
        try:
            response = await self.save_with_retry(handle.user_id, handle.request)
        except asyncio.CancelledError:
            raise
        except (SyncError, ValidationError) as e:
            handle.error = e
            monitoring.batch_save_failures.labels(error_type=type(e).__name__).inc()
            logger.error("Background save failed for user %s: %s", handle.user_id, e)
            return
        except Exception as e:
            handle.error = e
            monitoring.batch_save_failures.labels(error_type=type(e).__name__).inc()
            logger.exception("Unexpected error saving session for user %s", handle.user_id)
            return

        handle.response = response
        authoritative = self.reconciler.from_response(response)
        handle.feedback, handle.corrected = self.reconciler.reconcile(handle.feedback, authoritative)
        for on_update in handle.listeners:
            on_update(handle.feedback)

    async def stop(self) -> None:
        """Wait for pending saves to finish."""
        if not self.tasks:
            return
        logger.info("Waiting for %d pending session saves...", len(self.tasks))
        await asyncio.gather(*list(self.tasks.values()), return_exceptions=True)
        self.tasks.clear()
        self.handles.clear()
