"""Scenario runner for the greeting pipeline.

A run takes a baseline of the greeting log, submits the generated greetings to
the receiver and then polls the API log until every greeting shows up as
processed or the poll deadline passes.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from rich.progress import Progress, TaskID

from .clients import GreetingApiClient, GreetingReceiverClient
from .config import RunnerConfig
from .errors import E2EError, GenerationError, SubmissionError, TransientPollError, VerificationTimeout
from .generators import MessageGenerator
from .models import GreetingLogEntry, GreetingSubmission, RunOutcome, RunState, TestTask, VerificationResult

logger = logging.getLogger(__name__)

_TERMINAL_STATES = {RunState.SUCCEEDED, RunState.TIMED_OUT, RunState.SUBMISSION_FAILED}


class ScenarioRunner:
    def __init__(
        self,
        config: RunnerConfig,
        receiver: GreetingReceiverClient,
        api: GreetingApiClient,
        generator: MessageGenerator,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        progress: Progress | None = None,
    ):
        self.config = config
        self.receiver = receiver
        self.api = api
        self.generator = generator
        self.clock = clock
        self.sleep = sleep
        self.progress = progress

        self.state = RunState.NOT_STARTED
        self.offset = 0
        self.poll_attempts = 0
        self.tasks: list[TestTask] = []
        # Pending tasks, indexed by receiver message id and by external reference.
        self._pending: dict[str, TestTask] = {}
        self._pending_refs: dict[str, TestTask] = {}
        self._last_page_size = 0
        self._verify_bar: TaskID | None = None

    def run(self) -> RunOutcome:
        """Submit the greetings and wait for the API to confirm them.

        Returns:
            A passing outcome once every greeting is verified.

        Raises:
            ApiError: the baseline log entry could not be read.
            GenerationError: no greeting could be generated.
            SubmissionError: the receiver rejected a greeting or was unreachable.
            VerificationTimeout: the deadline passed with greetings still pending.
        """
        started = self.clock()
        try:
            self.offset = self._read_baseline()
            submissions = self._generate()
        except E2EError:
            self.state = RunState.FAILED
            raise
        self._submit(submissions)
        self._verify()

        elapsed = self.clock() - started
        logger.info("All %d greetings verified in %.2fs", len(self.tasks), elapsed)
        return RunOutcome(
            passed=self._all_verified(),
            state=self.state,
            elapsed_seconds=elapsed,
            tasks=tuple(self.tasks),
        )

    def _read_baseline(self) -> int:
        entry = self.api.get_last_log_entry(timeout=self.config.request_timeout_seconds)
        offset = entry.id if entry is not None else 0
        logger.info("Greeting log baseline offset: %d", offset)
        return offset

    def _generate(self) -> list[GreetingSubmission]:
        count = self.config.num_iterations
        bar = self._add_bar("Generating messages", count)
        submissions = []
        for _ in range(count):
            try:
                generated = self.generator.generate()
            except GenerationError as exc:
                logger.error("Failed generating message: %s", exc)
                continue
            finally:
                self._advance(bar)
            submissions.append(GreetingSubmission.from_generated(generated))

        if not submissions:
            raise GenerationError(f"None of the {count} greeting messages could be generated")
        logger.info("Generated %d/%d greeting messages", len(submissions), count)
        return submissions

    def _submit(self, submissions: list[GreetingSubmission]) -> None:
        bar = self._add_bar("Sending messages", len(submissions))
        for submission in submissions:
            try:
                receipt = self.receiver.send(submission, timeout=self.config.request_timeout_seconds)
            except SubmissionError:
                self.state = RunState.SUBMISSION_FAILED
                logger.error("Submitting greeting %s failed; aborting run", submission.external_reference)
                raise
            if receipt.message_id in self._pending:
                self.state = RunState.SUBMISSION_FAILED
                raise SubmissionError(
                    f"Receiver returned message id {receipt.message_id} for more than one greeting"
                )
            task = TestTask(submission=submission, message_id=receipt.message_id)
            self.tasks.append(task)
            self._pending[receipt.message_id] = task
            self._pending_refs[submission.external_reference] = task
            self._advance(bar)
            logger.debug("Greeting %s accepted as message %s", submission.external_reference, receipt.message_id)

        self.state = RunState.SUBMITTED
        logger.info("Submitted %d greetings", len(self.tasks))

    def verify_once(self, timeout: float | None = None) -> VerificationResult:
        """Run one poll attempt against the API log.

        Matching entries mark their tasks verified and every entry read moves
        the offset forward. The result is ``processed`` once nothing is pending.
        """
        self.poll_attempts += 1
        self._last_page_size = 0
        request_timeout = self.config.request_timeout_seconds if timeout is None else timeout
        try:
            entries = self.api.get_log_entries(self.offset + 1, self.config.log_page_limit, timeout=request_timeout)
        except TransientPollError as exc:
            logger.warning("Poll attempt %d failed: %s", self.poll_attempts, exc)
            return VerificationResult(processed=False, error=str(exc))

        self._last_page_size = len(entries)
        if entries:
            logger.debug("Found %d log entries after offset %d", len(entries), self.offset)

        matched = None
        for entry in entries:
            task = self._match(entry)
            if task is not None:
                task.log_entry = entry
                matched = entry
                self._advance(self._verify_bar)
            self.offset = max(self.offset, entry.id)
        return VerificationResult(processed=self._all_verified(), entry=matched)

    def _match(self, entry: GreetingLogEntry) -> TestTask | None:
        """Find the pending task for a log entry by message id, else by external reference."""
        task = self._pending.get(entry.message_id) if entry.message_id else None
        if task is None and entry.external_reference:
            task = self._pending_refs.get(entry.external_reference)
        if task is None:
            return None
        self._pending.pop(task.message_id, None)
        self._pending_refs.pop(task.submission.external_reference, None)
        return task

    def _all_verified(self) -> bool:
        return bool(self.tasks) and all(task.verified for task in self.tasks)

    def _verify(self) -> None:
        interval = self.config.poll_interval_seconds
        deadline = self.clock() + self.config.poll_timeout_seconds
        self._verify_bar = self._add_bar("Verifying messages", len(self.tasks))
        self.state = RunState.POLLING

        while self.clock() < deadline:
            remaining = deadline - self.clock()
            result = self.verify_once(timeout=min(self.config.request_timeout_seconds, remaining))
            if result.processed:
                self.state = RunState.SUCCEEDED
                return
            # A full page means the log holds more entries; read on without waiting.
            if self._last_page_size >= self.config.log_page_limit:
                continue
            remaining = deadline - self.clock()
            if remaining > 0:
                self.sleep(min(interval, remaining))

        self.state = RunState.TIMED_OUT
        pending = sorted(task.message_id for task in self.tasks if not task.verified)
        raise VerificationTimeout(
            f"{len(pending)} of {len(self.tasks)} greetings not verified within "
            f"{self.config.poll_timeout_seconds:g}s: {', '.join(pending)}",
            pending=pending,
            attempts=self.poll_attempts,
        )

    def _add_bar(self, description: str, total: int) -> TaskID | None:
        if self.progress is None:
            return None
        return self.progress.add_task(f"{description:<20}", total=total)

    def _advance(self, bar: TaskID | None) -> None:
        if self.progress is not None and bar is not None:
            self.progress.advance(bar, 1)


def execute(runner: ScenarioRunner) -> RunOutcome:
    """Run a scenario and turn any runner error into a failing outcome."""
    started = runner.clock()
    try:
        return runner.run()
    except E2EError as exc:
        logger.error("Scenario failed: %s", exc)
        state = runner.state if runner.state in _TERMINAL_STATES else RunState.FAILED
        return RunOutcome(
            passed=False,
            state=state,
            message=str(exc),
            error_kind=type(exc).__name__,
            exit_code=exc.exit_code,
            elapsed_seconds=runner.clock() - started,
            tasks=tuple(runner.tasks),
        )
