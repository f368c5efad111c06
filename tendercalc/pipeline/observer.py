"""Side-channel for import pipeline events.

The pipeline core never logs directly; it reports to an ImportObserver.
LoggingObserver is the default and writes through the logging module
(rendered by structlog once ``configure_logging`` has run).
"""

from __future__ import annotations

import logging

from tendercalc.pipeline.types import UpsertOutcome, UpsertStatus


class ImportObserver:
    """No-op observer. Subclass and override the events you care about."""

    def stage_started(self, stage: str, total: int) -> None:
        pass

    def stage_finished(self, stage: str, created: int, updated: int, failed: int) -> None:
        pass

    def entity_processed(self, outcome: UpsertOutcome) -> None:
        pass

    def mapping_skipped(self, row_number: int, reason: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def failed(self, message: str, exc: BaseException) -> None:
        pass


class LoggingObserver(ImportObserver):
    """Writes pipeline events to a standard logger."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("tendercalc.pipeline")

    def stage_started(self, stage: str, total: int) -> None:
        self.logger.info(f"Importing {total} {stage}")

    def stage_finished(self, stage: str, created: int, updated: int, failed: int) -> None:
        self.logger.info(f"✓ {stage}: {created} created, {updated} updated, {failed} failed")

    def entity_processed(self, outcome: UpsertOutcome) -> None:
        if outcome.status is UpsertStatus.FAILED:
            self.logger.error(outcome.error)
        else:
            self.logger.debug(f"{outcome.entity} {outcome.label!r} {outcome.status.value}")
        if outcome.warning:
            self.logger.warning(outcome.warning)

    def mapping_skipped(self, row_number: int, reason: str) -> None:
        self.logger.warning(reason)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def failed(self, message: str, exc: BaseException) -> None:
        self.logger.error(message, exc_info=exc)


class RecordingObserver(ImportObserver):
    """Keeps every event in memory; handy for tests and previews."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def stage_started(self, stage: str, total: int) -> None:
        self.events.append(("stage_started", stage, total))

    def stage_finished(self, stage: str, created: int, updated: int, failed: int) -> None:
        self.events.append(("stage_finished", stage, created, updated, failed))

    def entity_processed(self, outcome: UpsertOutcome) -> None:
        self.events.append(("entity", outcome.entity, outcome.label, outcome.status))

    def mapping_skipped(self, row_number: int, reason: str) -> None:
        self.events.append(("mapping_skipped", row_number, reason))

    def warning(self, message: str) -> None:
        self.events.append(("warning", message))

    def failed(self, message: str, exc: BaseException) -> None:
        self.events.append(("failed", message, type(exc).__name__))

    def of(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]
