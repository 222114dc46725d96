"""
Sequential export worker.

Drains `transcribed` captures oldest first through the export writer.
A transient failure skips only the affected capture; a fatal failure stops
the pass and leaves the writer halted.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..schemas.capture import CaptureStatus, ErrorStage, ExportMode
from ..schemas.identifiers import InvalidIdentifier
from ..state_store import CaptureRecord, LedgerStore
from ..vault import render_markdown
from .exporter import (
    AtomicExportWriter,
    ExportHaltedError,
    FatalExportError,
    TransientExportError,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkerReport:
    """Counts from one export pass."""

    exported: int = 0
    duplicates: int = 0
    placeholders: int = 0
    failed: list[str] = field(default_factory=list)
    halted: bool = False
    halt_reason: str | None = None

    @property
    def processed(self) -> int:
        return self.exported + self.duplicates + self.placeholders


class ExportWorker:
    """Runs export passes over the ledger."""

    def __init__(
        self,
        store: LedgerStore,
        writer: AtomicExportWriter,
        vault_root: Path | str,
        renderer: Callable[[CaptureRecord], str] = render_markdown,
    ):
        self.store = store
        self.writer = writer
        self.vault_root = Path(vault_root)
        self.renderer = renderer

    def run_once(self, limit: int | None = None) -> WorkerReport:
        """
        Publish pending captures.

        Args:
            limit: Maximum captures to attempt in this pass

        Returns:
            WorkerReport
        """
        report = WorkerReport()
        if self.writer.halted:
            report.halted = True
            report.halt_reason = self.writer.halt_reason
            logger.warning(f"Export pass skipped, writer halted: {self.writer.halt_reason}")
            return report

        pending = self.store.list_captures_by_status(CaptureStatus.TRANSCRIBED, limit=limit)
        logger.info(f"Export pass: {len(pending)} captures pending")

        for capture in pending:
            try:
                result = self.writer.publish(capture.id, self.renderer(capture), self.vault_root)
            except TransientExportError as e:
                logger.warning(str(e))
                report.failed.append(capture.id)
                continue
            except InvalidIdentifier as e:
                logger.error(str(e))
                self.store.record_error(ErrorStage.EXPORT, str(e), capture_id=capture.id)
                report.failed.append(capture.id)
                continue
            except (FatalExportError, ExportHaltedError) as e:
                logger.error(f"Export pass stopped: {e}")
                report.halted = True
                report.halt_reason = self.writer.halt_reason
                break

            if result.mode is ExportMode.INITIAL:
                report.exported += 1
            elif result.mode is ExportMode.DUPLICATE_SKIP:
                report.duplicates += 1
            else:
                report.placeholders += 1

        logger.info(
            f"Export pass done: {report.exported} exported, {report.duplicates} duplicates, "
            f"{report.placeholders} placeholders, {len(report.failed)} failed"
        )
        return report
