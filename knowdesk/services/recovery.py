"""
Recovery sweep for documents that never reached a terminal state.

Runs on a schedule. Stuck PROCESSING documents are reset to PENDING, then a
small batch of the oldest PENDING documents is processed. Documents older
than the sweep window are reported and left alone.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from knowdesk.models.base import utcnow
from knowdesk.models.document import Document, DocumentStatus
from knowdesk.services.ingestion import DocumentProcessor, ProcessResult
from knowdesk.services.lifecycle import DocumentStateMachine
from knowdesk.utils.logging_config import logger


@dataclass
class SweepReport:
    reset: list[uuid.UUID] = field(default_factory=list)
    results: dict[uuid.UUID, ProcessResult] = field(default_factory=dict)
    abandoned: list[uuid.UUID] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    def as_dict(self) -> dict:
        return {
            "reset": [str(d) for d in self.reset],
            "processed": {str(d): asdict(r) for d, r in self.results.items()},
            "abandoned": [str(d) for d in self.abandoned],
        }


class RecoverySweep:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        processor: DocumentProcessor,
        state_machine: DocumentStateMachine,
        *,
        stuck_timeout: timedelta = timedelta(minutes=5),
        max_age: timedelta = timedelta(hours=24),
        batch_size: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.processor = processor
        self.lifecycle = state_machine
        self.stuck_timeout = stuck_timeout
        self.max_age = max_age
        self.batch_size = batch_size
        self.clock = clock

    def run(self) -> SweepReport:
        now = self.clock()
        window_start = now - self.max_age
        stuck_before = now - self.stuck_timeout
        report = SweepReport()

        with self.session_factory() as session:
            stuck = session.scalars(
                select(Document.id).where(
                    Document.status == DocumentStatus.PROCESSING,
                    Document.updated_at < stuck_before,
                    Document.created_at >= window_start,
                )
            ).all()

        for document_id in stuck:
            if self.lifecycle.recover(document_id):
                logger.warning(f"Reset stuck document {document_id} to pending")
                report.reset.append(document_id)

        with self.session_factory() as session:
            pending = session.scalars(
                select(Document.id)
                .where(
                    Document.status == DocumentStatus.PENDING,
                    Document.created_at >= window_start,
                )
                .order_by(Document.created_at)
                .limit(self.batch_size)
            ).all()
            report.abandoned = list(
                session.scalars(
                    select(Document.id).where(
                        Document.status.in_(
                            [DocumentStatus.PENDING, DocumentStatus.PROCESSING]
                        ),
                        Document.created_at < window_start,
                    )
                ).all()
            )

        for document_id in pending:
            report.results[document_id] = self.processor.process_document(document_id)

        for document_id in report.abandoned:
            logger.warning(
                f"Document {document_id} is older than the sweep window and was not retried"
            )

        succeeded = sum(1 for r in report.results.values() if r.success)
        logger.info(
            f"Recovery sweep: reset {len(report.reset)}, processed {report.processed} "
            f"({succeeded} succeeded), abandoned {len(report.abandoned)}"
        )
        return report
