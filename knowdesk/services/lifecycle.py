"""
Document status transitions.

Every status change goes through DocumentStateMachine. Each transition is a
single conditional UPDATE, so two workers racing on the same document cannot
both win.
"""

import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from knowdesk.errors import IllegalTransition
from knowdesk.models.base import utcnow
from knowdesk.models.document import Document, DocumentStatus

LEGAL_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset(
        {DocumentStatus.COMPLETED, DocumentStatus.FAILED, DocumentStatus.PENDING}
    ),
    DocumentStatus.COMPLETED: frozenset({DocumentStatus.PENDING}),
    DocumentStatus.FAILED: frozenset({DocumentStatus.PENDING}),
}


def check_transition(current: DocumentStatus, target: DocumentStatus) -> None:
    if target not in LEGAL_TRANSITIONS[current]:
        raise IllegalTransition(current.value, target.value)


class DocumentStateMachine:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.clock = clock

    def _guarded_update(
        self,
        session: Session,
        document_id: uuid.UUID,
        sources: Iterable[DocumentStatus],
        target: DocumentStatus,
        attempt: Optional[int] = None,
        **values,
    ) -> bool:
        sources = list(sources)
        for source in sources:
            check_transition(source, target)
        conditions = [Document.id == document_id, Document.status.in_(sources)]
        if attempt is not None:
            conditions.append(Document.attempt == attempt)
        stmt = (
            update(Document)
            .where(*conditions)
            .values(status=target, updated_at=self.clock(), **values)
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount == 1

    def _current_status(
        self, session: Session, document_id: uuid.UUID
    ) -> Optional[DocumentStatus]:
        return session.scalar(select(Document.status).where(Document.id == document_id))

    def is_current(self, document_id: uuid.UUID, attempt: int) -> bool:
        """True while the document is PROCESSING under this attempt."""
        with self.session_factory() as session:
            found = session.scalar(
                select(Document.id).where(
                    Document.id == document_id,
                    Document.status == DocumentStatus.PROCESSING,
                    Document.attempt == attempt,
                )
            )
        return found is not None

    def begin_processing(self, document_id: uuid.UUID) -> Optional[int]:
        """
        PENDING -> PROCESSING, incrementing the attempt counter.

        Returns:
            The new attempt number, or None if the document does not exist or
            another worker already took it.

        Raises:
            IllegalTransition: if the document is COMPLETED or FAILED.
        """
        with self.session_factory.begin() as session:
            won = self._begin(session, document_id)
            if won:
                return session.scalar(
                    select(Document.attempt).where(Document.id == document_id)
                )
            current = self._current_status(session, document_id)
        if current in (DocumentStatus.COMPLETED, DocumentStatus.FAILED):
            raise IllegalTransition(current.value, DocumentStatus.PROCESSING.value)
        return None

    def _begin(self, session: Session, document_id: uuid.UUID) -> bool:
        stmt = (
            update(Document)
            .where(Document.id == document_id, Document.status == DocumentStatus.PENDING)
            .values(
                status=DocumentStatus.PROCESSING,
                attempt=Document.attempt + 1,
                error_message=None,
                updated_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount == 1

    def complete(
        self,
        session: Session,
        document_id: uuid.UUID,
        attempt: int,
        chunk_count: int,
        raw_text: Optional[str],
    ) -> bool:
        """
        PROCESSING -> COMPLETED for the given attempt, inside the caller's
        transaction. Returns False when the attempt was superseded.
        """
        return self._guarded_update(
            session,
            document_id,
            [DocumentStatus.PROCESSING],
            DocumentStatus.COMPLETED,
            attempt=attempt,
            chunk_count=chunk_count,
            raw_text=raw_text,
            processed_at=self.clock(),
            error_message=None,
        )

    def fail(self, document_id: uuid.UUID, attempt: int, error_message: str) -> bool:
        with self.session_factory.begin() as session:
            return self._guarded_update(
                session,
                document_id,
                [DocumentStatus.PROCESSING],
                DocumentStatus.FAILED,
                attempt=attempt,
                error_message=error_message,
            )

    def recover(self, document_id: uuid.UUID) -> bool:
        """PROCESSING -> PENDING for a stuck job."""
        with self.session_factory.begin() as session:
            return self._guarded_update(
                session, document_id, [DocumentStatus.PROCESSING], DocumentStatus.PENDING
            )

    def request_reprocess(self, document_id: uuid.UUID) -> bool:
        """
        COMPLETED/FAILED -> PENDING. A document that is already PENDING is
        left as is.

        Returns:
            False if the document does not exist.

        Raises:
            IllegalTransition: if the document is currently PROCESSING.
        """
        with self.session_factory.begin() as session:
            return self._request_reprocess(session, document_id)

    def _request_reprocess(self, session: Session, document_id: uuid.UUID) -> bool:
        if self._guarded_update(
            session,
            document_id,
            [DocumentStatus.COMPLETED, DocumentStatus.FAILED],
            DocumentStatus.PENDING,
            error_message=None,
        ):
            return True
        current = self._current_status(session, document_id)
        if current is None:
            return False
        if current is DocumentStatus.PENDING:
            return True
        raise IllegalTransition(current.value, DocumentStatus.PENDING.value)

    def replace_content(self, document_id: uuid.UUID, text: str) -> bool:
        """Stores edited text and requests reprocessing in one transaction."""
        with self.session_factory.begin() as session:
            if not self._request_reprocess(session, document_id):
                return False
            session.execute(
                update(Document)
                .where(Document.id == document_id)
                .values(raw_text=text)
                .execution_options(synchronize_session=False)
            )
            return True
