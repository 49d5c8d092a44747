"""
Submission persistence and history queries.

Search is a range match on the ``symptoms`` column: a record matches when its
symptoms sort at or after the search term. That is prefix-style ordering, not
substring or full-text search, so "cough" will not find "fever and cough".
"""
import logging
from datetime import timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from symptom_triage.db import Submission
from symptom_triage.errors import PersistenceError
from symptom_triage.models import SubmissionRecord, TriageAssessment

logger = logging.getLogger(__name__)


def _to_record(row: Submission) -> SubmissionRecord:
    created_at = row.created_at
    if created_at.tzinfo is None:
        # SQLite hands back naive datetimes
        created_at = created_at.replace(tzinfo=timezone.utc)
    return SubmissionRecord(
        id=row.id,
        owner_id=row.owner_id,
        symptoms=row.symptoms,
        age=row.age,
        gender=row.gender,
        temperature=row.temperature,
        blood_pressure=row.blood_pressure,
        image_ref=row.image_ref,
        assessment=TriageAssessment.model_validate(row.assessment),
        created_at=created_at,
    )


class SubmissionStore:
    """Append-only per-user collection of submission records"""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add(self, owner_id: str, payload: dict[str, Any]) -> SubmissionRecord:
        """Write one record in a single transaction; the store assigns id and created_at"""
        assessment = payload["assessment"]
        if isinstance(assessment, TriageAssessment):
            assessment = assessment.model_dump(by_alias=True)

        row = Submission(
            owner_id=owner_id,
            symptoms=payload["symptoms"],
            age=payload.get("age", ""),
            gender=payload.get("gender", ""),
            temperature=payload.get("temperature", ""),
            blood_pressure=payload.get("blood_pressure", ""),
            image_ref=payload.get("image_ref", ""),
            assessment=assessment,
        )
        try:
            with self._session_factory() as db:
                with db.begin():
                    db.add(row)
                record = _to_record(row)
        except SQLAlchemyError as exc:
            logger.exception("Failed to store submission for %s", owner_id)
            raise PersistenceError(f"Submission write failed: {exc}") from exc

        logger.info("Stored submission %s for %s", record.id, owner_id)
        return record

    def query(self, owner_id: str, symptoms_from: str = "") -> list[SubmissionRecord]:
        """Records of ``owner_id`` whose symptoms sort at or after ``symptoms_from``, newest first"""
        try:
            with self._session_factory() as db:
                query = db.query(Submission).filter(Submission.owner_id == owner_id)
                if symptoms_from:
                    query = query.filter(Submission.symptoms >= symptoms_from)
                rows = query.order_by(Submission.created_at.desc(), Submission.seq.desc()).all()
                return [_to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.exception("Failed to load submissions for %s", owner_id)
            raise PersistenceError(f"Submission read failed: {exc}") from exc


class HistoryService:
    """Lists a user's submissions, optionally filtered by symptom search term"""

    def __init__(self, store: SubmissionStore):
        self.store = store

    def list(self, owner_id: str, search_term: str = "") -> list[SubmissionRecord]:
        records = self.store.query(owner_id, search_term or "")
        logger.debug("Found %d submissions for %s (search=%r)", len(records), owner_id, search_term)
        return records
