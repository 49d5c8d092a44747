"""Builds and stores a submission record from an intake form"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from symptom_triage.chat_graph import Analyzer
from symptom_triage.errors import PersistenceError, ValidationError
from symptom_triage.history import SubmissionStore
from symptom_triage.models import IntakeForm, SubmissionRecord, TriageAssessment
from symptom_triage.uploads import MediaStore, upload_key

logger = logging.getLogger(__name__)


@dataclass
class UploadedImage:
    filename: str
    data: bytes


@dataclass
class SubmissionOutcome:
    """The assessment is always present; ``record`` is None when saving failed"""

    assessment: TriageAssessment
    record: Optional[SubmissionRecord] = None
    error: Optional[str] = None


class SubmissionService:
    def __init__(self, client: Analyzer, store: SubmissionStore, media: MediaStore):
        self.client = client
        self.store = store
        self.media = media

    async def submit(
        self,
        owner_id: str,
        form: IntakeForm,
        image: Optional[UploadedImage] = None,
    ) -> SubmissionOutcome:
        """
        Analyze the symptoms, then upload the image and write the record.

        Empty symptoms are rejected before the backend is called. A backend
        failure propagates and nothing is written. A storage failure keeps the
        computed assessment and reports the error alongside it.
        """
        if not owner_id or not owner_id.strip():
            raise ValidationError("Missing owner id", user_message="Please sign in to submit symptoms")
        if not form.symptoms or not form.symptoms.strip():
            raise ValidationError("Empty symptoms")

        assessment = await self.client.analyze(form.symptoms)

        try:
            image_ref = ""
            if image is not None:
                image_ref = await run_in_threadpool(
                    self.media.save, image.data, upload_key(owner_id, image.filename)
                )

            record = await run_in_threadpool(
                self.store.add,
                owner_id,
                {
                    "symptoms": form.symptoms,
                    "age": form.age,
                    "gender": form.gender,
                    "temperature": form.temperature,
                    "blood_pressure": form.blood_pressure,
                    "image_ref": image_ref,
                    "assessment": assessment,
                },
            )
        except PersistenceError as exc:
            logger.error("Submission for %s not saved: %s", owner_id, exc)
            return SubmissionOutcome(assessment=assessment, error=exc.user_message)

        return SubmissionOutcome(assessment=assessment, record=record)
