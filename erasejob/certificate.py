"""Certificate issuer - completion records for finished erase jobs."""

import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, Optional

from .errors import IssuerError
from .models import CertificateRecord, EraseJob, JobState

logger = logging.getLogger(__name__)


def new_certificate_id(when: Optional[datetime] = None) -> str:
    """CERT-<year>-<128 random bits as hex>."""
    when = when or datetime.now()
    return f"CERT-{when.year}-{uuid.uuid4().hex.upper()}"


class CertificateIssuer:
    """Creates exactly one CertificateRecord per completed job."""

    def __init__(self, id_factory: Callable[[datetime], str] = new_certificate_id,
                 clock: Callable[[], datetime] = datetime.now):
        self._id_factory = id_factory
        self._clock = clock
        self._issued: Dict[str, CertificateRecord] = {}

    def issue(self, job: EraseJob) -> CertificateRecord:
        """Issue the certificate for a completed job.

        Raises IssuerError when the job has not reached the completed state.
        Issuing twice for the same job returns the original record.
        """
        if job.state != JobState.COMPLETED:
            raise IssuerError(f"Job {job.id} is {job.state.value}, not completed")
        if job.id in self._issued:
            return self._issued[job.id]

        completed_at = job.completed_at or self._clock()
        record = CertificateRecord(
            id=self._id_factory(completed_at),
            job_id=job.id,
            device_snapshot=job.device.model_copy(),
            method=job.configuration.method,
            passes=job.configuration.passes,
            storage_type=job.configuration.storage_type,
            scope=job.configuration.scope,
            verified=job.configuration.verify,
            secure_delete=job.configuration.secure_delete,
            started_at=job.created_at,
            completed_at=completed_at,
            elapsed_seconds=job.elapsed_seconds,
            issued_at=self._clock(),
        )
        self._issued[job.id] = record
        logger.info("Issued certificate %s for job %s (%s)", record.id, job.id, job.device.path)
        return record

    def get(self, job_id: str) -> Optional[CertificateRecord]:
        return self._issued.get(job_id)
