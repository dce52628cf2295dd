"""Firestore-backed job store for deployments that need durable job records."""
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional
from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore

from ..models import Job, JobDraft
from .job_store import MAX_ID_ATTEMPTS, JobStore, Reconcile, merge_job, utcnow


class FirestoreJobStore(JobStore):
    """Job store persisted in a Firestore collection.

    Updates run in a Firestore transaction, which gives the same per-document
    atomicity as the in-memory store's per-id lock. Deleted ids leave a
    tombstone document behind so they are never issued again.
    """

    def __init__(self, project: Optional[str] = None, database: str = "(default)", collection: str = "conversions") -> None:
        # Use explicit database if provided, else default
        if database:
            self.client = firestore.Client(project=project, database=database)
        else:
            self.client = firestore.Client(project=project)
        self._jobs = self.client.collection(collection)
        self._tombstones = self.client.collection(f"{collection}_deleted")

    def create(self, draft: JobDraft) -> Job:
        for _ in range(MAX_ID_ATTEMPTS):
            job_id = str(uuid.uuid4())
            if self._tombstones.document(job_id).get().exists:
                continue
            job = Job(id=job_id, createdAt=utcnow(), completedAt=None, attempt=0, **draft.model_dump())
            try:
                # create() fails if the document already exists
                self._jobs.document(job_id).create(self._to_doc(job))
            except AlreadyExists:
                continue
            return job
        raise RuntimeError("Unable to allocate a unique job id")

    def get(self, job_id: str) -> Optional[Job]:
        doc = self._jobs.document(job_id).get()
        return self._from_doc(doc.to_dict()) if doc.exists else None

    def list(self) -> List[Job]:
        q = self._jobs.order_by("createdAt", direction=firestore.Query.DESCENDING)
        return [self._from_doc(doc.to_dict()) for doc in q.stream()]

    def update(
        self,
        job_id: str,
        changes: Dict[str, Any],
        reconcile: Optional[Reconcile] = None,
    ) -> Optional[Job]:
        ref = self._jobs.document(job_id)

        @firestore.transactional
        def txn_fn(tx: firestore.Transaction) -> Optional[Job]:
            snap = ref.get(transaction=tx)
            if not snap.exists:
                return None
            current = self._from_doc(snap.to_dict() or {})
            effective = reconcile(current.model_copy(), dict(changes)) if reconcile else changes
            merged = merge_job(current, effective, utcnow())
            tx.set(ref, self._to_doc(merged))
            return merged

        tx = self.client.transaction()
        return txn_fn(tx)

    def delete(self, job_id: str) -> bool:
        ref = self._jobs.document(job_id)
        if not ref.get().exists:
            return False
        batch = self.client.batch()
        batch.set(self._tombstones.document(job_id), {"deletedAt": firestore.SERVER_TIMESTAMP})
        batch.delete(ref)
        batch.commit()
        return True

    @staticmethod
    def _to_doc(job: Job) -> Dict[str, Any]:
        return job.model_dump(mode="python") | {"status": job.status.value}

    @staticmethod
    def _from_doc(data: Dict[str, Any]) -> Job:
        return Job.model_validate(data)
