"""Resolves a candidate selection into deliverable documents."""

from typing import List

from forwarder.domain.models import VERIFIED, CandidateSelection, DocumentDescriptor, SendType
from forwarder.logging import get_logger

from .interfaces import PipelineStore

logger = get_logger(__name__, component="resolver")


class DocumentResolver:
    def __init__(self, store: PipelineStore):
        self.store = store

    def resolve(self, selection: CandidateSelection, project_id: str) -> List[DocumentDescriptor]:
        """Return the documents to deliver for ``selection``.

        Merged selections yield at most one descriptor: the candidate's most
        recent merged artifact for the project, preferring the selection's
        role, then a role-less artifact, then any. Individual selections yield
        the verified documents among ``document_ids``, in the order given;
        unknown and unverified ids are left out.
        """
        if selection.send_type == SendType.MERGED:
            merged = self.store.get_latest_merged_document(
                selection.candidate_id, project_id, selection.role_catalog_id
            )
            if merged is None:
                logger.info(
                    "No merged document for candidate",
                    extra={
                        "event": "delivery.resolve.no_merged",
                        "candidate_id": selection.candidate_id,
                        "project_id": project_id,
                    },
                )
                return []
            return [merged.to_descriptor()]

        if not selection.document_ids:
            return []

        documents = self.store.get_documents(
            selection.candidate_id, selection.document_ids, status=VERIFIED
        )
        excluded = len(set(selection.document_ids)) - len(documents)
        if excluded:
            logger.debug(
                "Excluded unverified or unknown documents",
                extra={
                    "event": "delivery.resolve.excluded",
                    "candidate_id": selection.candidate_id,
                    "excluded": excluded,
                },
            )
        return documents
