"""
Document Folders

Folder moves for RFP documents. Folders are documents with
`file_type == "folder"`; the parent chain must stay inside one RFP and never
loop back on itself.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Document
from schemas.principal import Principal
from schemas.resources import Action, ResourceKind
from services.authorization import check
from services.errors import FolderCycleError, ReferenceNotFound


logger = logging.getLogger("rfp_marketplace.services.documents")

FOLDER_TYPE = "folder"


async def validate_parent_folder(
    db: AsyncSession,
    document_id: uuid.UUID,
    parent_id: Optional[uuid.UUID],
) -> None:
    """
    Check that `parent_id` may become the parent of `document_id`.

    Raises:
        ReferenceNotFound: either document does not exist
        FolderCycleError: the parent is not a folder of the same RFP, or the
            move would place the document beneath itself
    """
    document = await db.get(Document, document_id)
    if document is None:
        raise ReferenceNotFound("document", document_id)
    if parent_id is None:
        return

    parent = await db.get(Document, parent_id)
    if parent is None:
        raise ReferenceNotFound("document", parent_id)
    if parent.rfp_id != document.rfp_id:
        raise FolderCycleError(f"Folder {parent_id} belongs to a different RFP")
    if parent.file_type != FOLDER_TYPE:
        raise FolderCycleError(f"Document {parent_id} is not a folder")

    seen = set()
    current = parent
    while current is not None:
        if current.id == document.id:
            raise FolderCycleError(f"Moving {document_id} under {parent_id} would create a cycle")
        if current.id in seen:
            raise FolderCycleError(f"Folder chain above {parent_id} already loops")
        seen.add(current.id)
        current = await db.get(Document, current.parent_folder) if current.parent_folder else None


async def move_document(
    db: AsyncSession,
    principal: Principal,
    document_id: uuid.UUID,
    parent_id: Optional[uuid.UUID],
) -> Document:
    """Re-parent a document or folder (admin only)."""
    decision = await check(db, principal, ResourceKind.DOCUMENT, document_id, Action.UPDATE)
    decision.require()

    await validate_parent_folder(db, document_id, parent_id)

    document = await db.get(Document, document_id)
    document.parent_folder = parent_id
    await db.flush()

    logger.info(f"Document {document_id} moved under {parent_id}")
    return document
