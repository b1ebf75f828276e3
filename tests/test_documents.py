import pytest

from services.documents import move_document, validate_parent_folder
from services.errors import FolderCycleError, NotPermitted

from factories import make_document, make_profile, make_rfp, principal_of


def test_folder_moves(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        rfp = await make_rfp(db)
        outer = await make_document(db, rfp, title="Drawings", file_type="folder")
        inner = await make_document(db, rfp, title="Sections", file_type="folder", parent_folder=outer.id)
        sheet = await make_document(db, rfp, title="Sheet-01.pdf", parent_folder=inner.id)

        moved = await move_document(db, admin, sheet.id, outer.id)
        assert moved.parent_folder == outer.id

        await move_document(db, admin, sheet.id, None)
        assert sheet.parent_folder is None

    run_db(scenario)


def test_folder_cycles_are_refused(run_db):
    async def scenario(db):
        rfp = await make_rfp(db)
        outer = await make_document(db, rfp, title="Drawings", file_type="folder")
        inner = await make_document(db, rfp, title="Sections", file_type="folder", parent_folder=outer.id)

        with pytest.raises(FolderCycleError):
            await validate_parent_folder(db, outer.id, inner.id)
        with pytest.raises(FolderCycleError):
            await validate_parent_folder(db, outer.id, outer.id)

    run_db(scenario)


def test_parent_must_be_folder_of_same_rfp(run_db):
    async def scenario(db):
        rfp = await make_rfp(db)
        other_rfp = await make_rfp(db, title="Bridge Repairs")
        sheet = await make_document(db, rfp)
        plain = await make_document(db, rfp, title="Notes.pdf")
        foreign = await make_document(db, other_rfp, title="Elsewhere", file_type="folder")

        with pytest.raises(FolderCycleError, match="not a folder"):
            await validate_parent_folder(db, sheet.id, plain.id)
        with pytest.raises(FolderCycleError, match="different RFP"):
            await validate_parent_folder(db, sheet.id, foreign.id)

    run_db(scenario)


def test_only_admins_move_documents(run_db):
    async def scenario(db):
        bidder = principal_of(await make_profile(db))
        rfp = await make_rfp(db)
        folder = await make_document(db, rfp, title="Drawings", file_type="folder")
        sheet = await make_document(db, rfp)

        with pytest.raises(NotPermitted) as exc:
            await move_document(db, bidder, sheet.id, folder.id)
        assert exc.value.decision.reason == "admin_only"

    run_db(scenario)
