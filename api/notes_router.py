"""
Notes and Files API Router.

Endpoints:
- GET /api/clients/{client_id}/notes: sorted notes plus task stats
- POST /api/clients/{client_id}/notes
- PUT /api/notes/{note_id}
- DELETE /api/notes/{note_id}
- GET /api/tasks/today: follow-ups due today (notes and tasks)
- GET /api/tasks/overdue: follow-ups past due (notes and tasks)
- GET /api/clients/{client_id}/files
- POST /api/clients/{client_id}/files: multipart upload
- GET /api/files/{file_id}/download
- DELETE /api/files/{file_id}
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from fastapi.responses import FileResponse
from pydantic import Field

from api.auth import require_auth
from api.response_models import CamelModel, FileOut, FollowUpOut, NoteOut, NoteStatsOut
from clientdesk import clients, config, files, notes
from clientdesk.followups import follow_ups
from clientdesk.users import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["notes"], dependencies=[Depends(require_auth)])


class NoteCreate(CamelModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    type: str = "note"
    priority: str = "normal"
    is_completed: bool = False
    due_date: str | None = None


class NoteUpdate(CamelModel):
    title: str | None = Field(None, min_length=1)
    content: str | None = Field(None, min_length=1)
    type: str | None = None
    priority: str | None = None
    is_completed: bool | None = None
    due_date: str | None = None


class NoteListOut(CamelModel):
    notes: list[NoteOut]
    stats: NoteStatsOut


def _require_client(client_id: int) -> None:
    if clients.get_client(client_id) is None:
        raise HTTPException(status_code=404, detail="Client not found")


# ==== Notes ====


@router.get("/clients/{client_id}/notes", response_model=NoteListOut)
def list_notes(client_id: int):
    _require_client(client_id)
    items = notes.list_notes(client_id)
    return {"notes": [n.to_dict() for n in items], "stats": notes.note_stats(items)}


@router.post("/clients/{client_id}/notes", response_model=NoteOut, status_code=201)
def create_note(client_id: int, body: NoteCreate):
    try:
        note = notes.create_note(client_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if note is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return note.to_dict()


@router.put("/notes/{note_id}", response_model=NoteOut)
def update_note(note_id: int, body: NoteUpdate):
    try:
        note = notes.update_note(note_id, **body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if note is None:
        raise HTTPException(status_code=404, detail="Note not found")
    return note.to_dict()


@router.delete("/notes/{note_id}", status_code=204)
def delete_note(note_id: int):
    if not notes.delete_note(note_id):
        raise HTTPException(status_code=404, detail="Note not found")
    return Response(status_code=204)


@router.get("/tasks/today", response_model=list[FollowUpOut])
def get_today_follow_ups():
    return follow_ups(overdue=False)


@router.get("/tasks/overdue", response_model=list[FollowUpOut])
def get_overdue_follow_ups():
    return follow_ups(overdue=True)


# ==== Files ====


@router.get("/clients/{client_id}/files", response_model=list[FileOut])
def list_files(client_id: int):
    _require_client(client_id)
    return [f.to_dict() for f in files.list_files(client_id)]


@router.post("/clients/{client_id}/files", response_model=FileOut, status_code=201)
async def upload_file(
    client_id: int,
    file: UploadFile | None = File(None),
    description: str | None = Form(None),
    user: User = Depends(require_auth),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    # Read one byte past the limit so oversize uploads are caught without
    # buffering the whole body
    data = await file.read(config.MAX_UPLOAD_BYTES + 1)
    try:
        stored = files.save_file(
            client_id,
            file.filename,
            data,
            mime_type=file.content_type,
            uploaded_by=user.username,
            description=description,
        )
    except files.FileTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if stored is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return stored.to_dict()


@router.get("/files/{file_id}/download")
def download_file(file_id: int):
    record = files.get_file(file_id)
    if record is None or not Path(record.file_path).exists():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(record.file_path, media_type=record.mime_type, filename=record.original_name)


@router.delete("/files/{file_id}", status_code=204)
def delete_file(file_id: int):
    if not files.delete_file(file_id):
        raise HTTPException(status_code=404, detail="File not found")
    return Response(status_code=204)
