# filechat/routers/file.py
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from filechat.core.deps import get_current_profile, get_store
from filechat.core.errors import FileNotFoundInStoreError, FileTooLargeError, StoreError
from filechat.core.store import SessionStoreClient
from filechat.models.profile import Profile
from filechat.schemas.file import FileDeleteResponse, FileListResponse, FileRecord

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=FileListResponse)
def list_files(
    profile: Profile = Depends(get_current_profile),
    store: SessionStoreClient = Depends(get_store),
):
    """
    List the caller's files, newest first.
    """
    try:
        return FileListResponse(files=store.list_files(profile.id))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/upload", response_model=FileRecord, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    profile: Profile = Depends(get_current_profile),
    store: SessionStoreClient = Depends(get_store),
):
    """
    Upload one file for the caller.

    - Users with the "User" role may upload at most 200KB; "Admin" has no limit.
    - The object goes to the bucket first, then the metadata row is inserted.
      If the insert fails the object is removed again.

    Returns the stored file record, including its public URL in `storage_path`.
    """
    data = await file.read()
    logger.info("File selected for upload: %s (%d bytes, %s)", file.filename, len(data), file.content_type)
    try:
        return store.upload_file(
            user_id=profile.id,
            role=profile.role,
            filename=file.filename,
            data=data,
            content_type=file.content_type,
        )
    except FileTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{file_id}", response_model=FileRecord)
def get_file(
    file_id: str,
    profile: Profile = Depends(get_current_profile),
    store: SessionStoreClient = Depends(get_store),
):
    try:
        return store.get_file(profile.id, file_id)
    except FileNotFoundInStoreError:
        raise HTTPException(status_code=404, detail="File not found.")
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{file_id}", response_model=FileDeleteResponse)
def delete_file(
    file_id: str,
    profile: Profile = Depends(get_current_profile),
    store: SessionStoreClient = Depends(get_store),
):
    """
    Delete a file by its file_id.

    This endpoint:
      - Removes the object from the bucket.
      - Deletes the record from the files table (restoring the object if that fails).
    """
    try:
        store.delete_file(profile.id, file_id)
    except FileNotFoundInStoreError:
        raise HTTPException(status_code=404, detail="File not found.")
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete file. {e}")
    return FileDeleteResponse(detail="File deleted successfully.", file_id=file_id)
