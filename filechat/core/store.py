# filechat/core/store.py
import logging
import time
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from filechat.core import config
from filechat.core.errors import (
    AuthError,
    FileNotFoundInStoreError,
    FileTooLargeError,
    StoreError,
)
from filechat.core.storage import LocalBucket
from filechat.models.chat_history import N8nChatHistory
from filechat.models.file import File as FileModel
from filechat.models.profile import Profile
from filechat.schemas.chat import RawHistoryRecord
from filechat.schemas.file import FileRecord

logger = logging.getLogger(__name__)


def upload_limit_for(role: Optional[str]) -> Optional[int]:
    """Byte limit for a role, or None when the role may upload anything."""
    if role in config.ELEVATED_ROLES:
        return None
    return config.USER_UPLOAD_LIMIT_KB * 1024


def check_upload_size(size: int, role: Optional[str]) -> None:
    limit = upload_limit_for(role)
    if limit is not None and size > limit:
        raise FileTooLargeError(size, limit)


def normalize_object_path(path: str, bucket: str) -> str:
    """
    Turn a stored public URL (or plain object path) into the bucket-relative
    object path the bucket expects.
    """
    actual = path.split("public/", 1)[1] if "public/" in path else path
    if actual.startswith(bucket + "/"):
        actual = actual[len(bucket) + 1:]
    return actual


class SessionStoreClient:
    """
    Thin pass-through to the relational store and the object bucket.

    Every method either returns plain schema objects (never live ORM rows) or
    raises a StoreError subclass.
    """

    def __init__(self, db: Session, bucket: LocalBucket, storage_prefix: str = config.STORAGE_PREFIX):
        self.db = db
        self.bucket = bucket
        self.storage_prefix = storage_prefix

    # ------------------------------------------------------------------
    # profiles
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            return self.db.query(Profile).filter(Profile.id == user_id).first()
        except SQLAlchemyError as e:
            raise StoreError(f"Profile lookup failed: {e}") from e

    def require_profile(self, user_id: Optional[str]) -> Profile:
        """The caller's profile; AuthError when the id is missing or unknown."""
        if not user_id:
            raise AuthError("Not signed in.")
        profile = self.get_profile(user_id)
        if not profile:
            raise AuthError("Your session has expired. Please sign in again.")
        return profile

    def ensure_profile(self, email: str, role: str = config.DEFAULT_ROLE) -> Profile:
        """Return the profile for email, creating it with the default role if missing."""
        try:
            profile = self.db.query(Profile).filter(Profile.email == email).first()
            if profile:
                return profile
            profile = Profile(id=str(uuid4()), email=email, role=role)
            self.db.add(profile)
            self.db.commit()
            self.db.refresh(profile)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Error creating profile: {e}") from e
        logger.info("Created profile %s for %s", profile.id, email)
        return profile

    # ------------------------------------------------------------------
    # files
    # ------------------------------------------------------------------

    def list_files(self, user_id: str) -> List[FileRecord]:
        try:
            rows = (
                self.db.query(FileModel)
                .filter(FileModel.user_id == user_id)
                .order_by(FileModel.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Database query error: {e}") from e
        logger.info("Fetched %d files for user %s", len(rows), user_id)
        return [FileRecord.model_validate(row) for row in rows]

    def get_file(self, user_id: str, file_id: str) -> FileRecord:
        row = self._file_row(user_id, file_id)
        return FileRecord.model_validate(row)

    def _file_row(self, user_id: str, file_id: str) -> FileModel:
        try:
            row = (
                self.db.query(FileModel)
                .filter(FileModel.id == file_id, FileModel.user_id == user_id)
                .first()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Database query error: {e}") from e
        if not row:
            raise FileNotFoundInStoreError(f"File not found: {file_id}")
        return row

    def upload_file(
        self,
        user_id: str,
        role: Optional[str],
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> FileRecord:
        """
        Store the bytes in the bucket, then insert the metadata row.

        The size check runs before anything touches the bucket. If the insert
        fails, the uploaded object is removed again before the error is raised.
        """
        check_upload_size(len(data), role)

        object_path = f"{self.storage_prefix}/{user_id}/{int(time.time() * 1000)}_{filename}"
        logger.info("Uploading %s (%d bytes) to %s", filename, len(data), object_path)
        self.bucket.upload(object_path, data)

        record = FileModel(
            id=str(uuid4()),
            user_id=user_id,
            name=filename,
            file_path=object_path,
            size=len(data),
            type=content_type,
            storage_path=self.bucket.public_url(object_path),
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Database insert error for %s, removing uploaded object: %s", object_path, e)
            self.bucket.remove([object_path])
            raise StoreError(f"Database insert error: {e}") from e

        logger.info("File upload completed: %s", record.id)
        return FileRecord.model_validate(record)

    def delete_file(self, user_id: str, file_id: str) -> FileRecord:
        """
        Remove the object from the bucket, then delete the metadata row.

        The object's bytes are read first so that a failed row delete can put
        the object back.
        """
        row = self._file_row(user_id, file_id)
        deleted = FileRecord.model_validate(row)
        object_path = normalize_object_path(row.storage_path or row.file_path, self.bucket.name)

        saved: Optional[bytes] = None
        if self.bucket.exists(object_path):
            saved = self.bucket.download(object_path)
        logger.info("Removing %s from bucket %s", object_path, self.bucket.name)
        self.bucket.remove([object_path])

        try:
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Database delete error for file %s, restoring object: %s", file_id, e)
            if saved is not None:
                self.bucket.upload(object_path, saved)
            raise StoreError(f"Database delete error: {e}") from e

        logger.info("File deleted successfully: %s", file_id)
        return deleted

    # ------------------------------------------------------------------
    # chat history
    # ------------------------------------------------------------------

    def fetch_history_rows(self, session_id: Optional[str] = None) -> List[RawHistoryRecord]:
        """
        All rows (or all rows of one session), oldest first.

        Each read runs in its own transaction, so a long-lived session still
        sees rows the workflow committed since the last call.
        """
        try:
            query = self.db.query(N8nChatHistory)
            if session_id is not None:
                query = query.filter(N8nChatHistory.session_id == session_id)
            rows = query.order_by(N8nChatHistory.created_at.asc(), N8nChatHistory.id.asc()).all()
            return [RawHistoryRecord.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Error fetching chat histories: {e}") from e
        finally:
            self.db.rollback()

    def get_history_row(self, row_id: str) -> Optional[RawHistoryRecord]:
        try:
            row_pk = int(row_id)
        except ValueError:
            return None
        try:
            row = self.db.query(N8nChatHistory).filter(N8nChatHistory.id == row_pk).first()
            return RawHistoryRecord.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Error fetching chat history row: {e}") from e
        finally:
            self.db.rollback()

    def delete_history_session(self, session_id: str) -> int:
        try:
            count = (
                self.db.query(N8nChatHistory)
                .filter(N8nChatHistory.session_id == session_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Error when deleting record: {e}") from e
        logger.info("Deleted %d history rows for session %s", count, session_id)
        return count
