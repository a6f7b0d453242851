# filechat/core/storage.py
import os
from pathlib import Path
from typing import List

from filechat.core.errors import StoreError


class LocalBucket:
    """
    Directory-backed object bucket.

    Objects live at <root>/<bucket>/<object path> and are served publicly at
    <public_base_url>/storage/v1/object/public/<bucket>/<object path>.
    """

    def __init__(self, root: str, name: str, public_base_url: str):
        self.name = name
        self.public_base_url = public_base_url.rstrip("/")
        self.directory = Path(root) / name
        os.makedirs(self.directory, exist_ok=True)

    @property
    def public_prefix(self) -> str:
        return f"{self.public_base_url}/storage/v1/object/public/{self.name}/"

    def public_url(self, object_path: str) -> str:
        return self.public_prefix + object_path

    def _resolve(self, object_path: str) -> Path:
        target = (self.directory / object_path).resolve()
        if self.directory.resolve() not in target.parents:
            raise StoreError(f"Invalid object path: {object_path}")
        return target

    def exists(self, object_path: str) -> bool:
        return self._resolve(object_path).is_file()

    def upload(self, object_path: str, data: bytes) -> str:
        target = self._resolve(object_path)
        if target.exists():
            raise StoreError(f"The resource already exists: {object_path}")
        try:
            os.makedirs(target.parent, exist_ok=True)
            with open(target, "wb") as buffer:
                buffer.write(data)
        except OSError as e:
            raise StoreError(f"Storage upload failed: {e}") from e
        return object_path

    def download(self, object_path: str) -> bytes:
        target = self._resolve(object_path)
        try:
            with open(target, "rb") as f:
                return f.read()
        except OSError as e:
            raise StoreError(f"Storage download failed: {e}") from e

    def remove(self, object_paths: List[str]) -> List[str]:
        """Remove objects; missing ones are skipped. Returns the paths removed."""
        removed = []
        for object_path in object_paths:
            target = self._resolve(object_path)
            if not target.exists():
                continue
            try:
                os.remove(target)
            except OSError as e:
                raise StoreError(f"Storage delete failed: {e}") from e
            removed.append(object_path)
        return removed
