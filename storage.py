"""
GridFS file storage for design images, reference images and bank slips.
"""
import logging
import os
import secrets
import time

import gridfs
from bson.objectid import ObjectId
from fastapi import Depends, HTTPException, UploadFile

from database import get_db

logger = logging.getLogger(__name__)

IMAGES = "images"
UPLOADS = "uploads"

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class StoredFile:
    def __init__(self, file_id, filename, content_type, data):
        self.file_id = file_id
        self.filename = filename
        self.content_type = content_type
        self.data = data

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower()


class FileStore:
    def __init__(self, db):
        self.db = db
        self._buckets = {}

    def bucket(self, name: str) -> gridfs.GridFSBucket:
        if name not in self._buckets:
            self._buckets[name] = gridfs.GridFSBucket(self.db, bucket_name=name)
        return self._buckets[name]

    def put(self, bucket: str, data: bytes, filename: str, content_type: str = None, metadata: dict = None) -> str:
        file_id = self.bucket(bucket).upload_from_stream(
            filename, data, metadata={"contentType": content_type, **(metadata or {})}
        )
        return str(file_id)

    def get(self, bucket: str, file_id: str):
        if not ObjectId.is_valid(str(file_id)):
            return None
        try:
            grid_out = self.bucket(bucket).open_download_stream(ObjectId(str(file_id)))
        except gridfs.errors.NoFile:
            return None
        metadata = grid_out.metadata or {}
        return StoredFile(str(file_id), grid_out.filename, metadata.get("contentType"), grid_out.read())

    def delete(self, bucket: str, file_id: str) -> bool:
        try:
            self.bucket(bucket).delete(ObjectId(str(file_id)))
        except gridfs.errors.NoFile:
            return False
        return True


def get_file_store(db=Depends(get_db)) -> FileStore:
    return FileStore(db)


def unique_filename(original: str) -> str:
    ext = os.path.splitext(original or "")[1]
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"


def read_upload(upload: UploadFile) -> bytes:
    """Read an upload, rejecting anything over the 5MB limit."""
    data = upload.file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large (max 5MB)")
    return data


def read_image(upload: UploadFile) -> bytes:
    ext = os.path.splitext(upload.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only image files are allowed!")
    return read_upload(upload)


def save_upload(store: FileStore, bucket: str, upload: UploadFile, data: bytes, metadata: dict = None):
    """Persist already-read upload bytes under a unique name. Returns (file_id, filename)."""
    filename = unique_filename(upload.filename)
    meta = {"originalName": upload.filename, **(metadata or {})}
    return store.put(bucket, data, filename, upload.content_type, meta), filename


def store_upload(store: FileStore, bucket: str, upload: UploadFile, metadata: dict = None, image_only=True):
    data = read_image(upload) if image_only else read_upload(upload)
    return save_upload(store, bucket, upload, data, metadata)


def content_type_for(stored: StoredFile) -> str:
    return stored.content_type or CONTENT_TYPES.get(stored.extension, "application/octet-stream")
