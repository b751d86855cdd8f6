"""
Storage Adapter - GridFS-based file storage behind an abstract interface.
Holds uploaded source documents and translated deliverables.

The project engine only ever keeps the opaque file_id (artifact ref) on the
project record; everything else about the bytes lives here.
"""
import hashlib
import io
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorGridFSBucket
from database import database

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ArtifactNotFoundError(StorageError):
    """File not found in storage."""
    pass


class FileKind:
    SOURCE = "source"
    TRANSLATED = "translated"


class FileMetadata:
    """File metadata model."""
    def __init__(
        self,
        file_id: str,
        filename: str,
        content_type: str,
        size_bytes: int,
        sha256_hash: str,
        upload_timestamp: datetime,
        uploaded_by: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.file_id = file_id
        self.filename = filename
        self.content_type = content_type
        self.size_bytes = size_bytes
        self.sha256_hash = sha256_hash
        self.upload_timestamp = upload_timestamp
        self.uploaded_by = uploaded_by
        self.metadata = metadata or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_id": self.file_id,
            "filename": self.filename,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "sha256_hash": self.sha256_hash,
            "upload_timestamp": self.upload_timestamp.isoformat() if self.upload_timestamp else None,
            "uploaded_by": self.uploaded_by,
            "metadata": self.metadata,
        }


class StorageAdapter(ABC):
    """Abstract base class for storage implementations."""

    @abstractmethod
    async def upload_file(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        uploaded_by: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> FileMetadata:
        """Upload a file and return metadata."""
        pass

    @abstractmethod
    async def download_file(self, file_id: str) -> Tuple[bytes, FileMetadata]:
        """Download file content and metadata."""
        pass

    @abstractmethod
    async def get_file_metadata(self, file_id: str) -> Optional[FileMetadata]:
        """Get file metadata without downloading content."""
        pass

    @abstractmethod
    async def delete_file(self, file_id: str) -> bool:
        """Delete a file. Returns True if successful."""
        pass

    @abstractmethod
    async def list_files(self, kind: str, uploaded_before: datetime) -> List[FileMetadata]:
        """Files of one kind stored before the given time."""
        pass


class GridFSStorageAdapter(StorageAdapter):
    """
    GridFS-based storage implementation.
    Stores files in MongoDB GridFS with metadata tracking.
    """

    def __init__(self, bucket_name: str = "project_files"):
        self.bucket_name = bucket_name
        self._bucket = None

    def _get_bucket(self) -> AsyncIOMotorGridFSBucket:
        """Get or create GridFS bucket."""
        if self._bucket is None:
            db = database.get_db()
            self._bucket = AsyncIOMotorGridFSBucket(db, bucket_name=self.bucket_name)
        return self._bucket

    def _to_metadata(self, file_doc: Dict[str, Any]) -> FileMetadata:
        gridfs_meta = file_doc.get("metadata") or {}
        uploaded = gridfs_meta.get("upload_timestamp")
        return FileMetadata(
            file_id=str(file_doc["_id"]),
            filename=file_doc["filename"],
            content_type=gridfs_meta.get("content_type", "application/octet-stream"),
            size_bytes=file_doc["length"],
            sha256_hash=gridfs_meta.get("sha256_hash", ""),
            upload_timestamp=datetime.fromisoformat(uploaded) if uploaded else None,
            uploaded_by=gridfs_meta.get("uploaded_by"),
            metadata=gridfs_meta.get("custom_metadata", {}),
        )

    async def upload_file(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        uploaded_by: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> FileMetadata:
        """Upload a file to GridFS."""
        bucket = self._get_bucket()
        sha256_hash = hashlib.sha256(content).hexdigest()
        now = datetime.now(timezone.utc)

        gridfs_metadata = {
            "content_type": content_type,
            "sha256_hash": sha256_hash,
            "uploaded_by": uploaded_by,
            "upload_timestamp": now.isoformat(),
            "custom_metadata": metadata or {},
        }

        file_id = await bucket.upload_from_stream(
            filename,
            io.BytesIO(content),
            metadata=gridfs_metadata,
        )

        file_meta = FileMetadata(
            file_id=str(file_id),
            filename=filename,
            content_type=content_type,
            size_bytes=len(content),
            sha256_hash=sha256_hash,
            upload_timestamp=now,
            uploaded_by=uploaded_by,
            metadata=metadata,
        )

        logger.info(f"File uploaded to GridFS: {filename} ({file_meta.file_id})")
        return file_meta

    async def download_file(self, file_id: str) -> Tuple[bytes, FileMetadata]:
        """Download file from GridFS."""
        db = database.get_db()

        try:
            object_id = ObjectId(file_id)
        except (InvalidId, TypeError):
            raise ArtifactNotFoundError(f"Invalid file ID: {file_id}")

        file_doc = await db[f"{self.bucket_name}.files"].find_one({"_id": object_id})
        if not file_doc:
            raise ArtifactNotFoundError(f"File not found: {file_id}")

        stream = io.BytesIO()
        await self._get_bucket().download_to_stream(object_id, stream)
        return stream.getvalue(), self._to_metadata(file_doc)

    async def get_file_metadata(self, file_id: str) -> Optional[FileMetadata]:
        """Get file metadata without downloading."""
        db = database.get_db()

        try:
            object_id = ObjectId(file_id)
        except (InvalidId, TypeError):
            return None

        file_doc = await db[f"{self.bucket_name}.files"].find_one({"_id": object_id})
        if not file_doc:
            return None
        return self._to_metadata(file_doc)

    async def delete_file(self, file_id: str) -> bool:
        """Delete file from GridFS."""
        try:
            await self._get_bucket().delete(ObjectId(file_id))
            logger.info(f"File deleted from GridFS: {file_id}")
            return True
        except Exception as e:
            logger.error(f"Failed to delete file {file_id}: {e}")
            return False

    async def list_files(self, kind: str, uploaded_before: datetime) -> List[FileMetadata]:
        # GridFS sets uploadDate on every file it stores
        db = database.get_db()
        cursor = db[f"{self.bucket_name}.files"].find({
            "metadata.custom_metadata.kind": kind,
            "uploadDate": {"$lt": uploaded_before},
        })
        return [self._to_metadata(doc) async for doc in cursor]


# Singleton instance
storage_adapter = GridFSStorageAdapter()


async def store_source_document(
    content: bytes,
    filename: str,
    content_type: str,
    uploaded_by: str,
    unit_count: int,
) -> FileMetadata:
    """Store an uploaded document at analyze time, before any project exists."""
    return await storage_adapter.upload_file(
        content=content,
        filename=f"uploads/{uploaded_by}/{filename}",
        content_type=content_type,
        uploaded_by=uploaded_by,
        metadata={
            "kind": FileKind.SOURCE,
            "original_filename": filename,
            "unit_count": unit_count,
        },
    )


async def store_translated_document(
    project_id: str,
    content: bytes,
    filename: str,
    content_type: str,
    uploaded_by: str,
) -> FileMetadata:
    """Store a translated deliverable for a project."""
    return await storage_adapter.upload_file(
        content=content,
        filename=f"projects/{project_id}/translated/{filename}",
        content_type=content_type,
        uploaded_by=uploaded_by,
        metadata={
            "kind": FileKind.TRANSLATED,
            "project_id": project_id,
            "original_filename": filename,
        },
    )


async def retrieve(file_id: str) -> Tuple[bytes, FileMetadata]:
    return await storage_adapter.download_file(file_id)


async def delete_project_files(project: Dict[str, Any]) -> None:
    """Remove every stored artifact a project points at."""
    for key in ("source_file_ref", "translated_file_ref"):
        file_id = project.get(key)
        if file_id:
            await storage_adapter.delete_file(file_id)


async def list_source_documents(uploaded_before: datetime) -> List[FileMetadata]:
    """Analyze-time uploads older than the cutoff, claimed by a project or not."""
    return await storage_adapter.list_files(FileKind.SOURCE, uploaded_before)
