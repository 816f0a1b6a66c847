"""
Object storage for product media and custom-request reference images.

Files live in GridFS (bucket ``media``) and are exposed at ``/media/{file_id}``.
"""
import random
import re
import string
import time
from typing import Optional, Tuple

import gridfs
import structlog
from gridfs.errors import NoFile
from pymongo.database import Database

from database import to_object_id

logger = structlog.get_logger(__name__)

MEDIA_URL_RE = re.compile(r"/media/([0-9a-f]{24})$")


class MediaStorage:
    def __init__(self, database: Database, base_url: str = ""):
        self.fs = gridfs.GridFS(database, collection="media")
        self.base_url = base_url.rstrip("/")

    def public_url(self, file_id: str) -> str:
        return f"{self.base_url}/media/{file_id}"

    def upload(self, data: bytes, filename: str, content_type: str = "application/octet-stream",
               folder: str = "products") -> str:
        ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
        token = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
        path = f"{folder}/{int(time.time() * 1000)}-{token}.{ext}"
        file_id = self.fs.put(data, filename=path, metadata={"content_type": content_type, "folder": folder})
        logger.info("media_uploaded", path=path, size=len(data))
        return self.public_url(str(file_id))

    def get(self, file_id: str) -> Optional[Tuple[bytes, str]]:
        oid = to_object_id(file_id)
        if oid is None:
            return None
        try:
            out = self.fs.get(oid)
        except NoFile:
            return None
        metadata = out.metadata or {}
        return out.read(), metadata.get("content_type", "application/octet-stream")

    def delete_by_url(self, url: str) -> bool:
        match = MEDIA_URL_RE.search(url)
        if not match:
            return False
        oid = to_object_id(match.group(1))
        if not self.fs.exists(oid):
            return False
        self.fs.delete(oid)
        return True
