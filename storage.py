"""Durable artifact storage with long-lived signed download URLs.

Files live under a root directory keyed by their logical path
(``invoices/paid/FASE-12345.pdf``). A signed URL carries an HS256 JWT whose
subject is that path, so the download route needs no other credentials.
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import quote

import structlog
from jose import JWTError, jwt

from errors import InvalidArgument, NotFound, Unauthorized

logger = structlog.get_logger(__name__)

JWT_ALG = "HS256"


class FileStorage:
    def __init__(self, root: str, signing_secret: str, public_base_url: str, ttl_days: int = 3650):
        self.root = Path(root).resolve()
        self.signing_secret = signing_secret
        self.public_base_url = public_base_url.rstrip("/")
        self.ttl = timedelta(days=ttl_days)

    def _path(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        if self.root not in target.parents:
            raise InvalidArgument(f"Invalid storage path: {path}")
        return target

    def save(self, path: str, data: bytes) -> str:
        target = self._path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("artifact_stored", path=path, size=len(data))
        return path

    def exists(self, path: str) -> bool:
        return self._path(path).is_file()

    def signed_url(self, path: str) -> str:
        expire = datetime.now(timezone.utc) + self.ttl
        token = jwt.encode({"sub": path, "exp": expire}, self.signing_secret, algorithm=JWT_ALG)
        return f"{self.public_base_url}/files/{quote(path)}?token={token}"

    def open_signed(self, path: str, token: str) -> Path:
        try:
            payload = jwt.decode(token, self.signing_secret, algorithms=[JWT_ALG])
        except JWTError:
            raise Unauthorized("Invalid or expired download token")
        if payload.get("sub") != path:
            raise Unauthorized("Download token does not match this file")
        target = self._path(path)
        if not target.is_file():
            raise NotFound("File not found")
        return target
