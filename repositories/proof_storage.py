"""
Payment-proof blob storage.

`put` stores the bytes and returns a ProofRef; `delete` removes a blob by id.
Blobs are written before the transaction that references them, so a failed
transaction leaves an orphan that the caller deletes.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Dict, Optional, Protocol
from uuid import uuid4

from domain.errors import DependencyError, ValidationError
from domain.offer import ProofRef
from repositories.client import get_supabase

MAX_PROOF_BYTES = 10 * 1024 * 1024

_FORMATS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "application/pdf": "pdf",
}


class ProofStorage(Protocol):
    def put(
        self,
        content: bytes,
        *,
        folder: str,
        content_type: str,
        now: datetime,
        original_name: Optional[str] = None,
    ) -> ProofRef: ...

    def delete(self, proof_id: str) -> None: ...


def _check_upload(content: bytes, content_type: str) -> str:
    if not content:
        raise ValidationError("Payment proof is empty")
    if len(content) > MAX_PROOF_BYTES:
        raise ValidationError(
            "Payment proof exceeds the 10 MB limit",
            details={"size": len(content), "limit": MAX_PROOF_BYTES},
        )
    try:
        return _FORMATS[content_type]
    except KeyError:
        raise ValidationError(
            f"Unsupported proof content type: {content_type}",
            details={"allowed": sorted(_FORMATS)},
        ) from None


class InMemoryProofStorage:
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(
        self,
        content: bytes,
        *,
        folder: str,
        content_type: str,
        now: datetime,
        original_name: Optional[str] = None,
    ) -> ProofRef:
        fmt = _check_upload(content, content_type)
        proof_id = f"{folder}/{uuid4().hex}.{fmt}"
        with self._lock:
            self.blobs[proof_id] = content
        return ProofRef(
            id=proof_id,
            url=f"memory://{proof_id}",
            size=len(content),
            format=fmt,
            uploaded_at=now,
            original_name=original_name,
        )

    def delete(self, proof_id: str) -> None:
        with self._lock:
            self.blobs.pop(proof_id, None)


class SupabaseProofStorage:
    """Proofs stored in a Supabase Storage bucket."""

    def __init__(self, bucket: str, client: Any = None) -> None:
        self.bucket = bucket
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def put(
        self,
        content: bytes,
        *,
        folder: str,
        content_type: str,
        now: datetime,
        original_name: Optional[str] = None,
    ) -> ProofRef:
        fmt = _check_upload(content, content_type)
        path = f"{folder}/{now.strftime('%Y%m%d%H%M%S')}-{uuid4().hex}.{fmt}"
        bucket = self.client.storage.from_(self.bucket)
        try:
            bucket.upload(path, content, {"content-type": content_type})
            url = bucket.get_public_url(path)
        except Exception as exc:
            raise DependencyError(f"Failed to upload payment proof: {exc}") from exc
        return ProofRef(
            id=path,
            url=str(url),
            size=len(content),
            format=fmt,
            uploaded_at=now,
            original_name=original_name,
        )

    def delete(self, proof_id: str) -> None:
        try:
            self.client.storage.from_(self.bucket).remove([proof_id])
        except Exception as exc:
            raise DependencyError(f"Failed to delete payment proof {proof_id}: {exc}") from exc


__all__ = ["ProofStorage", "InMemoryProofStorage", "SupabaseProofStorage", "MAX_PROOF_BYTES"]
