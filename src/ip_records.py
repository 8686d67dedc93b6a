"""
ChapterIP - IP Record Store

Key layout over the object store:

    chapters/{chapterId}.json                 chapter metadata and cached usage
    ip-assets/{ipId}.json                     registered IP asset record
    derivatives/{childIpId}.json              derivative relationship record
    derivatives/by-parent/{parentIpId}.json   child ids of a parent IP
    derivatives/by-chapter/{chapterId}.json   child ids derived from a chapter
    royalties/history/{authorAddress}.json     royalty claim attempts of an author
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from storage import ObjectStore

logger = logging.getLogger(__name__)

CHAPTER_PREFIX = "chapters/"
IP_ASSET_PREFIX = "ip-assets/"
DERIVATIVE_PREFIX = "derivatives/"
BY_PARENT_PREFIX = "derivatives/by-parent/"
BY_CHAPTER_PREFIX = "derivatives/by-chapter/"
ROYALTY_HISTORY_PREFIX = "royalties/history/"


@dataclass
class DerivativeRelationship:
    """Recorded child -> parent link. Immutable once written."""

    ip_id: str
    parent_ip_id: str
    parent_chapter_id: str
    license_terms_id: str
    transaction_hash: str
    derivative_type: str
    similarity_score: float
    attribution_text: str = ""
    inherited_license: bool = False
    creator_address: str = ""
    title: str = ""
    quality_score: float | None = None
    license_tier: str | None = None
    creator_notes: str | None = None
    registration_time: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "ipId": self.ip_id,
            "parentIpId": self.parent_ip_id,
            "parentChapterId": self.parent_chapter_id,
            "licenseTermsId": self.license_terms_id,
            "transactionHash": self.transaction_hash,
            "derivativeType": self.derivative_type,
            "similarityScore": self.similarity_score,
            "attributionText": self.attribution_text,
            "inheritedLicense": self.inherited_license,
            "creatorAddress": self.creator_address,
            "title": self.title,
            "qualityScore": self.quality_score,
            "licenseTier": self.license_tier,
            "creatorNotes": self.creator_notes,
            "registrationTime": self.registration_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DerivativeRelationship":
        return cls(
            ip_id=data["ipId"],
            parent_ip_id=data["parentIpId"],
            parent_chapter_id=data.get("parentChapterId", ""),
            license_terms_id=data.get("licenseTermsId", ""),
            transaction_hash=data.get("transactionHash", ""),
            derivative_type=data.get("derivativeType", "other"),
            similarity_score=data.get("similarityScore", 0.5),
            attribution_text=data.get("attributionText", ""),
            inherited_license=data.get("inheritedLicense", False),
            creator_address=data.get("creatorAddress", ""),
            title=data.get("title", ""),
            quality_score=data.get("qualityScore"),
            license_tier=data.get("licenseTier"),
            creator_notes=data.get("creatorNotes"),
            registration_time=data.get("registrationTime", ""),
        )


class IPRecordStore:
    """
    Typed access to chapter, IP asset, and derivative documents.

    Index updates are serialized with a lock so concurrent registrations
    against the same parent do not drop children.
    """

    def __init__(self, store: ObjectStore):
        self.store = store
        self._index_lock = threading.Lock()
        self._chapter_lock = threading.Lock()
        self._history_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------

    def get_chapter(self, chapter_id: str) -> dict[str, Any] | None:
        return self.store.get(f"{CHAPTER_PREFIX}{chapter_id}.json")

    def save_chapter(self, chapter_id: str, data: dict[str, Any]) -> str:
        return self.store.put(f"{CHAPTER_PREFIX}{chapter_id}.json", data)

    def merge_chapter(
        self, chapter_id: str, fields: dict[str, Any], defaults: dict[str, Any] | None = None
    ) -> str:
        """
        Update a chapter record in place.

        Keys absent from ``fields`` (cached usage, last claim) keep their
        stored values; ``defaults`` only fill keys the record does not have.
        """
        with self._chapter_lock:
            record = self.get_chapter(chapter_id) or {}
            record.update(fields)
            for key, value in (defaults or {}).items():
                record.setdefault(key, value)
            return self.save_chapter(chapter_id, record)

    # ------------------------------------------------------------------
    # IP assets
    # ------------------------------------------------------------------

    def get_ip_asset(self, ip_id: str) -> dict[str, Any] | None:
        return self.store.get(f"{IP_ASSET_PREFIX}{ip_id}.json")

    def save_ip_asset(self, ip_id: str, data: dict[str, Any]) -> str:
        return self.store.put(f"{IP_ASSET_PREFIX}{ip_id}.json", data)

    # ------------------------------------------------------------------
    # Derivatives
    # ------------------------------------------------------------------

    def get_relationship(self, child_ip_id: str) -> DerivativeRelationship | None:
        data = self.store.get(f"{DERIVATIVE_PREFIX}{child_ip_id}.json")
        if data is None:
            return None
        return DerivativeRelationship.from_dict(data)

    def save_relationship(self, relationship: DerivativeRelationship) -> str:
        """
        Write a relationship record and add it to the parent/chapter indexes.

        Returns:
            Public URL of the relationship record
        """
        url = self.store.put(
            f"{DERIVATIVE_PREFIX}{relationship.ip_id}.json", relationship.to_dict()
        )

        with self._index_lock:
            self._append_to_index(f"{BY_PARENT_PREFIX}{relationship.parent_ip_id}.json", relationship.ip_id)
            if relationship.parent_chapter_id:
                self._append_to_index(
                    f"{BY_CHAPTER_PREFIX}{relationship.parent_chapter_id}.json", relationship.ip_id
                )

        logger.debug("Recorded derivative %s -> %s", relationship.ip_id, relationship.parent_ip_id)
        return url

    def _append_to_index(self, key: str, child_ip_id: str) -> None:
        index = self.store.get(key) or {"children": []}
        if child_ip_id not in index["children"]:
            index["children"].append(child_ip_id)
            index["updatedAt"] = datetime.utcnow().isoformat()
            self.store.put(key, index)

    def list_children(self, parent_ip_id: str) -> list[str]:
        """Direct children of an IP asset, in registration order."""
        index = self.store.get(f"{BY_PARENT_PREFIX}{parent_ip_id}.json")
        return list(index["children"]) if index else []

    def list_chapter_derivatives(self, chapter_id: str) -> list[DerivativeRelationship]:
        """Relationship records derived from a chapter, in registration order."""
        index = self.store.get(f"{BY_CHAPTER_PREFIX}{chapter_id}.json")
        if not index:
            return []

        relationships = []
        for child_ip_id in index["children"]:
            relationship = self.get_relationship(child_ip_id)
            if relationship is None:
                logger.warning("Index references missing derivative record %s", child_ip_id)
                continue
            relationships.append(relationship)
        return relationships

    # ------------------------------------------------------------------
    # Royalty history
    # ------------------------------------------------------------------

    @staticmethod
    def _history_key(author_address: str) -> str:
        return f"{ROYALTY_HISTORY_PREFIX}{author_address.lower()}.json"

    def append_royalty_history(self, author_address: str, entry: dict[str, Any]) -> str:
        key = self._history_key(author_address)
        with self._history_lock:
            document = self.store.get(key) or {"entries": []}
            document["entries"].append(entry)
            document["updatedAt"] = datetime.utcnow().isoformat()
            return self.store.put(key, document)

    def get_royalty_history(self, author_address: str) -> list[dict[str, Any]]:
        """Claim entries of an author, oldest first. Addresses match case-insensitively."""
        document = self.store.get(self._history_key(author_address))
        return list(document["entries"]) if document else []
