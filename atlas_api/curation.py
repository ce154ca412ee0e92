"""
Landmark Atlas — Manual Curation

Admin writes to the persistent store outside search and batch reconcile:

    create   a hand-entered landmark, refused when the store already has it;
             a missing location label is filled by reverse geocoding
    update   a field patch on a stored row
    remove   delete the row (or only hide it) and blacklist its id

Every write is reflected in the spatial cache straight away.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from atlas_dedup.blacklist import Blacklist
from atlas_dedup.records import OVERLAY_TEXT_FIELDS, Provenance, Record, store_row_id

from .errors import AtlasError, ConflictError, NotFoundError, ValidationError
from .spatial_cache import SpatialCache

logger = logging.getLogger(__name__)

# id and provenance are never patched
EDITABLE_FIELDS: tuple[str, ...] = OVERLAY_TEXT_FIELDS + ("coordinates", "prioritized")


class LandmarkCurator:
    def __init__(
        self,
        store: Any,
        cache: SpatialCache,
        blacklist: Blacklist,
        geocoder: Any = None,
    ):
        self.store = store
        self.cache = cache
        self.blacklist = blacklist
        self.geocoder = geocoder

    # -- helpers -------------------------------------------------------------

    def _stored_id(self, record_id: str) -> str:
        if store_row_id(record_id) is None:
            raise ValidationError(f"Not a stored landmark id: {record_id!r}")
        return record_id

    async def _label_for(self, draft: Record) -> str | None:
        reverse = getattr(self.geocoder, "reverse", None)
        if reverse is None:
            return None
        try:
            return await reverse(draft.coordinates)
        except AtlasError as e:
            logger.warning("Reverse geocoding failed for %r: %s", draft.name, e)
            return None

    async def _already_stored(self, draft: Record) -> Record | None:
        found = await self.store.fetch_by_name(draft.name)
        if found is None or self.blacklist.is_blacklisted(found):
            found = await self.store.find_existing(draft)
        if found is not None and self.blacklist.is_blacklisted(found):
            return None
        return found

    # -- writes --------------------------------------------------------------

    async def create(self, draft: Record, actor_id: str = "anonymous") -> Record:
        """
        Persist a hand-entered landmark.

        Raises ValidationError for a blank name or unusable coordinates and
        ConflictError when a live row with the same name already exists
        (exact name anywhere, or normalized name nearby).
        """
        name = (draft.name or "").strip()
        if not name:
            raise ValidationError("Landmark name is required")
        if not draft.has_valid_coordinates:
            raise ValidationError(f"Invalid coordinates for {name!r}: {draft.coordinates}")
        draft = replace(draft, name=name, provenance=Provenance.MANUAL)

        existing = await self._already_stored(draft)
        if existing is not None:
            raise ConflictError(f"{name!r} is already stored as {existing.id}")

        if not draft.location_text:
            label = await self._label_for(draft)
            if label:
                draft = replace(draft, location_text=label)

        created = await self.store.create(draft)
        record = replace(
            created,
            provenance=Provenance.MANUAL,
            source_metadata={**created.source_metadata, "entered_by": actor_id},
        )
        self.cache.upsert(record)
        logger.info("Manual entry %s (%s) by %s", record.id, record.name, actor_id)
        return record

    async def update(self, record_id: str, patch: dict[str, Any], actor_id: str = "anonymous") -> Record:
        """Apply a field patch to a stored, non-blacklisted row."""
        record_id = self._stored_id(record_id)
        if self.blacklist.is_blacklisted(record_id):
            raise NotFoundError(f"Landmark {record_id} has been removed")
        if not patch:
            raise ValidationError("Nothing to update")
        unknown = set(patch) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if "name" in patch and not (patch["name"] or "").strip():
            raise ValidationError("Landmark name cannot be blank")
        coords = patch.get("coordinates")
        if coords is not None and not coords.is_valid():
            raise ValidationError(f"Invalid coordinates: {coords}")

        updated = await self.store.update(record_id, patch)
        self.cache.upsert(updated)
        logger.info("Edited %s by %s: %s", record_id, actor_id, ", ".join(sorted(patch)))
        return updated

    async def remove(self, record_id: str, *, keep_row: bool = False, actor_id: str = "anonymous") -> dict[str, Any]:
        """
        Exclude a landmark from every read path.

        Deletes the store row unless keep_row is set (hide only).  A row the
        store no longer has still gets blacklisted.
        """
        record_id = self._stored_id(record_id)
        already_gone = False
        if not keep_row:
            try:
                await self.store.delete(record_id)
            except NotFoundError:
                already_gone = True
                logger.info("%s was already gone from the store", record_id)

        self.blacklist.add([record_id])
        saved = True
        try:
            self.blacklist.save()
        except OSError as e:
            logger.error("Failed to save blacklist after removing %s: %s", record_id, e)
            saved = False
        self.cache.apply_blacklist()

        logger.info("%s %s by %s", "Hid" if keep_row else "Deleted", record_id, actor_id)
        return {
            "id": record_id,
            "deleted": not keep_row,
            "already_gone": already_gone,
            "blacklist_saved": saved,
        }
