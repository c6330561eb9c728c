from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional
import logging
import uuid

from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from taxlead.core.exceptions import SnapshotStorageError, StaleSnapshotError
from taxlead.core.reconciliation import refresh_days_since_change
from taxlead.core.snapshot import Snapshot, upload_filenames

logger = logging.getLogger(__name__)

SNAPSHOT_ID = "properties"
STORAGE_FIELDS = ("_id", "_batch", "_version", "_order")


@contextmanager
def get_mongo_connection(mongo_uri: str):
    client = None
    try:
        client = MongoClient(mongo_uri)
        yield client
    finally:
        if client:
            client.close()


class MongoSnapshotRepository:
    """
        Property snapshot stored across two collections.

        Property documents for a save are written first, tagged with a batch
        id. The meta document then claims the next version with a
        compare-and-set on `version`, recording that batch, the comparison
        report and the upload in the same update. Loads only read the batch
        the meta document points at, so a save that fails before the claim
        leaves the stored snapshot untouched.
    """

    def __init__(self, mongo_uri: str, db_name: str, properties_collection: str, meta_collection: str):
        self.mongo_uri = mongo_uri
        self.db_name = db_name
        self.properties_collection = properties_collection
        self.meta_collection = meta_collection

    @classmethod
    def from_settings(cls, settings) -> "MongoSnapshotRepository":
        return cls(
            settings.MONGO_URI,
            settings.DB_NAME,
            settings.PROPERTIES_COLLECTION,
            settings.SNAPSHOT_META_COLLECTION,
        )

    def _find_meta(self, projection: Optional[Dict] = None) -> Optional[Dict]:
        try:
            with get_mongo_connection(self.mongo_uri) as client:
                return client[self.db_name][self.meta_collection].find_one({"_id": SNAPSHOT_ID}, projection)
        except PyMongoError as exc:
            raise SnapshotStorageError(f"Failed to read snapshot metadata from {self.db_name}") from exc

    def load(self, now: Optional[datetime] = None) -> Snapshot:
        try:
            with get_mongo_connection(self.mongo_uri) as client:
                db = client[self.db_name]
                meta = db[self.meta_collection].find_one({"_id": SNAPSHOT_ID}, {"report": 0})
                if not meta:
                    logger.info("No snapshot stored yet")
                    return Snapshot()

                properties: List[Dict] = []
                for doc in db[self.properties_collection].find({"_batch": meta.get("batch")}).sort("_order", 1):
                    for key in STORAGE_FIELDS:
                        doc.pop(key, None)
                    properties.append(doc)
        except PyMongoError as exc:
            raise SnapshotStorageError(f"Failed to load snapshot from {self.db_name}") from exc

        logger.info(f"Loaded {len(properties)} properties (v{meta['version']}) from {self.db_name}")
        return Snapshot(
            properties=refresh_days_since_change(properties, now),
            upload_date=meta.get("uploadDate"),
            last_updated=meta.get("lastUpdated"),
            version=meta["version"],
            processed_files=upload_filenames(meta.get("uploads")),
        )

    def save(
        self,
        snapshot: Snapshot,
        expected_version: int,
        report: Optional[Dict] = None,
        upload: Optional[Dict] = None,
    ) -> Snapshot:
        new_version = expected_version + 1
        batch = uuid.uuid4().hex
        meta_fields = {
            "version": new_version,
            "batch": batch,
            "uploadDate": snapshot.upload_date,
            "lastUpdated": snapshot.last_updated,
            "propertyCount": len(snapshot.properties),
        }
        if report is not None:
            meta_fields["report"] = report

        try:
            with get_mongo_connection(self.mongo_uri) as client:
                db = client[self.db_name]
                collection = db[self.properties_collection]

                docs = [
                    {**prop, "_batch": batch, "_version": new_version, "_order": position}
                    for position, prop in enumerate(snapshot.properties)
                ]
                if docs:
                    collection.insert_many(docs)

                try:
                    self._claim_version(db[self.meta_collection], expected_version, meta_fields, upload)
                except StaleSnapshotError:
                    collection.delete_many({"_batch": batch})
                    raise

                # The batch just superseded stays for loads still reading it.
                try:
                    collection.delete_many({"_version": {"$lt": expected_version}})
                except PyMongoError as exc:
                    logger.warning(f"Could not prune superseded property documents: {exc}")
        except StaleSnapshotError:
            logger.warning(f"Snapshot v{expected_version} is stale; save rejected")
            raise
        except PyMongoError as exc:
            raise SnapshotStorageError(f"Failed to save snapshot to {self.db_name}") from exc

        logger.info(f"Saved {len(snapshot.properties)} properties as v{new_version} to {self.db_name}")
        return snapshot.with_version(new_version)

    def _claim_version(self, meta, expected_version: int, meta_fields: Dict, upload: Optional[Dict]) -> None:
        if expected_version == 0:
            try:
                meta.insert_one({
                    "_id": SNAPSHOT_ID,
                    **meta_fields,
                    "uploads": [dict(upload)] if upload is not None else [],
                })
            except DuplicateKeyError:
                current = meta.find_one({"_id": SNAPSHOT_ID}, {"version": 1}) or {}
                raise StaleSnapshotError(expected_version, current.get("version"))
            return

        update = {"$set": meta_fields}
        if upload is not None:
            update["$push"] = {"uploads": dict(upload)}
        result = meta.update_one({"_id": SNAPSHOT_ID, "version": expected_version}, update)
        if result.matched_count == 0:
            current = meta.find_one({"_id": SNAPSHOT_ID}, {"version": 1}) or {}
            raise StaleSnapshotError(expected_version, current.get("version"))

    def load_report(self) -> Optional[Dict]:
        meta = self._find_meta({"report": 1})
        return meta.get("report") if meta else None

    def load_uploads(self) -> List[Dict]:
        meta = self._find_meta({"uploads": 1})
        return list(meta.get("uploads") or []) if meta else []
