### app/esign/storage.py

# Standard library imports
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

# Local imports
from app.esign.models import TrackingRecord, utc_now
from app.utils.logger import get_logger

logger = get_logger(__name__)

# camelCase keys from older ledger files, mapped to the current field names
LEGACY_KEYS = {
    "nodeId": "node_id",
    "attachId": "destination_folder_id",
    "fileName": "file_name",
    "workflowId": "workflow_id",
    "subworkflowId": "subworkflow_id",
    "sendonDone": "workflow_advanced",
    "emails": "recipient_emails",
    "createdAt": "created_at",
}


class LedgerStore(Protocol):
    """Keyed store of tracking records"""

    def get(self, agreement_id: str) -> Optional[TrackingRecord]: ...

    def put(self, agreement_id: str, record: TrackingRecord) -> None: ...

    def list(self) -> List[Tuple[str, TrackingRecord]]: ...


class AgreementLedger:
    """
    This class is used to store the agreement tracking records in a JSON file.
    The whole file is rewritten after every mutation.
    """
    def __init__(self, storage_path: Path):
        self.storage_path = Path(storage_path)
        self.records: Dict[str, TrackingRecord] = self._load_storage()

    def _load_storage(self) -> Dict[str, TrackingRecord]:
        """Load tracking records from the JSON file"""
        if not self.storage_path.exists():
            return {}
        with open(self.storage_path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        records = {}
        for agreement_id, data in raw.items():
            records[agreement_id] = TrackingRecord.model_validate(_upgrade_legacy(data))
        logger.info("ledger_loaded", path=str(self.storage_path), records=len(records))
        return records

    def save_storage(self) -> None:
        """Write all records to a temp file and swap it into place."""
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            agreement_id: record.model_dump(mode="json")
            for agreement_id, record in self.records.items()
        }
        fd, tmp_path = tempfile.mkstemp(
            dir=self.storage_path.parent, prefix=".agreements-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.storage_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def add(self, agreement_id: str, record: TrackingRecord) -> None:
        """Track a newly created agreement"""
        if agreement_id in self.records:
            raise ValueError(f"Agreement {agreement_id} is already tracked")
        self.records[agreement_id] = record
        self.save_storage()

    def get(self, agreement_id: str) -> Optional[TrackingRecord]:
        """Get the tracking record by agreement ID"""
        return self.records.get(agreement_id)

    def put(self, agreement_id: str, record: TrackingRecord) -> None:
        """Replace a record, refusing to clear the workflow_advanced flag"""
        current = self.records.get(agreement_id)
        if current is not None and current.workflow_advanced and not record.workflow_advanced:
            raise ValueError(f"workflow_advanced cannot be reset for {agreement_id}")
        record.updated_at = utc_now()
        self.records[agreement_id] = record
        self.save_storage()

    def list(self) -> List[Tuple[str, TrackingRecord]]:
        """List all (agreement_id, record) pairs"""
        return list(self.records.items())

    def mark_workflow_advanced(self, agreement_id: str) -> None:
        """Flag the agreement's workflow as advanced"""
        record = self.records[agreement_id]
        if record.workflow_advanced:
            return
        self.put(agreement_id, record.model_copy(update={"workflow_advanced": True}))


def _upgrade_legacy(data: dict) -> dict:
    upgraded = {LEGACY_KEYS.get(key, key): value for key, value in data.items()}
    # Older files store "" for a missing workflow
    for key in ("workflow_id", "subworkflow_id"):
        if upgraded.get(key) == "":
            upgraded[key] = None
    # Undated records must never look recent to the duplicate check
    upgraded.setdefault("created_at", "1970-01-01T00:00:00+00:00")
    if "updated_at" not in upgraded:
        upgraded["updated_at"] = upgraded["created_at"]
    return upgraded
