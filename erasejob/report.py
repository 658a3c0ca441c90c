"""Certificate store - JSON and text artifacts for issued certificates."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from .models import CertificateRecord
from .progress import format_elapsed
from .configuration import METHOD_INFO

logger = logging.getLogger(__name__)

TEXT_TEMPLATE = """{rule}
ERASURE CERTIFICATE
{rule}
Certificate ID: {id}
Erase Status:   SUCCESS

Device
  Path:    {device_path} - {capacity} {media}
  Model:   {model}
  Serial:  {serial}

Erasure Details
  Method:        {method_label}
  Passes:        {passes}
  Scope:         {scope}
  Verification:  {verified}
  Secure delete: {secure_delete}
  Started:       {started}
  Completed:     {completed}
  Time elapsed:  {elapsed}

Issued by {business_name}, {business_address}
Technician: {technician_name}
Generated on {generated}
{rule}
"""


class CertificateStore:
    """Persists certificates under the report directory."""

    def __init__(self, report_dir: Union[str, Path] = "build", business_info: Optional[Dict[str, str]] = None):
        self.report_dir = Path(report_dir)
        self.business_info = business_info or {}

    def _path(self, certificate_id: str, suffix: str) -> Path:
        return self.report_dir / f"certificate_{certificate_id}.{suffix}"

    def save(self, record: CertificateRecord) -> Path:
        """Write JSON and text artifacts; returns the JSON path."""
        self.report_dir.mkdir(parents=True, exist_ok=True)

        json_path = self._path(record.id, "json")
        payload = {
            "certificate": record.model_dump(mode="json"),
            "business_info": self.business_info,
            "generated_at": datetime.now().isoformat(),
        }
        with open(json_path, 'w') as f:
            json.dump(payload, f, indent=2)

        with open(self._path(record.id, "txt"), 'w') as f:
            f.write(render_text(record, self.business_info))

        logger.info("Certificate %s saved to %s", record.id, json_path)
        return json_path

    def load(self, certificate_id: str) -> CertificateRecord:
        """Load a certificate by id. Raises FileNotFoundError if unknown."""
        with open(self._path(certificate_id, "json"), 'r') as f:
            payload = json.load(f)
        return CertificateRecord.model_validate(payload["certificate"])

    def list_certificates(self) -> List[CertificateRecord]:
        """All stored certificates, oldest first."""
        records = []
        if not self.report_dir.exists():
            return records
        for path in sorted(self.report_dir.glob("certificate_*.json")):
            try:
                with open(path, 'r') as f:
                    records.append(CertificateRecord.model_validate(json.load(f)["certificate"]))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning("Skipping unreadable certificate %s: %s", path, e)
        records.sort(key=lambda r: r.completed_at)
        return records


def render_text(record: CertificateRecord, business_info: Optional[Dict[str, str]] = None) -> str:
    """Plain-text rendering of a certificate."""
    business_info = business_info or {}
    device = record.device_snapshot
    return TEXT_TEMPLATE.format(
        rule="=" * 60,
        id=record.id,
        device_path=device.path,
        capacity=device.capacity_display,
        media=device.media_type.value.upper(),
        model=device.model,
        serial=device.serial,
        method_label=METHOD_INFO[record.method]["label"],
        passes=record.passes,
        scope=record.scope.value,
        verified="Yes" if record.verified else "No",
        secure_delete="Yes" if record.secure_delete else "No",
        started=record.started_at.strftime("%Y-%m-%d %H:%M:%S"),
        completed=record.completed_at.strftime("%Y-%m-%d %H:%M:%S"),
        elapsed=format_elapsed(record.elapsed_seconds),
        business_name=business_info.get("business_name", "N/A"),
        business_address=business_info.get("business_address", "N/A"),
        technician_name=business_info.get("technician_name", "N/A"),
        generated=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )
