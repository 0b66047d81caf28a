"""Turns storage upload notifications into processing jobs."""

import base64
import binascii
import json
from collections import OrderedDict
from typing import Any, Dict, List, Optional
from urllib.parse import unquote_plus

from domain.models import (
    GroupKey, ObjectHead, ObjectRef, ProcessingJob, UploadedObject, UserContext,
    derive_assembly_id
)
from domain.protocols import IObjectStorage
from domain.exceptions import DomainException, ValidationError
from application.paths import branch_from_key
from shared.logging import get_logger

logger = get_logger(__name__)


def is_storage_event(event: Any) -> bool:
    """True for an upload notification (``Records[].s3``)."""
    records = event.get("Records") if isinstance(event, dict) else None
    return bool(records) and isinstance(records[0], dict) and "s3" in records[0]


def decode_fields(raw: Optional[str]) -> Optional[Dict[str, str]]:
    """
    Decode the ``fields`` metadata value (base64 encoded JSON object).

    Returns None for absent or undecodable values.
    """
    if not raw:
        return None
    try:
        parsed = json.loads(base64.b64decode(raw, validate=False).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Ignoring undecodable fields metadata: {e}")
        return None
    if not isinstance(parsed, dict):
        logger.warning(f"Ignoring fields metadata that is not an object: {type(parsed).__name__}")
        return None
    return {str(k): str(v) for k, v in parsed.items()}


def decode_permissions(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed permissions metadata: {raw!r}")
        return []
    return [str(p) for p in parsed] if isinstance(parsed, list) else []


class EventIngestor:
    """
    Reads upload notifications, fetches each object's metadata and groups
    objects that belong to the same assembly into one job.
    """

    def __init__(
        self,
        storage: IObjectStorage,
        default_template_id: Optional[str] = None,
        default_branch: str = ""
    ):
        self._storage = storage
        self.default_template_id = default_template_id
        self.default_branch = default_branch
        self._logger = get_logger(__name__)

    def parse(self, event: Dict[str, Any]) -> List[ProcessingJob]:
        """
        Build jobs from a storage event.

        Objects whose metadata cannot be read are logged and dropped, as are
        groups without a template id.
        """
        objects = []
        for ref in self.refs(event):
            try:
                head = self._storage.head(ref)
            except DomainException as e:
                self._logger.error(f"Dropping {ref}: metadata lookup failed: {e}")
                continue
            objects.append(self.describe(head))

        jobs = []
        for key, members in self.group(objects).items():
            try:
                jobs.append(self.to_job(members))
            except ValidationError as e:
                self._logger.error(f"Dropping group {key}: {e}")

        self._logger.info(f"Ingested {len(objects)} object(s) into {len(jobs)} job(s)")
        return jobs

    @staticmethod
    def refs(event: Dict[str, Any]) -> List[ObjectRef]:
        """Object locations named by the event, keys URL-decoded."""
        refs = []
        for record in event.get("Records") or []:
            if not isinstance(record, dict):
                logger.warning(f"Skipping malformed record: {record!r}")
                continue
            s3 = record.get("s3") or {}
            bucket = (s3.get("bucket") or {}).get("name")
            key = (s3.get("object") or {}).get("key")
            if not bucket or not key:
                logger.warning(f"Skipping record without bucket/key: {record!r}")
                continue
            refs.append(ObjectRef(bucket, unquote_plus(key)))
        return refs

    def describe(self, head: ObjectHead) -> UploadedObject:
        """Interpret an object's upload metadata."""
        user = None
        user_id = head.meta("userid")
        if user_id:
            user = UserContext(user_id=user_id, permissions=decode_permissions(head.meta("permissions")))

        return UploadedObject(
            ref=head.ref,
            assembly_id=head.meta("assemblyid") or "",
            upload_id=head.meta("uploadid") or "",
            template_id=head.meta("templateid") or self.default_template_id or "",
            content_type=head.content_type,
            fields=decode_fields(head.meta("fields")),
            user=user,
            branch=head.meta("branch") or branch_from_key(head.ref.key) or self.default_branch
        )

    @staticmethod
    def group(objects: List[UploadedObject]) -> "OrderedDict[GroupKey, List[UploadedObject]]":
        """Group objects by assembly id; objects without one stand alone."""
        groups: "OrderedDict[GroupKey, List[UploadedObject]]" = OrderedDict()
        for obj in objects:
            groups.setdefault(obj.group_key, []).append(obj)
        return groups

    @staticmethod
    def to_job(members: List[UploadedObject]) -> ProcessingJob:
        """
        One job per group; shared attributes come from the first member.

        Raises:
            ValidationError: If the group has no template id
        """
        first = members[0]
        if not first.template_id:
            raise ValidationError(f"No template id for {first.ref} and no default configured")

        assembly_id = first.assembly_id or derive_assembly_id(
            [m.ref.key for m in members],
            first.template_id,
            first.user.user_id if first.user else None
        )
        return ProcessingJob(
            assembly_id=assembly_id,
            upload_id=first.upload_id or assembly_id,
            template_id=first.template_id,
            objects=[m.ref for m in members],
            branch=first.branch,
            fields=first.fields,
            user=first.user
        )
