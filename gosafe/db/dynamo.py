# gosafe/db/dynamo.py
"""
DynamoDB persistence for reports, votes and user reputation.

Tables (names come from Settings):
  Reports  PK id            GSIs: status-index (status, expires_at), zone-index (zone_id)
  Votes    PK report_id     SK voter_id
  Users    PK user_id

The boto3 resource is created once by the app (or Lambda) and handed in.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from gosafe.errors import DuplicateVoteError, StaleReportError
from gosafe.models.report import EXPIRED, PENDING
from gosafe.settings import Settings

log = logging.getLogger(__name__)


def to_item(value: Any) -> Any:
    """Dynamo rejects floats; store them as Decimal (via str to keep the printed value)."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_item(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_item(v) for v in value]
    return value


def from_item(value: Any) -> Any:
    """Turn Dynamo Decimals back into int/float so pydantic and JSON see plain numbers."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_item(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_item(v) for v in value]
    return value


def _error_code(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Code", "")


class DynamoStore:
    def __init__(self, dynamodb, settings: Settings):
        self.dynamodb = dynamodb
        self.settings = settings
        self.reports_table = dynamodb.Table(settings.reports_table)
        self.votes_table = dynamodb.Table(settings.votes_table)
        self.users_table = dynamodb.Table(settings.users_table)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DynamoStore":
        return cls(boto3.resource("dynamodb", region_name=settings.aws_region), settings)

    # ---------- reports ----------

    def put_report(self, item: Dict[str, Any]) -> None:
        self.reports_table.put_item(
            Item=to_item(item),
            ConditionExpression="attribute_not_exists(id)",
        )

    def get_report(self, report_id: str) -> Optional[Dict[str, Any]]:
        resp = self.reports_table.get_item(Key={"id": report_id}, ConsistentRead=True)
        item = resp.get("Item")
        return from_item(item) if item else None

    def delete_report(self, report_id: str) -> bool:
        resp = self.reports_table.delete_item(Key={"id": report_id}, ReturnValues="ALL_OLD")
        return bool(resp.get("Attributes"))

    def list_reports(self, status: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Newest first. With a status we go through the status GSI; without one
        we have to scan.
        """
        kwargs: Dict[str, Any] = {}
        if category:
            kwargs["FilterExpression"] = Attr("category").eq(category)

        if status:
            kwargs.update(
                IndexName=self.settings.reports_status_index,
                KeyConditionExpression=Key("status").eq(status),
                ScanIndexForward=False,
            )
            items = self._paginate(self.reports_table.query, **kwargs)
        else:
            items = self._paginate(self.reports_table.scan, **kwargs)

        items = [from_item(it) for it in items]
        items.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        return items

    def reports_in_zones(self, zone_ids: Iterable[str]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for zone_id in zone_ids:
            items.extend(
                self._paginate(
                    self.reports_table.query,
                    IndexName=self.settings.reports_zone_index,
                    KeyConditionExpression=Key("zone_id").eq(zone_id),
                )
            )
        return [from_item(it) for it in items]

    # ---------- votes ----------

    def get_vote(self, report_id: str, voter_id: str) -> Optional[Dict[str, Any]]:
        resp = self.votes_table.get_item(Key={"report_id": report_id, "voter_id": voter_id})
        item = resp.get("Item")
        return from_item(item) if item else None

    def commit_vote(
        self,
        vote: Dict[str, Any],
        report_update: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> None:
        """
        One TransactWriteItems call: the vote Put (only if no vote exists for
        this report/voter) plus, when given, the report Update guarded by
        `version = expected_version AND status = pending`.

        DuplicateVoteError -> the vote condition failed.
        StaleReportError   -> the report condition failed or another
                              transaction touched the same items.
        """
        items: List[Dict[str, Any]] = [
            {
                "Put": {
                    "TableName": self.settings.votes_table,
                    "Item": to_item(vote),
                    "ConditionExpression": "attribute_not_exists(report_id) AND attribute_not_exists(voter_id)",
                }
            }
        ]

        if report_update is not None:
            names = {"#version": "version", "#status": "status"}
            values: Dict[str, Any] = {
                ":expected": expected_version,
                ":next": expected_version + 1,
                ":pending": PENDING,
            }
            sets = ["#version = :next"]
            for i, (field, value) in enumerate(sorted(report_update.items())):
                names[f"#f{i}"] = field
                values[f":v{i}"] = to_item(value)
                sets.append(f"#f{i} = :v{i}")

            items.append(
                {
                    "Update": {
                        "TableName": self.settings.reports_table,
                        "Key": {"id": vote["report_id"]},
                        "UpdateExpression": "SET " + ", ".join(sets),
                        "ConditionExpression": "#version = :expected AND #status = :pending",
                        "ExpressionAttributeNames": names,
                        "ExpressionAttributeValues": values,
                    }
                }
            )

        try:
            self.dynamodb.meta.client.transact_write_items(TransactItems=items)
        except ClientError as e:
            if _error_code(e) != "TransactionCanceledException":
                raise
            reasons = [r.get("Code", "None") for r in e.response.get("CancellationReasons", [])]
            log.debug("vote transaction cancelled for %s: %s", vote["report_id"], reasons)
            if reasons and reasons[0] == "ConditionalCheckFailed":
                raise DuplicateVoteError("You have already voted on this report") from e
            if "ConditionalCheckFailed" in reasons or "TransactionConflict" in reasons:
                raise StaleReportError(vote["report_id"]) from e
            raise

    # ---------- expiry sweep ----------

    def due_for_expiry(self, now_iso: str) -> List[str]:
        items = self._paginate(
            self.reports_table.query,
            IndexName=self.settings.reports_status_index,
            KeyConditionExpression=Key("status").eq(PENDING) & Key("expires_at").lte(now_iso),
            ProjectionExpression="id",
        )
        return [it["id"] for it in items]

    def expire_report(self, report_id: str, now_iso: str) -> bool:
        try:
            self.reports_table.update_item(
                Key={"id": report_id},
                UpdateExpression="SET #status = :expired, updated_at = :now ADD #version :one",
                ConditionExpression="#status = :pending AND expires_at <= :now",
                ExpressionAttributeNames={"#status": "status", "#version": "version"},
                ExpressionAttributeValues={
                    ":expired": EXPIRED,
                    ":pending": PENDING,
                    ":now": now_iso,
                    ":one": 1,
                },
            )
            return True
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return False
            raise

    # ---------- users ----------

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        resp = self.users_table.get_item(Key={"user_id": user_id})
        item = resp.get("Item")
        return from_item(item) if item else None

    def add_reputation(self, user_id: str, amount: Decimal) -> None:
        self.users_table.update_item(
            Key={"user_id": user_id},
            UpdateExpression="ADD reputation :inc",
            ExpressionAttributeValues={":inc": Decimal(str(amount))},
        )

    # ---------- helpers ----------

    @staticmethod
    def _paginate(call, **kwargs) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        lek: Optional[Dict[str, Any]] = None
        while True:
            if lek:
                kwargs["ExclusiveStartKey"] = lek
            resp = call(**kwargs)
            items.extend(resp.get("Items", []))
            lek = resp.get("LastEvaluatedKey")
            if not lek:
                break
        return items
