"""Service for storing and listing maintenance requests."""

import logging
from datetime import UTC, datetime

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from ulid import ULID

from models.maintenance_request import (
    ATTACHMENT_PLACEHOLDER,
    MaintenanceRequest,
    MaintenanceRequestCreate,
    RequestStatus,
)

logger = logging.getLogger(__name__)


class MaintenanceRequestService:
    """Shared request collection, partitioned by application namespace.

    Records are only ever inserted or status-patched. There is no delete.
    """

    def __init__(self, table):
        """Initialize the maintenance request service.

        Args:
            table: DynamoDB table keyed by (namespace, request_id)
        """
        self.table = table

    def create_request(
        self, namespace: str, reporter_id: str, request: MaintenanceRequestCreate
    ) -> MaintenanceRequest:
        """Insert a new request stamped with its reporter and server time.

        Args:
            namespace: Application namespace
            reporter_id: Identity of the submitting user
            request: Form fields

        Returns:
            Created MaintenanceRequest

        Raises:
            Exception: On database errors
        """
        record = MaintenanceRequest(
            request_id=str(ULID()),
            namespace=namespace,
            date_notified=request.date_notified,
            system=request.system,
            work_order_number=request.work_order_number,
            attached_image_url=ATTACHMENT_PLACEHOLDER if request.has_attachment else None,
            area=request.area,
            floor=request.floor,
            building=request.building,
            symptoms=request.symptoms,
            action_taken=request.action_taken,
            desired_date_time=request.desired_date_time,
            status=RequestStatus.PENDING,
            reporter_id=reporter_id,
            created_at=datetime.now(UTC).isoformat(),
        )

        try:
            # Absent optional fields are left out of the item entirely
            item = record.model_dump(exclude_none=True)
            self.table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(request_id)",
            )
            logger.info(
                "Created maintenance request %s in %s for %s",
                record.request_id,
                namespace,
                reporter_id,
            )
            return record
        except ClientError as e:
            logger.error("Failed to create maintenance request: %s", e)
            raise Exception(f"Failed to create maintenance request: {e}")

    def get_request(self, namespace: str, request_id: str) -> MaintenanceRequest | None:
        """Get a single request, or None if it does not exist."""
        try:
            response = self.table.get_item(
                Key={"namespace": namespace, "request_id": request_id}
            )
            item = response.get("Item")
            if not item:
                return None
            return MaintenanceRequest(**item)
        except ClientError as e:
            logger.error("Failed to get request %s: %s", request_id, e)
            raise Exception(f"Failed to get maintenance request: {e}")

    def list_requests(self, namespace: str) -> list[MaintenanceRequest]:
        """Return the full current snapshot of a namespace, newest first.

        Args:
            namespace: Application namespace

        Returns:
            Every request in the namespace
        """
        try:
            query_kwargs = {
                "KeyConditionExpression": Key("namespace").eq(namespace),
                "ScanIndexForward": False,  # ULID sort key, newest first
            }
            response = self.table.query(**query_kwargs)
            items = response.get("Items", [])
            while "LastEvaluatedKey" in response:
                response = self.table.query(
                    ExclusiveStartKey=response["LastEvaluatedKey"], **query_kwargs
                )
                items.extend(response.get("Items", []))

            return [MaintenanceRequest(**item) for item in items]

        except ClientError as e:
            logger.error("Failed to list requests for %s: %s", namespace, e)
            raise Exception(f"Failed to list maintenance requests: {e}")

    def update_status(
        self, namespace: str, request_id: str, status: RequestStatus
    ) -> None:
        """Patch only the status field of an existing request.

        Raises:
            ValueError: If the request does not exist
            Exception: On database errors
        """
        try:
            self.table.update_item(
                Key={"namespace": namespace, "request_id": request_id},
                UpdateExpression="SET #status = :status",
                ConditionExpression="attribute_exists(request_id)",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={":status": RequestStatus(status).value},
            )
            logger.info(
                "Request %s in %s set to %s",
                request_id,
                namespace,
                RequestStatus(status).name,
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise ValueError(f"Request {request_id} not found")
            logger.error("Failed to update status of %s: %s", request_id, e)
            raise Exception(f"Failed to update request status: {e}")
