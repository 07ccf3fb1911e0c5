"""DynamoDB-backed store of carnival records."""
import logging
import time
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from processor.models import NormalisedEvent, StoreCounts, StoredEvent

logger = logging.getLogger(__name__)


class DuplicateExternalIdError(Exception):
    """Raised when a write would give two records the same external id."""

    def __init__(self, external_id: str):
        super().__init__(f"External id already stored: {external_id}")
        self.external_id = external_id


class ClaimRejectedError(Exception):
    """Raised when a record cannot be claimed."""


class EventNotFoundError(KeyError):
    """Raised when a record id does not exist."""


EXTERNAL_ID_INDEX = 'external-id-index'
RECORD_TYPE_EVENT = 'event'
RECORD_TYPE_LOCK = 'external_id_lock'

UPDATABLE_FIELDS = (
    'title', 'date', 'state', 'location_address', 'schedule_details',
    'external_id', 'registration_url', 'last_sync_at', 'is_active',
)


def _lock_id(external_id: str) -> str:
    return f'external#{external_id}'


class EventStore:
    """Record store for imported and manually entered carnivals."""

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB resources for the carnival table.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self.client = boto3.client('dynamodb')
        self._serializer = TypeSerializer()
        logger.info(f"Initialized EventStore for table: {table_name}")

    def get(self, event_id: str) -> Optional[StoredEvent]:
        """Return the record with the given id, or None."""
        response = self.table.get_item(Key={'id': event_id}, ConsistentRead=True)
        item = response.get('Item')
        if not item or item.get('record_type') != RECORD_TYPE_EVENT:
            return None
        return self._item_to_stored_event(item)

    def find_by_external_id(self, external_id: str) -> Optional[StoredEvent]:
        """
        Look up a record by the source site's identifier.

        Args:
            external_id: Identifier assigned by the source site

        Returns:
            Matching StoredEvent or None
        """
        if not external_id:
            return None
        response = self.table.query(
            IndexName=EXTERNAL_ID_INDEX,
            KeyConditionExpression=Key('external_id').eq(external_id),
        )
        for item in response.get('Items', []):
            if item.get('record_type') == RECORD_TYPE_EVENT:
                return self._item_to_stored_event(item)
        return None

    def find_by_title_prefix(self, prefix: str, limit: int = 10) -> List[StoredEvent]:
        """
        Find records whose title contains the given text.

        The match is a case-sensitive substring test. Results are ordered by
        creation time, then id.

        Args:
            prefix: Leading characters of a candidate title
            limit: Maximum number of records to return

        Returns:
            List of matching StoredEvent objects
        """
        if not prefix:
            return []
        items = self._scan(
            Attr('record_type').eq(RECORD_TYPE_EVENT) & Attr('title').contains(prefix)
        )
        events = [self._item_to_stored_event(item) for item in items]
        events.sort(key=lambda event: (event.created_at, event.id))
        return events[:limit]

    def create(
        self,
        event: NormalisedEvent,
        created_by_user_id: Optional[str],
        now: Optional[int] = None
    ) -> StoredEvent:
        """
        Insert a new imported record.

        Args:
            event: Normalized carnival
            created_by_user_id: Identifier of the system user creating it
            now: Epoch seconds used for created_at and last_sync_at

        Returns:
            The stored record

        Raises:
            DuplicateExternalIdError: If another record holds the external id
        """
        now = int(time.time()) if now is None else now
        stored = StoredEvent(
            id=uuid.uuid4().hex,
            title=event.title,
            date=event.date.isoformat(),
            state=event.state,
            location_address=event.location_address,
            schedule_details=event.schedule_details,
            external_id=event.external_id,
            registration_url=event.registration_url,
            organiser_contact_name=event.organiser_contact.name,
            organiser_contact_email=event.organiser_contact.email,
            organiser_contact_phone=event.organiser_contact.phone,
            registration_deadline=(
                event.registration_deadline.isoformat()
                if event.registration_deadline else None
            ),
            age_categories=list(event.age_categories),
            max_teams=event.max_teams,
            is_registration_open=event.is_registration_open,
            owner_user_id=None,
            is_manually_entered=False,
            created_by_user_id=created_by_user_id,
            last_sync_at=now,
            created_at=now,
            is_active=True,
        )
        item = self._stored_event_to_item(stored)

        if not stored.external_id:
            self.table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(#id)',
                ExpressionAttributeNames={'#id': 'id'},
            )
        else:
            self._transact([
                self._lock_put(stored.external_id, stored.id),
                {'Put': {
                    'TableName': self.table_name,
                    'Item': self._serialize(item),
                    'ConditionExpression': 'attribute_not_exists(#id)',
                    'ExpressionAttributeNames': {'#id': 'id'},
                }},
            ], stored.external_id)

        logger.info(
            f"Created carnival '{stored.title}'",
            extra={'event_id': stored.id, 'external_id': stored.external_id}
        )
        return stored

    def update(self, event_id: str, partial: Dict[str, Any]) -> StoredEvent:
        """
        Apply a partial update to an existing record.

        Setting ``external_id`` reserves it atomically with the write.

        Args:
            event_id: Record id
            partial: Field name to new value; None removes the attribute

        Returns:
            The updated record

        Raises:
            DuplicateExternalIdError: If the external id is held by another record
            EventNotFoundError: If the record does not exist
            ValueError: If partial names a field that cannot be updated
        """
        unknown = set(partial) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        values = {
            field: (value.isoformat() if isinstance(value, date) else value)
            for field, value in partial.items()
        }
        set_fields = {field: value for field, value in values.items() if value is not None}
        remove_fields = [field for field, value in values.items() if value is None]

        clauses = []
        if set_fields:
            clauses.append('SET ' + ', '.join(f'#{field} = :{field}' for field in set_fields))
        if remove_fields:
            clauses.append('REMOVE ' + ', '.join(f'#{field}' for field in remove_fields))
        if not clauses:
            return self._require(event_id)

        names = dict({f'#{field}': field for field in values}, **{'#id': 'id'})
        update_args = {
            'Key': {'id': event_id},
            'UpdateExpression': ' '.join(clauses),
            'ConditionExpression': 'attribute_exists(#id) AND record_type = :record_type',
            'ExpressionAttributeNames': names,
            'ExpressionAttributeValues': dict(
                {f':{field}': value for field, value in set_fields.items()},
                **{':record_type': RECORD_TYPE_EVENT}
            ),
        }

        new_external_id = set_fields.get('external_id')
        if new_external_id:
            current = self._require(event_id)
            if current.external_id != new_external_id:
                transaction = [
                    self._lock_put(new_external_id, event_id),
                    {'Update': dict(
                        TableName=self.table_name,
                        Key=self._serialize(update_args['Key']),
                        UpdateExpression=update_args['UpdateExpression'],
                        ConditionExpression=update_args['ConditionExpression'],
                        ExpressionAttributeNames=names,
                        ExpressionAttributeValues=self._serialize(
                            update_args['ExpressionAttributeValues']
                        ),
                    )},
                ]
                if current.external_id:
                    transaction.append({'Delete': {
                        'TableName': self.table_name,
                        'Key': self._serialize({'id': _lock_id(current.external_id)}),
                    }})
                self._transact(transaction, new_external_id)
                return self._require(event_id)

        try:
            response = self.table.update_item(ReturnValues='ALL_NEW', **update_args)
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                raise EventNotFoundError(event_id)
            raise
        return self._item_to_stored_event(response['Attributes'])

    def claim(self, event_id: str, user_id: str) -> StoredEvent:
        """
        Transfer ownership of an imported record to a user.

        Args:
            event_id: Record id
            user_id: Claiming user

        Returns:
            The claimed record

        Raises:
            ClaimRejectedError: If the record is missing, already owned or
                has no external id
        """
        try:
            response = self.table.update_item(
                Key={'id': event_id},
                UpdateExpression='SET owner_user_id = :user, is_manually_entered = :manual',
                ConditionExpression=(
                    'attribute_exists(#id) AND record_type = :record_type '
                    'AND attribute_not_exists(owner_user_id) '
                    'AND attribute_exists(external_id)'
                ),
                ExpressionAttributeNames={'#id': 'id'},
                ExpressionAttributeValues={
                    ':user': str(user_id),
                    ':manual': True,
                    ':record_type': RECORD_TYPE_EVENT,
                },
                ReturnValues='ALL_NEW',
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                raise ClaimRejectedError(
                    f"Carnival {event_id} is missing, already owned or not imported"
                )
            raise
        logger.info(f"Carnival {event_id} claimed", extra={'owner_user_id': str(user_id)})
        return self._item_to_stored_event(response['Attributes'])

    def counts(self) -> StoreCounts:
        """
        Count records for status reporting.

        Returns:
            StoreCounts with total records, records carrying an external id,
            and the most recent last_sync_at among the latter
        """
        items = self._scan(
            Attr('record_type').eq(RECORD_TYPE_EVENT),
            projection='id, external_id, last_sync_at',
        )
        imported = [item for item in items if item.get('external_id')]
        last_imported_at = max(
            (int(item['last_sync_at']) for item in imported if 'last_sync_at' in item),
            default=None
        )
        return StoreCounts(
            total=len(items),
            imported=len(imported),
            last_imported_at=last_imported_at,
        )

    def deactivate_past_events(self, today: Optional[date] = None) -> int:
        """
        Mark active records dated before today as inactive.

        Args:
            today: Reference date (defaults to today)

        Returns:
            Count of records deactivated
        """
        today = today or date.today()
        items = self._scan(
            Attr('record_type').eq(RECORD_TYPE_EVENT)
            & Attr('is_active').eq(True)
            & Attr('date').lt(today.isoformat()),
            projection='id',
        )

        deactivated = 0
        for item in items:
            try:
                self.table.update_item(
                    Key={'id': item['id']},
                    UpdateExpression='SET is_active = :inactive',
                    ExpressionAttributeValues={':inactive': False},
                )
                deactivated += 1
            except ClientError as e:
                logger.warning(f"Failed to deactivate carnival {item['id']}: {e}")
                continue

        if deactivated:
            logger.info(f"Deactivated {deactivated} past carnivals")
        return deactivated

    def _require(self, event_id: str) -> StoredEvent:
        stored = self.get(event_id)
        if stored is None:
            raise EventNotFoundError(event_id)
        return stored

    def _scan(self, filter_expression, projection: Optional[str] = None) -> List[dict]:
        scan_args = {'FilterExpression': filter_expression}
        if projection:
            names = {f'#{name.strip()}': name.strip() for name in projection.split(',')}
            scan_args['ProjectionExpression'] = ', '.join(names)
            scan_args['ExpressionAttributeNames'] = names

        try:
            response = self.table.scan(**scan_args)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **scan_args
                )
                items.extend(response.get('Items', []))

            return items
        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

    def _transact(self, items: List[dict], external_id: str) -> None:
        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as e:
            if e.response['Error']['Code'] == 'TransactionCanceledException':
                reasons = e.response.get('CancellationReasons') or []
                codes = [reason.get('Code') for reason in reasons]
                if not codes or codes[0] == 'ConditionalCheckFailed':
                    raise DuplicateExternalIdError(external_id)
                if 'ConditionalCheckFailed' in codes[1:]:
                    raise EventNotFoundError(external_id)
            raise

    def _lock_put(self, external_id: str, event_id: str) -> dict:
        return {'Put': {
            'TableName': self.table_name,
            'Item': self._serialize({
                'id': _lock_id(external_id),
                'record_type': RECORD_TYPE_LOCK,
                'locked_external_id': external_id,
                'event_id': event_id,
            }),
            'ConditionExpression': 'attribute_not_exists(#id)',
            'ExpressionAttributeNames': {'#id': 'id'},
        }}

    def _serialize(self, item: dict) -> dict:
        return {key: self._serializer.serialize(value) for key, value in item.items()}

    def _stored_event_to_item(self, stored: StoredEvent) -> dict:
        """
        Convert a StoredEvent to a DynamoDB item.

        None values are omitted so the external id index stays sparse.
        """
        item = {
            'id': stored.id,
            'record_type': RECORD_TYPE_EVENT,
            'title': stored.title,
            'date': stored.date,
            'state': stored.state,
            'location_address': stored.location_address,
            'schedule_details': stored.schedule_details,
            'external_id': stored.external_id,
            'registration_url': stored.registration_url,
            'organiser_contact_name': stored.organiser_contact_name,
            'organiser_contact_email': stored.organiser_contact_email,
            'organiser_contact_phone': stored.organiser_contact_phone,
            'registration_deadline': stored.registration_deadline,
            'age_categories': stored.age_categories,
            'max_teams': stored.max_teams,
            'is_registration_open': stored.is_registration_open,
            'owner_user_id': stored.owner_user_id,
            'is_manually_entered': stored.is_manually_entered,
            'created_by_user_id': stored.created_by_user_id,
            'last_sync_at': stored.last_sync_at,
            'created_at': stored.created_at,
            'is_active': stored.is_active,
        }
        return {key: value for key, value in item.items() if value is not None}

    def _item_to_stored_event(self, item: dict) -> StoredEvent:
        """Convert a DynamoDB item to a StoredEvent."""
        return StoredEvent(
            id=item['id'],
            title=item.get('title', ''),
            date=item.get('date', ''),
            state=item.get('state', ''),
            location_address=item.get('location_address', ''),
            schedule_details=item.get('schedule_details', ''),
            external_id=item.get('external_id'),
            registration_url=item.get('registration_url'),
            organiser_contact_name=item.get('organiser_contact_name', ''),
            organiser_contact_email=item.get('organiser_contact_email', ''),
            organiser_contact_phone=item.get('organiser_contact_phone', ''),
            registration_deadline=item.get('registration_deadline'),
            age_categories=list(item.get('age_categories', [])),
            max_teams=int(item.get('max_teams', 0)),
            is_registration_open=bool(item.get('is_registration_open', True)),
            owner_user_id=item.get('owner_user_id'),
            is_manually_entered=bool(item.get('is_manually_entered', False)),
            created_by_user_id=item.get('created_by_user_id'),
            last_sync_at=int(item.get('last_sync_at', 0)),
            created_at=int(item.get('created_at', 0)),
            is_active=bool(item.get('is_active', True)),
        )
