"""DynamoDB-backed per-state email subscriptions."""
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import boto3
from boto3.dynamodb.conditions import Attr

from processor.models import STATES

logger = logging.getLogger(__name__)


@dataclass
class Subscription:
    """Email subscription to carnival notifications for some states."""
    email: str
    states: List[str] = field(default_factory=list)
    is_active: bool = True
    unsubscribe_token: str = ''
    subscribed_at: int = 0


class SubscriptionStore:
    """Store of email subscriptions keyed by address."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized SubscriptionStore for table: {table_name}")

    def subscribe(self, email: str, states: Sequence[str]) -> Subscription:
        """
        Create or replace the subscription of an address.

        Args:
            email: Subscriber address
            states: State abbreviations to receive notifications for

        Returns:
            The stored subscription

        Raises:
            ValueError: If a state is not recognised
        """
        unknown = [state for state in states if state not in STATES]
        if unknown:
            raise ValueError(f"Unknown states: {unknown}")

        subscription = Subscription(
            email=email.strip().lower(),
            states=list(dict.fromkeys(states)),
            is_active=True,
            unsubscribe_token=secrets.token_urlsafe(24),
            subscribed_at=int(time.time()),
        )
        self.table.put_item(Item={
            'email': subscription.email,
            'states': subscription.states,
            'is_active': subscription.is_active,
            'unsubscribe_token': subscription.unsubscribe_token,
            'subscribed_at': subscription.subscribed_at,
        })
        return subscription

    def find_for_state(self, state: Optional[str]) -> List[Subscription]:
        """Return active subscriptions whose states include the given state."""
        if not state:
            return []
        items = self._scan(
            Attr('is_active').eq(True) & Attr('states').contains(state)
        )
        subscriptions = [self._item_to_subscription(item) for item in items]
        subscriptions.sort(key=lambda subscription: subscription.email)
        return subscriptions

    def _scan(self, filter_expression) -> List[dict]:
        response = self.table.scan(FilterExpression=filter_expression)
        items = response.get('Items', [])
        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                FilterExpression=filter_expression,
                ExclusiveStartKey=response['LastEvaluatedKey'],
            )
            items.extend(response.get('Items', []))
        return items

    @staticmethod
    def _item_to_subscription(item: dict) -> Subscription:
        return Subscription(
            email=item['email'],
            states=list(item.get('states', [])),
            is_active=bool(item.get('is_active', True)),
            unsubscribe_token=item.get('unsubscribe_token', ''),
            subscribed_at=int(item.get('subscribed_at', 0)),
        )
