"""Shared fixtures for carnival sync tests."""
import os
from datetime import date
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from ingestor.config import IngestorConfig
from processor.models import NormalisedEvent, OrganiserContact


TABLE_NAME = 'test-carnivals'
SUBSCRIPTIONS_TABLE_NAME = 'test-email-subscriptions'
SENDER_EMAIL = 'noreply@example.com'


@pytest.fixture(autouse=True)
def aws_credentials():
    """Point boto3 at fake credentials so nothing reaches AWS."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'ap-southeast-2',
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def aws():
    """Start moto and create the carnival and subscription tables."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='ap-southeast-2')

        dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[
                {'AttributeName': 'id', 'AttributeType': 'S'},
                {'AttributeName': 'external_id', 'AttributeType': 'S'},
            ],
            GlobalSecondaryIndexes=[
                {
                    'IndexName': 'external-id-index',
                    'KeySchema': [
                        {'AttributeName': 'external_id', 'KeyType': 'HASH'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'},
                }
            ],
            BillingMode='PAY_PER_REQUEST',
        )

        dynamodb.create_table(
            TableName=SUBSCRIPTIONS_TABLE_NAME,
            KeySchema=[{'AttributeName': 'email', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'email', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST',
        )

        ses = boto3.client('ses', region_name='ap-southeast-2')
        ses.verify_email_identity(EmailAddress=SENDER_EMAIL)

        yield dynamodb


@pytest.fixture
def event_store(aws):
    from storage.event_store import EventStore
    return EventStore(TABLE_NAME)


@pytest.fixture
def subscription_store(aws):
    from storage.subscription_store import SubscriptionStore
    return SubscriptionStore(SUBSCRIPTIONS_TABLE_NAME)


@pytest.fixture
def config():
    """Configuration with sync enabled, scraping on and no pacing."""
    return IngestorConfig(
        sync_enabled=True,
        use_mock_data=False,
        enable_scraping=True,
        source_url='https://src.example/search?type=masters',
        site_root_url='https://src.example',
        request_delay_ms=0,
        retry_attempts=1,
        environment='test',
        table_name=TABLE_NAME,
        subscriptions_table_name=SUBSCRIPTIONS_TABLE_NAME,
        sender_email=SENDER_EMAIL,
        base_url='https://oldmanfooty.example',
    )


@pytest.fixture
def leichhardt_event():
    """The normalized form of the Leichhardt Oval carnival candidate."""
    return NormalisedEvent(
        title='NSW Masters Carnival',
        date=date(2025, 7, 15),
        external_id='9142',
        state='NSW',
        location_address='Leichhardt Oval',
        schedule_details='At Leichhardt Oval. 15 July 2025',
        registration_url='https://src.example/event/9142',
        organiser_contact=OrganiserContact(),
        registration_deadline=date(2025, 7, 8),
    )
