"""SES email fan-out of carnival notifications to state subscribers."""
import html
import logging
from typing import Dict, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import NotificationIntent, NotifySummary, StoredEvent
from storage.subscription_store import Subscription, SubscriptionStore

logger = logging.getLogger(__name__)


SENDER_NAME = 'Old Man Footy'

NOTIFICATION_CONTENT: Dict[str, Tuple[str, str]] = {
    'new': (
        'New Masters Rugby League Carnival: {title}',
        'A new carnival has been added in your area',
    ),
    'updated': (
        'Carnival Updated: {title}',
        'A carnival you follow has changed',
    ),
}


class EmailNotifier:
    """Notifier emailing subscribers whose state preferences match an event."""

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        sender_email: str,
        base_url: str
    ):
        """
        Initialize the SES client.

        Args:
            subscriptions: Store of per-state subscriptions
            sender_email: Verified SES sender address
            base_url: Public site root used for carnival and unsubscribe links
        """
        self.subscriptions = subscriptions
        self.sender_email = sender_email
        self.base_url = base_url.rstrip('/')
        self.ses = boto3.client('ses')

    def notify(self, intent: NotificationIntent) -> NotifySummary:
        """
        Email every active subscriber of the event's state.

        Individual send failures are counted, not raised. Failure to read the
        subscriptions propagates to the caller.

        Args:
            intent: Kind of notification and the stored event

        Returns:
            NotifySummary with sent and failed counts
        """
        if intent.kind not in NOTIFICATION_CONTENT:
            raise ValueError(f"Unknown notification kind: {intent.kind}")

        event = intent.event
        subscribers = self.subscriptions.find_for_state(event.state)
        summary = NotifySummary()

        if not subscribers:
            logger.info(f"No active subscriptions for state {event.state}")
            return summary

        subject_template, header = NOTIFICATION_CONTENT[intent.kind]
        subject = subject_template.format(title=event.title)

        for subscriber in subscribers:
            try:
                self._send(subscriber, subject, header, event)
                summary.sent += 1
            except (ClientError, BotoCoreError) as e:
                summary.failed += 1
                logger.warning(
                    f"Failed to email {subscriber.email}: {e}",
                    extra={'event_id': event.id, 'kind': intent.kind}
                )

        logger.info(
            f"Carnival notification emails sent: {summary.sent} successful, "
            f"{summary.failed} failed",
            extra={'event_id': event.id, 'kind': intent.kind}
        )
        return summary

    def carnival_url(self, event: StoredEvent) -> str:
        return f'{self.base_url}/carnivals/{event.id}'

    def unsubscribe_url(self, subscriber: Subscription) -> str:
        return f'{self.base_url}/unsubscribe?token={subscriber.unsubscribe_token}'

    def _send(
        self,
        subscriber: Subscription,
        subject: str,
        header: str,
        event: StoredEvent
    ) -> None:
        self.ses.send_email(
            Source=f'"{SENDER_NAME}" <{self.sender_email}>',
            Destination={'ToAddresses': [subscriber.email]},
            Message={
                'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                'Body': {
                    'Text': {
                        'Data': self._text_body(header, event, subscriber),
                        'Charset': 'UTF-8',
                    },
                    'Html': {
                        'Data': self._html_body(header, event, subscriber),
                        'Charset': 'UTF-8',
                    },
                },
            },
        )

    def _details(self, event: StoredEvent):
        details = [
            ('Date', event.date),
            ('Location', event.location_address),
            ('State', event.state),
        ]
        if event.schedule_details:
            details.append(('Schedule', event.schedule_details))
        details.append(('Contact', ', '.join(
            value for value in (
                event.organiser_contact_name,
                event.organiser_contact_email,
                event.organiser_contact_phone,
            ) if value
        )))
        return details

    def _text_body(self, header: str, event: StoredEvent, subscriber: Subscription) -> str:
        lines = [header, '', event.title, '']
        lines.extend(f'{label}: {value}' for label, value in self._details(event))
        if event.registration_url:
            lines.append(f'Register: {event.registration_url}')
        lines.extend([
            '',
            f'View carnival: {self.carnival_url(event)}',
            f'Unsubscribe: {self.unsubscribe_url(subscriber)}',
        ])
        return '\n'.join(lines)

    def _html_body(self, header: str, event: StoredEvent, subscriber: Subscription) -> str:
        rows = ''.join(
            f'<tr><th align="left">{html.escape(label)}</th>'
            f'<td>{html.escape(str(value))}</td></tr>'
            for label, value in self._details(event)
        )
        register = ''
        if event.registration_url:
            register = (
                f'<p><a href="{html.escape(event.registration_url, quote=True)}">'
                'Register now</a></p>'
            )
        return (
            f'<h2>{html.escape(header)}</h2>'
            f'<h3>{html.escape(event.title)}</h3>'
            f'<table>{rows}</table>'
            f'{register}'
            f'<p><a href="{html.escape(self.carnival_url(event), quote=True)}">View carnival</a></p>'
            f'<p style="font-size:small"><a href="{html.escape(self.unsubscribe_url(subscriber), quote=True)}">'
            'Unsubscribe</a></p>'
        )
