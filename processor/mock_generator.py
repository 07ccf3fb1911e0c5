"""Synthetic carnival events used when scraping is bypassed."""
import logging
import random
from datetime import datetime, timedelta
from typing import List, Optional

from processor.models import NormalisedEvent, OrganiserContact

logger = logging.getLogger(__name__)


MOCK_STATES = ('NSW', 'QLD', 'VIC')
MOCK_CITIES = {'NSW': 'Sydney', 'QLD': 'Brisbane', 'VIC': 'Melbourne'}
MIN_DAYS_AHEAD = 30
MAX_DAYS_AHEAD = 120


class MockEventGenerator:
    """Generator of one synthetic carnival per mocked state."""

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize the generator.

        Args:
            seed: Seed for the date offsets; identical seeds give identical dates
        """
        self._random = random.Random(seed)

    def generate(self, now: Optional[datetime] = None) -> List[NormalisedEvent]:
        """
        Produce one event each for NSW, QLD and VIC.

        Args:
            now: Reference time for dates and identifiers (defaults to now)

        Returns:
            List of three NormalisedEvent objects
        """
        now = now or datetime.now()
        timestamp = int(now.timestamp() * 1000)
        events = []

        for index, state in enumerate(MOCK_STATES):
            event_date = now.date() + timedelta(
                days=self._random.randint(MIN_DAYS_AHEAD, MAX_DAYS_AHEAD)
            )
            city = MOCK_CITIES[state]
            external_id = f'mock-{state.lower()}-{timestamp}'

            events.append(NormalisedEvent(
                title=f'{state} Masters Rugby League Carnival',
                date=event_date,
                external_id=external_id,
                state=state,
                location_address=f'{city} Sports Complex, {state}',
                schedule_details=(
                    f'Day-long tournament starting at {8 + index}:00 AM. '
                    'Multiple age divisions available.'
                ),
                registration_url=f'https://example.com/register/{external_id}',
                organiser_contact=OrganiserContact(
                    name=f'{state} Rugby League Masters',
                    email=f'masters@{state.lower()}rl.com.au',
                    phone='TBA',
                ),
                registration_deadline=event_date - timedelta(days=7),
            ))

        logger.info(f"Generated {len(events)} mock events")
        return events
