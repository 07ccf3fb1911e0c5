"""Event processor normalizing scraped candidates into carnival events."""
import logging
import re
from datetime import date, timedelta
from typing import List, Optional

from bs4 import BeautifulSoup

from processor import text_parsers
from processor.models import (
    DEFAULT_AGE_CATEGORIES,
    DEFAULT_LOCATION,
    DEFAULT_STATE,
    MAX_SCHEDULE_LENGTH,
    MIN_TITLE_LENGTH,
    NormalisedEvent,
    ScrapedRaw,
)

logger = logging.getLogger(__name__)


class EventProcessor:
    """Processor turning ScrapedRaw candidates into NormalisedEvent objects."""

    DEFAULT_DATE_OFFSET_DAYS = 30
    REGISTRATION_DEADLINE_DAYS = 7

    def process_events(
        self,
        raw_events: List[ScrapedRaw],
        today: Optional[date] = None
    ) -> List[NormalisedEvent]:
        """
        Normalize scraped candidates, discarding the ones that fail validation.

        Candidate order is preserved.

        Args:
            raw_events: Candidates in the order produced by the browser driver
            today: Reference date for defaulted event dates (defaults to today)

        Returns:
            List of valid NormalisedEvent objects
        """
        today = today or date.today()
        processed_events = []

        for raw in raw_events:
            try:
                event = self.normalise(raw, today)
                if event:
                    processed_events.append(event)
            except Exception as e:
                preview = (raw.raw_text or '')[:50]
                logger.warning(f"Failed to normalise candidate '{preview}': {e}")
                continue

        logger.info(
            f"Normalised {len(processed_events)} valid events out of "
            f"{len(raw_events)} candidates"
        )
        return processed_events

    def normalise(
        self,
        raw: ScrapedRaw,
        today: Optional[date] = None
    ) -> Optional[NormalisedEvent]:
        """
        Normalize a single candidate.

        Args:
            raw: Candidate captured by the browser driver
            today: Reference date for a defaulted event date

        Returns:
            NormalisedEvent, or None when the title is too short
        """
        today = today or date.today()
        lines = self._candidate_lines(raw)
        combined_text = '\n'.join(lines)

        raw_title = text_parsers.extract_title(lines)
        title, title_date = text_parsers.strip_date_from_title(raw_title)

        if not self._validate_title(title):
            return None

        event_date = title_date or text_parsers.extract_date(lines)
        date_is_estimated = event_date is None
        if date_is_estimated:
            event_date = today + timedelta(days=self.DEFAULT_DATE_OFFSET_DAYS)

        body_lines = self._without_line(lines, raw_title)
        location = text_parsers.extract_location(body_lines) or DEFAULT_LOCATION
        state = text_parsers.extract_state(combined_text) or DEFAULT_STATE

        urls = text_parsers.find_urls(combined_text) + self._markup_links(raw.inner_markup)
        registration_url = raw.candidate_href or (urls[0] if urls else None)
        external_id = self._find_external_id(raw.candidate_href, urls)

        contact = text_parsers.extract_contact(
            combined_text + '\n' + self._markup_emails(raw.inner_markup)
        )
        age_categories = (
            text_parsers.extract_age_categories(combined_text)
            or list(DEFAULT_AGE_CATEGORIES)
        )

        return NormalisedEvent(
            title=title,
            date=event_date,
            external_id=external_id,
            state=state,
            location_address=location,
            schedule_details=self._schedule_details(body_lines),
            registration_url=registration_url,
            organiser_contact=contact,
            registration_deadline=event_date - timedelta(
                days=self.REGISTRATION_DEADLINE_DAYS
            ),
            age_categories=age_categories,
            date_is_estimated=date_is_estimated,
        )

    def _candidate_lines(self, raw: ScrapedRaw) -> List[str]:
        """
        Split candidate text into lines.

        innerText of some cards collapses to a single line, in which case the
        bounded markup is re-parsed to recover block boundaries.
        """
        lines = [line.strip() for line in (raw.raw_text or '').splitlines()]
        lines = [line for line in lines if line]

        if len(lines) <= 1 and raw.inner_markup:
            soup = BeautifulSoup(raw.inner_markup, 'html.parser')
            markup_lines = [
                line.strip() for line in soup.get_text('\n').splitlines()
            ]
            markup_lines = [line for line in markup_lines if line]
            if len(markup_lines) > len(lines):
                return markup_lines

        return lines

    def _validate_title(self, title: str) -> bool:
        if not title or len(title.strip()) < MIN_TITLE_LENGTH:
            logger.warning(f"Discarding candidate with short title: '{title}'")
            return False
        return True

    @staticmethod
    def _without_line(lines: List[str], line_to_drop: str) -> List[str]:
        remaining = list(lines)
        if line_to_drop in remaining:
            remaining.remove(line_to_drop)
        return remaining

    @staticmethod
    def _find_external_id(href: Optional[str], urls: List[str]) -> Optional[str]:
        for url in [href] + urls:
            external_id = text_parsers.extract_external_id(url)
            if external_id:
                return external_id
        return None

    @staticmethod
    def _markup_links(inner_markup: str) -> List[str]:
        if not inner_markup:
            return []
        soup = BeautifulSoup(inner_markup, 'html.parser')
        return [
            anchor['href'] for anchor in soup.find_all('a', href=True)
            if anchor['href'].startswith(('http://', 'https://'))
        ]

    @staticmethod
    def _markup_emails(inner_markup: str) -> str:
        if not inner_markup:
            return ''
        soup = BeautifulSoup(inner_markup, 'html.parser')
        return ' '.join(
            anchor['href'][len('mailto:'):]
            for anchor in soup.find_all('a', href=True)
            if anchor['href'].lower().startswith('mailto:')
        )

    @staticmethod
    def _schedule_details(body_lines: List[str]) -> str:
        details = '. '.join(line.rstrip('.') for line in body_lines)
        details = re.sub(r'\s+', ' ', details).strip()
        return details[:MAX_SCHEDULE_LENGTH]
