"""Pure text parsers for scraped carnival candidates.

All functions are deterministic and side-effect free. None of them raise on
malformed input: they return ``None`` (or a default) instead, leaving the
choice of fallback to the caller.
"""
import re
from datetime import date
from typing import Iterable, List, Optional, Tuple

from processor.models import STATES, OrganiserContact


DEFAULT_TITLE = 'Masters Event'
MIN_EVENT_YEAR = 2024

TITLE_MIN_LENGTH = 10
TITLE_MAX_LENGTH = 100

MONTHS = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4, 'may': 5,
    'june': 6, 'july': 7, 'august': 8, 'september': 9, 'october': 10,
    'november': 11, 'december': 12,
}
MONTH_ABBREVIATIONS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6, 'jul': 7,
    'aug': 8, 'sep': 9, 'sept': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

_FULL_MONTH = '(' + '|'.join(MONTHS) + ')'
_ABBR_MONTH = r'(' + '|'.join(sorted(MONTH_ABBREVIATIONS, key=len, reverse=True)) + r')\.?'
_ORDINAL = r'(?:st|nd|rd|th)?'

# (pattern, group order) tried in declaration order against each line
DATE_PATTERNS = [
    (re.compile(r'\b(\d{4})-(\d{1,2})-(\d{1,2})\b'), 'ymd'),
    (re.compile(r'\b(\d{1,2})[/-](\d{1,2})[/-](\d{4})\b'), 'dmy'),
    (re.compile(rf'\b(\d{{1,2}}){_ORDINAL}\s+{_FULL_MONTH}\s*,?\s+(\d{{4}})\b', re.I), 'dMy'),
    (re.compile(rf'\b{_FULL_MONTH}\s+(\d{{1,2}}){_ORDINAL}\s*,?\s+(\d{{4}})\b', re.I), 'Mdy'),
    (re.compile(rf'\b(\d{{1,2}}){_ORDINAL}\s+{_ABBR_MONTH}\s*,?\s+(\d{{4}})\b', re.I), 'dMy'),
    (re.compile(rf'\b{_ABBR_MONTH}\s+(\d{{1,2}}){_ORDINAL}\s*,?\s+(\d{{4}})\b', re.I), 'Mdy'),
]

_DATE_TOKEN = (
    r'(?:\d{4}-\d{1,2}-\d{1,2}'
    r'|\d{1,2}[\s/-]\d{1,2}[\s/-]\d{4}'
    r'|\d{1,2}(?:st|nd|rd|th)?\s+[A-Za-z]{3,}\.?,?\s+\d{4}'
    r'|[A-Za-z]{3,}\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4})'
)

# Shapes of a date embedded in a title, most specific first
TITLE_DATE_PATTERNS = [
    re.compile(r'\s*\(\s*(' + _DATE_TOKEN + r')\s*\)\s*'),
    re.compile(r'\s*[-|–]\s*(' + _DATE_TOKEN + r')\s*'),
    re.compile(r'\s+(' + _DATE_TOKEN + r')\s*$'),
]

LOCATION_INDICATORS = [
    re.compile(r'\blocation\s*:\s*(.+)$', re.I),
    re.compile(r'\bvenue\s*:\s*(.+)$', re.I),
    re.compile(r'^\s*at\s+(.+)$', re.I),
    re.compile(r'\bheld at\s+(.+)$', re.I),
    re.compile(
        r'\bat\s+(.*\b(?:oval|park|ground|grounds|stadium|field|fields|reserve|complex|centre|center|arena)\b.*)$',
        re.I
    ),
    re.compile(r'\baddress\s*:\s*(.+)$', re.I),
]

STATE_PATTERN = re.compile(r'\b(' + '|'.join(STATES) + r')\b')
STATE_PATTERNS = [(state, re.compile(r'\b' + state + r'\b')) for state in STATES]

EXTERNAL_ID_PATTERNS = [
    re.compile(r'event[/=](\d+)', re.I),
    re.compile(r'id[/=](\d+)', re.I),
    re.compile(r'register[/=](\d+)', re.I),
    re.compile(r'/(\d+)/?(?:[?#].*)?$'),
]

URL_PATTERN = re.compile(r'https?://[^\s<>"\')\]]+', re.I)
EMAIL_PATTERN = re.compile(r'[\w.+-]+@[\w-]+(?:\.[\w-]+)+')
PHONE_PATTERN = re.compile(r'(?:\+?61[\s-]?|\b0)[2-478](?:[\s-]?\d){8}\b')
CONTACT_NAME_PATTERN = re.compile(
    r'^\s*(?:contact|organiser|organizer)(?:\s+name)?\s*:\s*(.+)$', re.I
)
AGE_PATTERNS = [
    re.compile(r'\b(\d{2})\s*\+'),
    re.compile(r'\bover\s+(\d{2})\'?s?\b', re.I),
]


def _clean_lines(lines: Iterable[str]) -> List[str]:
    return [line.strip() for line in lines if line and line.strip()]


def extract_title(lines: Iterable[str]) -> str:
    """
    Pick the most title-like line of a candidate.

    Args:
        lines: Text lines of the candidate element, in display order

    Returns:
        First 10-100 character line mentioning "masters" (and not
        "register"/"location"), else the first line strictly between 10 and
        100 characters, else ``DEFAULT_TITLE``
    """
    cleaned = _clean_lines(lines)

    for line in cleaned:
        lower = line.lower()
        if (TITLE_MIN_LENGTH <= len(line) <= TITLE_MAX_LENGTH
                and 'masters' in lower
                and 'register' not in lower
                and 'location' not in lower):
            return line

    for line in cleaned:
        if TITLE_MIN_LENGTH < len(line) < TITLE_MAX_LENGTH:
            return line

    return DEFAULT_TITLE


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    if year < MIN_EVENT_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _match_to_date(match: re.Match, order: str) -> Optional[date]:
    groups = match.groups()
    try:
        if order == 'ymd':
            return _build_date(int(groups[0]), int(groups[1]), int(groups[2]))
        if order == 'dmy':
            return _build_date(int(groups[2]), int(groups[1]), int(groups[0]))
        if order == 'dMy':
            month = _month_number(groups[1])
            return _build_date(int(groups[2]), month, int(groups[0])) if month else None
        if order == 'Mdy':
            month = _month_number(groups[0])
            return _build_date(int(groups[2]), month, int(groups[1])) if month else None
    except (TypeError, ValueError):
        return None
    return None


def _month_number(name: str) -> Optional[int]:
    key = name.lower().rstrip('.')
    return MONTHS.get(key) or MONTH_ABBREVIATIONS.get(key)


def parse_date_text(text: str) -> Optional[date]:
    """
    Parse the first valid date found in a piece of text.

    Args:
        text: Free text possibly containing a date

    Returns:
        Calendar date with year >= 2024, or None
    """
    if not text:
        return None
    # "19 07 2025" is accepted inside titles
    candidate = re.sub(r'\b(\d{1,2})\s+(\d{1,2})\s+(\d{4})\b', r'\1/\2/\3', text)
    for pattern, order in DATE_PATTERNS:
        for match in pattern.finditer(candidate):
            parsed = _match_to_date(match, order)
            if parsed:
                return parsed
    return None


def extract_date(lines: Iterable[str]) -> Optional[date]:
    """
    Find the event date in candidate lines.

    Each line is tested against every pattern in order (ISO, DD/MM/YYYY,
    full month name, abbreviated month); the first line producing a valid
    date wins.

    Args:
        lines: Text lines of the candidate element

    Returns:
        Parsed date or None
    """
    for line in _clean_lines(lines):
        parsed = parse_date_text(line)
        if parsed:
            return parsed
    return None


def strip_date_from_title(title: str) -> Tuple[str, Optional[date]]:
    """
    Extract a bracketed, separated or trailing date from a title.

    Args:
        title: Raw title, e.g. "Masters Carnival (19/07/2025)"

    Returns:
        Tuple of (clean title, extracted date). The title is returned
        unchanged with a None date when no parseable date is embedded.
    """
    if not title:
        return title or '', None

    original = title.strip()
    for pattern in TITLE_DATE_PATTERNS:
        match = pattern.search(original)
        if not match:
            continue
        parsed = parse_date_text(match.group(1))
        if not parsed:
            continue

        cleaned = original[:match.start()] + ' ' + original[match.end():]
        cleaned = re.sub(r'\(\s*\)', '', cleaned)
        cleaned = re.sub(r'^\s*[-|–]\s*', '', cleaned)
        cleaned = re.sub(r'\s*[-|–]\s*$', '', cleaned)
        cleaned = re.sub(r'\s+', ' ', cleaned).strip()
        return (cleaned or original), parsed

    return original, None


def extract_location(lines: Iterable[str]) -> Optional[str]:
    """
    Find the venue line of a candidate.

    Args:
        lines: Text lines of the candidate element

    Returns:
        Text following a location indicator ("location:", "venue:", a leading
        "at ", "held at", a mid-line "at " naming an oval, park or similar
        venue, "address:"), else the first line carrying a state
        abbreviation, else None
    """
    cleaned = _clean_lines(lines)

    for line in cleaned:
        for indicator in LOCATION_INDICATORS:
            match = indicator.search(line)
            if match:
                location = match.group(1).strip().rstrip('.,;')
                if location:
                    return location

    for line in cleaned:
        if STATE_PATTERN.search(line):
            return line

    return None


def extract_state(text: str) -> Optional[str]:
    """Return the first state token present, in NSW..TAS declaration order."""
    if not text:
        return None
    for state, pattern in STATE_PATTERNS:
        if pattern.search(text):
            return state
    return None


def extract_external_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the source site's event identifier from a URL.

    Args:
        url: Candidate link, e.g. "https://site/register/event/9142"

    Returns:
        Identifier digits or None
    """
    if not url:
        return None
    for pattern in EXTERNAL_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def find_urls(text: str) -> List[str]:
    """Return the http(s) URLs found in text, in order of appearance."""
    if not text:
        return []
    return [url.rstrip('.,;:') for url in URL_PATTERN.findall(text)]


def extract_contact(text: str) -> OrganiserContact:
    """
    Extract organiser contact details from candidate text.

    Args:
        text: Combined candidate text

    Returns:
        OrganiserContact with placeholders for anything not found
    """
    contact = OrganiserContact()
    if not text:
        return contact

    email_match = EMAIL_PATTERN.search(text)
    if email_match:
        contact.email = email_match.group(0).lower()

    phone_match = PHONE_PATTERN.search(text)
    if phone_match:
        contact.phone = re.sub(r'\s+', ' ', phone_match.group(0)).strip()

    for line in text.splitlines():
        match = CONTACT_NAME_PATTERN.match(line)
        if not match:
            continue
        name = EMAIL_PATTERN.sub('', match.group(1))
        name = PHONE_PATTERN.sub('', name).strip(' ,;-|')
        if name:
            contact.name = name
            break

    return contact


def extract_age_categories(text: str) -> List[str]:
    """Return age divisions such as "35+" or "Over 40s" as ["35+", "40+"]."""
    if not text:
        return []
    found = []
    for pattern in AGE_PATTERNS:
        for match in pattern.finditer(text):
            age = int(match.group(1))
            label = f'{age}+'
            if 30 <= age < 80 and label not in found:
                found.append(label)
    return sorted(found, key=lambda label: int(label[:-1]))
