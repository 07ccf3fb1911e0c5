"""Candidate collection and relevance ranking for rendered search pages."""
import logging
import re
from typing import Any, Dict, Iterable, List

from processor.models import ScrapedRaw
from processor.text_parsers import EMAIL_PATTERN, PHONE_PATTERN, STATE_PATTERN

logger = logging.getLogger(__name__)


# Ordered from specific result cards to generic containers
CANDIDATE_SELECTORS = [
    '.el-card.is-always-shadow',
    '[id^="clubsearch_"]',
    '.search-result',
    '.result-item',
    '.event-card',
    '.event-item',
    '.club-item',
    '.search-item',
    '.card',
    '.MuiCard-root',
    '.MuiListItem-root',
    '.mat-card',
    '.mat-list-item',
    '.list-group-item',
    'li',
    'table tbody tr',
    'tr',
    'article',
    'section',
    'div',
    'span',
    'p',
]

MIN_TEXT_LENGTH = 20
MAX_TEXT_LENGTH = 5000
MIN_RELEVANCE_SCORE = 5
MAX_CANDIDATES = 50
DEDUPE_PREFIX_LENGTH = 150
MARKUP_LIMIT = 2000

# (keywords, score) pairs; any keyword of a group earns the group's score once
KEYWORD_SCORES = [
    (('masters',), 10),
    (('rugby', 'league'), 8),
    (('tournament', 'championship', 'competition'), 7),
    (('club',), 6),
    (('event',), 5),
]
CONTACT_SCORE = 4
STATE_SCORE = 3
LINK_SCORE = 2

# Runs in the page; returns plain objects in selector order then document order
COLLECT_CANDIDATES_SCRIPT = """
({selectors, minLength, maxLength, markupLimit}) => {
    const found = [];
    for (const selector of selectors) {
        let elements = [];
        try {
            elements = document.querySelectorAll(selector);
        } catch (err) {
            continue;
        }
        for (const el of elements) {
            const text = (el.innerText || el.textContent || '').trim();
            if (text.length <= minLength || text.length >= maxLength) {
                continue;
            }
            const link = el.matches('a[href]') ? el : el.querySelector('a[href]');
            const button = el.matches('button') || el.querySelector('button') !== null;
            found.push({
                selector: selector,
                text: text,
                html: (el.innerHTML || '').substring(0, markupLimit),
                href: link ? link.href : null,
                hasLinkOrButton: link !== null || button
            });
        }
    }
    return found;
}
"""


def score_candidate(text: str, has_link_or_button: bool = False) -> int:
    """
    Compute the relevance score of a candidate element.

    Args:
        text: Visible text of the element
        has_link_or_button: Whether the element carries a link or button

    Returns:
        Integer relevance score
    """
    lower = text.lower()
    score = 0

    for keywords, keyword_score in KEYWORD_SCORES:
        if any(keyword in lower for keyword in keywords):
            score += keyword_score

    if EMAIL_PATTERN.search(text) or PHONE_PATTERN.search(text):
        score += CONTACT_SCORE
    if STATE_PATTERN.search(text):
        score += STATE_SCORE
    if has_link_or_button:
        score += LINK_SCORE

    return score


def _dedupe_key(text: str) -> str:
    return re.sub(r'\s+', ' ', text.lower())[:DEDUPE_PREFIX_LENGTH]


def rank_candidates(elements: Iterable[Dict[str, Any]]) -> List[ScrapedRaw]:
    """
    Filter, deduplicate and rank collected elements.

    Elements scoring below the threshold or outside the text length bounds
    are dropped, duplicates (same leading text) keep their first occurrence,
    and the survivors are stably sorted by score.

    Args:
        elements: Dicts produced by COLLECT_CANDIDATES_SCRIPT, in page order

    Returns:
        Up to MAX_CANDIDATES ScrapedRaw objects, highest score first
    """
    seen = set()
    accepted = []

    for element in elements:
        text = (element.get('text') or '').strip()
        if not (MIN_TEXT_LENGTH < len(text) < MAX_TEXT_LENGTH):
            continue

        score = score_candidate(text, bool(element.get('hasLinkOrButton')))
        if score < MIN_RELEVANCE_SCORE:
            continue

        key = _dedupe_key(text)
        if key in seen:
            continue
        seen.add(key)

        accepted.append(ScrapedRaw(
            raw_text=text,
            inner_markup=(element.get('html') or '')[:MARKUP_LIMIT],
            candidate_href=element.get('href') or None,
            relevance_score=score,
            selector=element.get('selector', ''),
        ))

    accepted.sort(key=lambda candidate: candidate.relevance_score, reverse=True)
    return accepted[:MAX_CANDIDATES]


def collect_candidates(page) -> List[ScrapedRaw]:
    """
    Run the in-page collection script and rank its results.

    Args:
        page: Playwright page showing the rendered search results

    Returns:
        Ranked list of ScrapedRaw candidates
    """
    elements = page.evaluate(COLLECT_CANDIDATES_SCRIPT, {
        'selectors': CANDIDATE_SELECTORS,
        'minLength': MIN_TEXT_LENGTH,
        'maxLength': MAX_TEXT_LENGTH,
        'markupLimit': MARKUP_LIMIT,
    }) or []

    candidates = rank_candidates(elements)
    logger.info(
        f"Collected {len(elements)} elements, kept {len(candidates)} candidates"
    )
    return candidates
