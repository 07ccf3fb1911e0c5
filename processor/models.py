"""Data models for carnival ingestion."""
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional


STATES = ('NSW', 'QLD', 'VIC', 'SA', 'WA', 'NT', 'ACT', 'TAS')
DEFAULT_STATE = 'NSW'
DEFAULT_LOCATION = 'TBA'
DEFAULT_AGE_CATEGORIES = ('35+', '40+', '45+', '50+')
DEFAULT_MAX_TEAMS = 16
MAX_SCHEDULE_LENGTH = 500
MIN_TITLE_LENGTH = 5

PLACEHOLDER_CONTACT_NAME = 'TBA'
PLACEHOLDER_CONTACT_EMAIL = 'tba@example.com'
PLACEHOLDER_CONTACT_PHONE = 'TBA'


@dataclass
class ScrapedRaw:
    """Candidate element text captured from the rendered search page."""
    raw_text: str
    inner_markup: str = ''
    candidate_href: Optional[str] = None
    relevance_score: int = 0
    selector: str = ''


@dataclass
class OrganiserContact:
    """Organiser contact details, placeholders when unknown."""
    name: str = PLACEHOLDER_CONTACT_NAME
    email: str = PLACEHOLDER_CONTACT_EMAIL
    phone: str = PLACEHOLDER_CONTACT_PHONE


@dataclass
class NormalisedEvent:
    """Validated and normalized carnival ready for reconciliation."""
    title: str
    date: date
    external_id: Optional[str] = None
    state: str = DEFAULT_STATE
    location_address: str = DEFAULT_LOCATION
    schedule_details: str = ''
    registration_url: Optional[str] = None
    organiser_contact: OrganiserContact = field(default_factory=OrganiserContact)
    registration_deadline: Optional[date] = None
    age_categories: List[str] = field(
        default_factory=lambda: list(DEFAULT_AGE_CATEGORIES)
    )
    max_teams: int = DEFAULT_MAX_TEAMS
    is_registration_open: bool = True
    date_is_estimated: bool = False


@dataclass
class StoredEvent:
    """Carnival record as persisted by the record store."""
    id: str
    title: str
    date: str
    state: str
    location_address: str
    schedule_details: str
    external_id: Optional[str]
    registration_url: Optional[str]
    organiser_contact_name: str
    organiser_contact_email: str
    organiser_contact_phone: str
    registration_deadline: Optional[str]
    age_categories: List[str]
    max_teams: int
    is_registration_open: bool
    owner_user_id: Optional[str]
    is_manually_entered: bool
    created_by_user_id: Optional[str]
    last_sync_at: int
    created_at: int
    is_active: bool

    @property
    def is_claimed(self) -> bool:
        return self.owner_user_id is not None


@dataclass
class StoreCounts:
    """Aggregate counts used by the status view and bootstrap check."""
    total: int
    imported: int
    last_imported_at: Optional[int]


@dataclass
class NotificationIntent:
    """Request to notify subscribers about a carnival."""
    kind: str  # "new" | "updated"
    event: StoredEvent


@dataclass
class NotifySummary:
    """Result of a notification fan-out."""
    sent: int = 0
    failed: int = 0


@dataclass
class SyncResult:
    """Result of a reconciliation pass."""
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.unchanged


@dataclass
class RunResult:
    """Outcome of a single ingestion run."""
    success: bool
    processed: int = 0
    created: int = 0
    updated: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
    trigger: Optional[str] = None
    duration_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class RunStatus:
    """Snapshot of the run controller state."""
    is_running: bool
    sync_enabled: bool
    last_run_at: Optional[float]
    last_result: Optional[RunResult]
    total_imported: Optional[int]
    sync_percentage: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        last_run = None
        if self.last_run_at is not None:
            last_run = datetime.fromtimestamp(
                self.last_run_at, tz=timezone.utc
            ).isoformat()
        return {
            'is_running': self.is_running,
            'sync_enabled': self.sync_enabled,
            'last_run_at': last_run,
            'last_result': self.last_result.to_dict() if self.last_result else None,
            'total_imported': self.total_imported,
            'sync_percentage': self.sync_percentage,
        }
