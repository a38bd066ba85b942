"""Newsletter storage: webhook ingestion, date index and retrieval."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..logging import get_logger
from ..processing.text_utils import clean_newsletter_text, newsletter_slug
from ..utils import chunk_list, timestamp_sort_key, utc_now_iso
from .kv_store import (
    KVStore,
    StoredCorrupt,
    StoredList,
    StoredMissing,
    as_id_list,
    as_record,
    decode_stored_value,
    encode_value,
)

logger = get_logger(__name__)

NEWSLETTER_PREFIX = "newsletter:"
DATE_INDEX_PREFIX = "newsletter:date:"

REQUIRED_FIELDS_MESSAGE = (
    "Missing required fields: fullText, newsletterName, timestamp, and date are required"
)


class IngestValidationError(ValueError):
    """Webhook payload is missing required fields."""
    pass


class NewsletterSubmission(BaseModel):
    """Newsletter payload posted by the email-forwarding webhook."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    full_text: str = Field(alias="fullText", min_length=1)
    newsletter_name: str = Field(alias="newsletterName", min_length=1)
    timestamp: str = Field(min_length=1)
    date: str = Field(min_length=1)
    subject: str = ""
    sender: str = Field("", alias="from")

    @field_validator("timestamp", mode="before")
    @classmethod
    def timestamp_as_text(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return v
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("subject", "sender", mode="before")
    @classmethod
    def optional_text(cls, v: Any) -> Any:
        return v or ""

    @classmethod
    def from_payload(cls, payload: Any) -> "NewsletterSubmission":
        """Validate a decoded JSON body.

        Raises:
            IngestValidationError: If required fields are missing or empty
        """
        if not isinstance(payload, dict):
            raise IngestValidationError(REQUIRED_FIELDS_MESSAGE)
        try:
            return cls.model_validate(payload)
        except pydantic.ValidationError as e:
            raise IngestValidationError(REQUIRED_FIELDS_MESSAGE) from e


@dataclass
class IngestResult:
    """Outcome of a successful ingest."""
    id: str
    date: str
    original_length: int
    cleaned_length: int


@dataclass
class DateGroup:
    """Newsletters stored under one date index."""
    date: str
    newsletters: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "newsletters": self.newsletters}


def date_index_key(date: str) -> str:
    return f"{DATE_INDEX_PREFIX}{date}"


def newsletter_key(submission: NewsletterSubmission) -> str:
    return f"{NEWSLETTER_PREFIX}{submission.timestamp}:{newsletter_slug(submission.newsletter_name)}"


class NewsletterRepository:
    """Newsletters stored as individual keys plus a per-date id list."""

    def __init__(self, store: KVStore, ttl_seconds: int = 2_592_000):
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def ingest(self, submission: NewsletterSubmission) -> IngestResult:
        """Store a newsletter and append it to its date index."""
        cleaned = clean_newsletter_text(submission.full_text)
        newsletter_id = newsletter_key(submission)

        await self.store.setex(newsletter_id, self.ttl_seconds, encode_value({
            "fullText": cleaned,
            "newsletterName": submission.newsletter_name,
            "subject": submission.subject,
            "from": submission.sender,
            "timestamp": submission.timestamp,
            "date": submission.date,
            "ingested": utc_now_iso(),
        }))

        date_key = date_index_key(submission.date)
        ids = await self._read_index(date_key)
        if newsletter_id not in ids:
            ids.append(newsletter_id)

        logger.debug("Storing date index", date_key=date_key, count=len(ids))
        await self.store.setex(date_key, self.ttl_seconds, encode_value(ids))

        result = IngestResult(
            id=newsletter_id,
            date=submission.date,
            original_length=len(submission.full_text),
            cleaned_length=len(cleaned),
        )
        logger.info(
            "Newsletter stored",
            id=newsletter_id,
            name=submission.newsletter_name,
            date=submission.date,
            original_length=result.original_length,
            cleaned_length=result.cleaned_length,
            removed=result.original_length - result.cleaned_length,
        )
        return result

    async def _read_index(self, date_key: str) -> list[str]:
        """Ids in a date index; corrupt or non-list values reset to empty."""
        value = await self.store.get_value(date_key)
        if isinstance(value, StoredCorrupt):
            logger.error("Failed to parse date index, resetting", date_key=date_key, error=value.error)
        elif not isinstance(value, (StoredList, StoredMissing)):
            logger.error("Date index is not a list, resetting", date_key=date_key, kind=value.kind)
        return as_id_list(value)

    async def _fetch(self, newsletter_id: str) -> dict[str, Any] | None:
        value = await self.store.get_value(newsletter_id)
        record = as_record(value)
        if record is None:
            if not isinstance(value, StoredMissing):
                logger.warning("Skipping unreadable newsletter", id=newsletter_id, kind=value.kind)
            return None
        return {"id": newsletter_id, **record}

    async def get_by_date(self, date: str) -> list[dict[str, Any]]:
        """Newsletters for one date; expired or unreadable entries are dropped."""
        ids = await self._read_index(date_index_key(date))
        if not ids:
            return []
        fetched = await asyncio.gather(*(self._fetch(i) for i in ids))
        return [n for n in fetched if n is not None]

    async def get_all_grouped(self) -> list[DateGroup]:
        """Every date index, most recent first."""
        date_keys = await self.store.keys(f"{DATE_INDEX_PREFIX}*")
        if not date_keys:
            return []

        async def load_group(date_key: str) -> DateGroup:
            date = date_key[len(DATE_INDEX_PREFIX):]
            return DateGroup(date=date, newsletters=await self.get_by_date(date))

        groups = await asyncio.gather(*(load_group(k) for k in date_keys))

        def group_key(group: DateGroup) -> float:
            first = group.newsletters[0] if group.newsletters else {}
            return timestamp_sort_key(first.get("timestamp"))

        return sorted(groups, key=group_key, reverse=True)

    async def get_all(self) -> list[dict[str, Any]]:
        """All stored newsletters, newest first."""
        newsletters = [n for group in await self.get_all_grouped() for n in group.newsletters]
        newsletters.sort(key=lambda n: timestamp_sort_key(n.get("timestamp")), reverse=True)
        return newsletters

    async def clear_all(self, batch_size: int = 100) -> int:
        """Delete every newsletter key (records and date indexes)."""
        keys = await self.store.keys(f"{NEWSLETTER_PREFIX}*")
        logger.info("Clearing newsletter keys", count=len(keys))
        for batch in chunk_list(keys, batch_size):
            await self.store.delete(*batch)
        return len(keys)
