"""Numeric codes used by the drupal.org node API."""

from enum import IntEnum


class Status(IntEnum):
    """Issue status (``field_issue_status``)."""

    ACTIVE = 1
    FIXED = 2
    CLOSED_DUPLICATE = 3
    POSTPONED = 4
    CLOSED_WONT_FIX = 5
    CLOSED_WORKS_AS_DESIGNED = 6
    CLOSED_FIXED = 7
    NEEDS_REVIEW = 8
    NEEDS_WORK = 13
    RTBC = 14
    PATCH_TO_BE_PORTED = 15
    POSTPONED_NEED_INFO = 16
    CLOSED_OUTDATED = 17
    CLOSED_CANNOT_REPRODUCE = 18

    @classmethod
    def open_statuses(cls) -> tuple["Status", ...]:
        """Statuses counted as an open issue."""
        return (cls.ACTIVE, cls.NEEDS_REVIEW, cls.NEEDS_WORK, cls.RTBC)


class Priority(IntEnum):
    """Issue priority (``field_issue_priority``)."""

    CRITICAL = 400
    MAJOR = 300
    NORMAL = 200
    MINOR = 100


class Category(IntEnum):
    """Issue category (``field_issue_category``)."""

    BUG_REPORT = 1
    TASK = 2
    FEATURE_REQUEST = 3
    SUPPORT_REQUEST = 4
    PLAN = 5


class Vocabulary(IntEnum):
    """Taxonomy vocabularies referenced in node queries."""

    CORE_COMPATIBILITY = 6


class CoreCompatibility(IntEnum):
    """Terms of the core compatibility vocabulary."""

    DRUPAL_9X = 39794
    DRUPAL_8X = 7234
    DRUPAL_7X = 103
    DRUPAL_6X = 87
