"""
questledger.errors — Typed Failure Hierarchy
=============================================

Every failure raised by the reward engine is a :class:`RewardEngineError`
carrying a ``retryable`` flag, so the surrounding workflow can tell a
"try again" condition apart from one a human must investigate.

    RewardEngineError
    ├── TransientRewardError        retryable = True
    │   ├── LookupUnavailableError
    │   ├── LedgerConflictError
    │   └── LedgerUnavailableError
    └── FatalRewardError            retryable = False
        ├── InvalidRewardInputError
        ├── MalformedRecordError
        ├── DataStoreError
        └── LedgerIntegrityError

No error is ever converted into a zero reward.
"""

from __future__ import annotations


class RewardEngineError(Exception):
    """Base class for all reward engine failures."""

    retryable: bool = False


# ---------------------------------------------------------------------------
# Transient: caller may retry the whole submission
# ---------------------------------------------------------------------------
class TransientRewardError(RewardEngineError):
    retryable = True


class LookupUnavailableError(TransientRewardError):
    """The boost or event store could not be reached."""


class LedgerConflictError(TransientRewardError):
    """Another submission for the same user modified the balance or streak first."""


class LedgerUnavailableError(TransientRewardError):
    """The ledger database raised an operational (connection-level) error."""


# ---------------------------------------------------------------------------
# Fatal: caller must investigate
# ---------------------------------------------------------------------------
class FatalRewardError(RewardEngineError):
    retryable = False


class InvalidRewardInputError(FatalRewardError):
    """Input the engine refuses to repair (e.g. a negative base reward)."""


class MalformedRecordError(FatalRewardError):
    """A persisted boost or event record failed validation."""


class DataStoreError(FatalRewardError):
    """Non-transient database failure (schema mismatch, bad data, driver bug)."""


class LedgerIntegrityError(FatalRewardError):
    """An attempt to rewrite append-only ledger history."""
