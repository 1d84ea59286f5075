"""
QuestLedger — Reward & Streak Calculation Engine
=================================================
Turns a graded quest submission into a committed token reward: a pure
calculation pipeline (performance, boosts, events, bonuses, streak
tiers) in front of an atomic ledger that moves the balance, appends an
immutable transaction and advances the user's daily streak together.

Package layout::

    questledger/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Tuning defaults, streak tiers, bonus labels
    ├── errors.py          # Transient vs fatal error hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, sessions, async helper
    │   ├── models.py      # ORM models (7 tables)
    │   └── seed.py        # Default token-boost shop items
    ├── engine/
    │   ├── context.py     # Quest/character/grading inputs
    │   ├── reward.py      # Reward calculation pipeline
    │   └── streak.py      # Daily streak state machine
    └── services/
        ├── lookup_service.py  # Active boost / event multiplier lookups
        ├── boost_service.py   # Boost purchase activation
        ├── ledger_service.py  # Transactional balance + streak ledger
        └── reward_service.py  # RewardEngine.submit_reward entry point
"""

__version__ = "0.1.0"
