"""
Stipend — Activity Availability & Reward Engine
================================================
Decides whether a user may claim a named activity (welcome bonus, daily
login, referral …), records the claim, credits the user's balance exactly
once per eligibility window, and runs activity-specific side effects.

Package layout::

    stipend/
    ├── config.py          # YAML → typed Python config (+ activity catalog)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (users, user_activities)
    ├── engine/
    │   ├── activities.py  # Activity, AvailabilityPolicy, ActivityCatalog
    │   ├── availability.py # Verdict + AvailabilityEvaluator
    │   ├── outcomes.py    # Ok / NotFound / Unavailable / ValidationError / Internal
    │   ├── rules.py       # Conditional rules (referral) + static registry
    │   └── stores.py      # Ledger / user-directory protocols
    ├── services/
    │   ├── stores.py          # SQLAlchemy ledger + user directory
    │   ├── reward_service.py  # RewardProcessor (evaluate → record → credit)
    │   ├── user_service.py    # User lookup / creation
    │   └── backfill_service.py # Referral-link backfill
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine / processor / bearer-token deps
        └── routes/        # /activities, /profile
"""

__version__ = "0.1.0"
