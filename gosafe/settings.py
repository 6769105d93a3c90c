# gosafe/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from dotenv import load_dotenv


def _int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, "").strip()
    return Decimal(raw or default)


@dataclass
class Settings:
    """
    Runtime configuration. Every field can be overridden from the environment
    (or backend .env file) using the upper-cased field name.
    """
    aws_region: str = "eu-north-1"
    reports_table: str = "Reports"
    votes_table: str = "Votes"
    users_table: str = "Users"
    reports_status_index: str = "status-index"
    reports_zone_index: str = "zone-index"
    store_backend: str = "dynamo"  # "dynamo" or "memory"

    photos_bucket: str = ""
    upload_dir: str = "./uploads"

    api_prefix: str = ""
    cors_origins: List[str] = field(default_factory=list)

    # report rules
    report_ttl_days: int = 7
    description_max_length: int = 500
    max_photos: int = 3

    # auto-verification / auto-rejection thresholds
    verify_min_confirmations: int = 3
    verify_min_score: int = 70
    reject_min_denials: int = 5
    reject_max_score: int = 30

    # reputation increments
    reward_report: Decimal = Decimal("1")
    reward_confirm: Decimal = Decimal("0.5")

    vote_max_attempts: int = 5
    h3_resolution: int = 7
    max_search_radius_m: int = 10000

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        prefix = os.getenv("API_PREFIX", "").strip()
        if prefix:
            if not prefix.startswith("/"):
                prefix = "/" + prefix
            prefix = prefix.rstrip("/")

        cors_env = os.getenv("CORS_ORIGINS", "")
        return cls(
            aws_region=os.getenv("AWS_REGION", "eu-north-1"),
            reports_table=os.getenv("REPORTS_TABLE", "Reports"),
            votes_table=os.getenv("VOTES_TABLE", "Votes"),
            users_table=os.getenv("USERS_TABLE", "Users"),
            reports_status_index=os.getenv("REPORTS_STATUS_INDEX", "status-index"),
            reports_zone_index=os.getenv("REPORTS_ZONE_INDEX", "zone-index"),
            store_backend=os.getenv("STORE_BACKEND", "dynamo").strip().lower(),
            photos_bucket=os.getenv("PHOTOS_BUCKET", ""),
            upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
            api_prefix=prefix,
            cors_origins=[o.strip() for o in cors_env.split(",") if o.strip()],
            report_ttl_days=_int("REPORT_TTL_DAYS", 7),
            description_max_length=_int("DESCRIPTION_MAX_LENGTH", 500),
            max_photos=_int("MAX_PHOTOS", 3),
            verify_min_confirmations=_int("VERIFY_MIN_CONFIRMATIONS", 3),
            verify_min_score=_int("VERIFY_MIN_SCORE", 70),
            reject_min_denials=_int("REJECT_MIN_DENIALS", 5),
            reject_max_score=_int("REJECT_MAX_SCORE", 30),
            reward_report=_decimal("REWARD_REPORT", "1"),
            reward_confirm=_decimal("REWARD_CONFIRM", "0.5"),
            vote_max_attempts=_int("VOTE_MAX_ATTEMPTS", 5),
            h3_resolution=_int("H3_RESOLUTION", 7),
            max_search_radius_m=_int("MAX_SEARCH_RADIUS_M", 10000),
        )
