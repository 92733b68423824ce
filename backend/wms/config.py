# backend/wms/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/wms.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///wms.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Document numbering. The number of N characters is the zero-pad width.
    DOC_NUMBER_FORMAT = os.environ.get("DOC_NUMBER_FORMAT", "{PREFIX}-{YYYY}-{NNNN}")
    DOC_PREFIXES = {
        "grn": "GRN",
        "mi": "MI",
        "mrn": "MRN",
        "qci": "QCI",
        "dr": "DR",
        "wt": "WT",
        "lot": "LOT",
    }

    # Role required when a document type has no approval tiers configured
    APPROVAL_FALLBACK_ROLE = os.environ.get("APPROVAL_FALLBACK_ROLE", "admin")

    # Retries on storage lock contention only; business conflicts are never retried
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
