"""Prometheus counters for account issuance, served from ``/metrics``."""

from __future__ import annotations

from prometheus_client import Counter

ACCOUNTS_ISSUED = Counter(
    "testuser_accounts_issued_total",
    "Test accounts handed back to callers.",
    ["env", "kind"],
)
VERIFICATION_TIMEOUTS = Counter(
    "testuser_verification_timeouts_total",
    "Verified-account requests that hit the wait deadline.",
    ["env"],
)
ASSERTIONS_ISSUED = Counter(
    "testuser_assertions_issued_total",
    "Backed assertions minted for test accounts.",
    ["env"],
)
ACCOUNTS_SWEPT = Counter(
    "testuser_accounts_swept_total",
    "Accounts removed by the expiry sweeper.",
)
