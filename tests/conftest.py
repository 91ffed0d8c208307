"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("PAYMENT__RAZORPAY__KEY_ID", "rzp_test_conftest")
os.environ.setdefault("PAYMENT__RAZORPAY__KEY_SECRET", "conftest-secret")
os.environ.setdefault("PAYMENT__REFUND__EFFECT_RETRY_BACKOFF", "0")

import pytest  # noqa: E402

from fakes import FakeGateway, FakeLedger, RecordingNotifier, make_payment  # noqa: E402


@pytest.fixture
def gateway() -> FakeGateway:
    gw = FakeGateway()
    gw.add_payment(make_payment())
    return gw


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()
