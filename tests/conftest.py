"""Pytest configuration and fixtures."""

import time

import boto3
import pytest


@pytest.fixture
def boto_session() -> boto3.Session:
    """Session with dummy credentials; every call is stubbed."""
    return boto3.Session(
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retry backoff and poll sleeps instantaneous."""
    monkeypatch.setattr(time, "sleep", lambda seconds: None)
