"""Shared test configuration."""

import pytest


@pytest.fixture(autouse=True)
def no_emf_metrics(monkeypatch):
    """Keep EMF metrics from trying to reach a CloudWatch agent."""

    async def _noop(*_args, **_kwargs):
        return None

    monkeypatch.setattr("assessor.common.metrics._put_metric", _noop)
