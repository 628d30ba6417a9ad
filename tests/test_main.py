"""Tests for process wiring and structured logging."""

from __future__ import annotations

import json
import logging
import sys

import pytest
from cluster_mock import MockCluster

from interruption import main as main_module
from interruption.config import Config
from interruption.main import JsonFormatter, build_reconciler, main
from interruption.metrics import InterruptionMetrics
from interruption.reconciler import InterruptionReconciler


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(main_module, "setup_logging", lambda level="INFO": None)


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_extra_fields_included(self) -> None:
        """Test that extra fields appear next to the standard keys."""
        record = logging.LogRecord(
            "interruption.handler", logging.INFO, __file__, 1, "Initiating delete", None, None
        )
        record.claim = "claim-1"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Initiating delete"
        assert data["level"] == "INFO"
        assert data["logger"] == "interruption.handler"
        assert data["claim"] == "claim-1"
        assert data["timestamp"].endswith("Z")
        assert "msg" not in data

    def test_exception_included(self) -> None:
        """Test that exception text is rendered."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "interruption", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        data = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]


class TestMain:
    """Tests for main start-up failures."""

    @pytest.mark.asyncio
    async def test_missing_cluster_client(self) -> None:
        """Test that start-up fails without a cluster client."""
        assert await main(Config(queue_name="interruption-queue")) == 1

    @pytest.mark.asyncio
    async def test_unloadable_cluster_client(self) -> None:
        """Test that start-up fails when the cluster client cannot be loaded."""
        config = Config(queue_name="interruption-queue", cluster_client="no_such_mod:factory")

        assert await main(config) == 1

    @pytest.mark.asyncio
    async def test_invalid_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that invalid environment configuration fails start-up."""
        monkeypatch.delenv("INTERRUPTION_QUEUE", raising=False)

        assert await main() == 1


class TestBuildReconciler:
    """Tests for build_reconciler."""

    def test_wires_reconciler(self) -> None:
        """Test that a reconciler is built around the given config."""
        config = Config(queue_name="interruption-queue")

        cluster = MockCluster()

        reconciler = build_reconciler(config, cluster, InterruptionMetrics())

        assert isinstance(reconciler, InterruptionReconciler)
        assert reconciler.config is config
