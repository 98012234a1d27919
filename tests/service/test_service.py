"""
Tests for the service bootstrap.

============================================================
PURPOSE
============================================================
Configuration loading, component wiring, lifecycle and the
aiohttp application built around the service.

============================================================
"""

import asyncio
import os

import pytest
from aiohttp.test_utils import TestClient, TestServer

from core.exceptions import InvalidConfigError
from monitoring.config import MonitoringConfig
from monitoring.models import ProbeStatus
from monitoring.probes import ConnectionState
from recovery.models import FailureType
from security_audit.config import AuditConfig
from service.cli import build_config, create_parser, validate_args
from service.config import ServiceConfig
from service.container import ResilienceService
from service.web import SERVICE_KEY, create_app


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def config(tmp_path):
    return ServiceConfig(
        admin_token="test-admin-token",
        monitoring=MonitoringConfig(
            check_interval_seconds=3600,
            log_path=tmp_path / "monitoring.log",
            self_probe_url=None,
        ),
        audit=AuditConfig(log_path=tmp_path / "audit.log"),
    )


@pytest.fixture
def service(config, clock, metrics_source, store_connection):
    store_connection.set_state(ConnectionState.DISCONNECTED)
    return ResilienceService(
        config,
        clock=clock,
        metrics_source=metrics_source,
        store_connection=store_connection,
    )


# ============================================================
# CONFIGURATION TESTS
# ============================================================

class TestServiceConfig:
    """Tests for ServiceConfig."""

    def test_defaults(self):
        config = ServiceConfig()

        assert config.port == 4000
        assert config.log_format == "json"
        assert config.monitoring.check_interval_seconds == 30.0

    @pytest.mark.parametrize("overrides", [
        {"port": 0},
        {"port": 70000},
        {"log_format": "xml"},
    ])
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(InvalidConfigError):
            ServiceConfig(**overrides)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("ADMIN_TOKEN", "secret")
        monkeypatch.setenv("DATABASE_URL", "sqlite:///service.db")
        monkeypatch.setenv("MONITOR_AUTO_RECOVERY", "false")
        monkeypatch.setenv("ALERT_MEMORY_PERCENT", "75")
        monkeypatch.setenv("RECOVERY_STORE_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("AUDIT_BRUTE_FORCE_THRESHOLD", "7")

        config = ServiceConfig.from_env()

        assert config.port == 8080
        assert config.admin_token == "secret"
        assert config.database_url == "sqlite:///service.db"
        assert config.monitoring.auto_recovery is False
        assert config.monitoring.thresholds.memory_percent == 75.0
        assert config.recovery.policy_for(FailureType.STORE).max_attempts == 5
        assert config.audit.brute_force_threshold == 7

    def test_validate_warns_about_missing_settings(self):
        warnings = ServiceConfig().validate()

        assert any("ADMIN_TOKEN" in w for w in warnings)
        assert any("DATABASE_URL" in w for w in warnings)


# ============================================================
# CONTAINER TESTS
# ============================================================

class TestResilienceService:
    """Tests for ResilienceService wiring and lifecycle."""

    def test_probes_follow_configuration(self, service):
        assert [p.name for p in service.probes] == ["store"]

    def test_strategies_follow_collaborators(self, service):
        types = {s.failure_type for s in service.build_strategies()}

        assert types == {
            FailureType.MEMORY,
            FailureType.CPU,
            FailureType.HEALTH_CHECK,
            FailureType.STORE,
        }

    def test_self_probe_adds_network_strategy(self, config, clock, metrics_source):
        config.monitoring.self_probe_url = "http://localhost:4000/health/live"
        service = ResilienceService(config, clock=clock, metrics_source=metrics_source)

        assert [p.name for p in service.probes] == ["api"]
        types = {s.failure_type for s in service.build_strategies()}
        assert FailureType.NETWORK in types
        assert FailureType.STORE not in types

    @pytest.mark.asyncio
    async def test_initialize_connects_store(self, service):
        await service.initialize()
        await service.initialize()

        assert service.store_connection.connect_calls == 1
        assert service.store_connection.state == ConnectionState.CONNECTED
        assert service.recovery.is_initialized

    @pytest.mark.asyncio
    async def test_unavailable_store_does_not_block_startup(self, service):
        service.store_connection.connect_ok = False

        await service.initialize()

        assert service.recovery.is_initialized

    @pytest.mark.asyncio
    async def test_start_and_stop(self, service):
        await service.start()

        assert service.health_checker.is_running
        assert service.health_checker.snapshot.dependencies["store"].status == ProbeStatus.HEALTHY

        await service.stop()

        assert not service.health_checker.is_running

    @pytest.mark.asyncio
    async def test_cpu_recovery_pauses_log_rotation(self, config, clock, metrics_source, store_connection):
        config.recovery.cpu_cooldown_ms = 200
        service = ResilienceService(config, clock=clock, metrics_source=metrics_source, store_connection=store_connection)
        await service.start()
        rotation = service.health_checker.background_workloads[0]

        try:
            recovery = asyncio.create_task(service.recovery.recover("cpu"))
            await asyncio.sleep(0.05)
            assert rotation.is_paused
            assert rotation.is_running

            attempt = await recovery
        finally:
            await service.stop()

        assert attempt.success
        assert attempt.results[-1].details["workloads_paused"] == 1
        assert not rotation.is_paused


# ============================================================
# WEB APPLICATION TESTS
# ============================================================

class TestCreateApp:
    """Tests for create_app."""

    @pytest.mark.asyncio
    async def test_health_route_served_through_middlewares(self, service):
        app = create_app(service)
        assert app[SERVICE_KEY] is service

        await service.start()
        try:
            async with TestClient(TestServer(app)) as client:
                resp = await client.get("/health")
                body = await resp.json()

                assert resp.status == 200
                assert body["status"] == "healthy"
                assert "X-Request-ID" in resp.headers

                resp = await client.get("/api/monitoring/metrics")
                assert resp.status == 403
        finally:
            await service.stop()


# ============================================================
# CLI TESTS
# ============================================================

class TestCli:
    """Tests for argument parsing and configuration building."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("PORT", "HOST", "MONITOR_SELF_PROBE_URL", "MONITOR_AUTO_RECOVERY", "LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

    def test_port_override_moves_default_self_probe(self, tmp_path):
        args = create_parser().parse_args([
            "--port", "8081",
            "--no-auto-recovery",
            "--log-format", "text",
            "--env-file", str(tmp_path / "missing.env"),
        ])

        config = build_config(args)

        assert config.port == 8081
        assert config.monitoring.self_probe_url == "http://localhost:8081/health/live"
        assert config.monitoring.auto_recovery is False
        assert config.log_format == "text"

    def test_custom_self_probe_is_kept(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MONITOR_SELF_PROBE_URL", "http://probe.internal/health/live")
        args = create_parser().parse_args(["--port", "8081", "--env-file", str(tmp_path / "missing.env")])

        config = build_config(args)

        assert config.monitoring.self_probe_url == "http://probe.internal/health/live"

    def test_env_file_is_loaded(self, tmp_path):
        env_file = tmp_path / "service.env"
        env_file.write_text("PORT=9090\n")
        args = create_parser().parse_args(["--env-file", str(env_file)])

        try:
            config = build_config(args)
        finally:
            # load_dotenv writes straight into the process environment
            os.environ.pop("PORT", None)

        assert config.port == 9090

    @pytest.mark.parametrize("argv", [
        ["--port", "70000"],
        ["--check-interval", "0"],
    ])
    def test_invalid_arguments(self, argv):
        assert validate_args(create_parser().parse_args(argv))

    def test_valid_arguments(self):
        assert validate_args(create_parser().parse_args(["--port", "8080"])) == []
