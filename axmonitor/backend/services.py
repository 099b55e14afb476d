"""
backend/services.py

Per-environment wiring. Every monitored environment (DEV, TST, PRD, ...) gets
its own SQLite file, repositories, engines and pipeline; nothing mutable is
shared between environments.

ServiceRegistry maps environment names to their MonitoringServices and is
what the API resolves the {environment} path segment against.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import settings
from .correlation import AlertCorrelator
from .errors import EnvironmentNotFound
from .escalation import EscalationEngine
from .interfaces import ActionExecutor, MetricSnapshotSource, NotificationSink
from .maintenance import MaintenanceGate
from .notifications import NotificationRouter
from .pipeline import EvaluationPipeline
from .remediation import RemediationEngine
from .sources import DryRunActionExecutor, HttpActionExecutor, HttpMetricSource
from .storage import (
    AlertRepository,
    Database,
    ExecutionRepository,
    MaintenanceRepository,
    RuleRepository,
    apply_migrations,
)

logger = logging.getLogger(__name__)


@dataclass
class MonitoringServices:
    environment: str
    db: Database
    rules: RuleRepository
    alerts: AlertRepository
    executions: ExecutionRepository
    maintenance: MaintenanceRepository
    correlator: AlertCorrelator
    escalation: EscalationEngine
    remediation: RemediationEngine
    pipeline: EvaluationPipeline

    @classmethod
    def build(
        cls,
        environment: str,
        source: MetricSnapshotSource,
        sink: NotificationSink | None = None,
        executor: ActionExecutor | None = None,
        db_path: str | None = None,
    ) -> MonitoringServices:
        """Open (and migrate) the environment's database and wire every component."""
        db = Database(db_path or settings.db_path_for(environment))
        db.init_schema()
        apply_migrations(db)

        rules = RuleRepository(db)
        alerts = AlertRepository(db)
        executions = ExecutionRepository(db)
        maintenance = MaintenanceRepository(db)

        correlator = AlertCorrelator(alerts)
        escalation = EscalationEngine(
            rules, alerts, executions, sink or NotificationRouter.from_settings(environment)
        )
        remediation = RemediationEngine(rules, executions, executor or _default_executor())
        remediation.recover_interrupted()

        pipeline = EvaluationPipeline(
            environment=environment,
            source=source,
            rules=rules,
            correlator=correlator,
            escalation=escalation,
            remediation=remediation,
            maintenance=MaintenanceGate(maintenance),
        )
        return cls(
            environment=environment,
            db=db,
            rules=rules,
            alerts=alerts,
            executions=executions,
            maintenance=maintenance,
            correlator=correlator,
            escalation=escalation,
            remediation=remediation,
            pipeline=pipeline,
        )

    def close(self) -> None:
        self.db.close()


def _default_executor() -> ActionExecutor:
    if settings.ACTION_EXECUTOR_URL:
        return HttpActionExecutor(settings.ACTION_EXECUTOR_URL, token=settings.ACTION_EXECUTOR_TOKEN)
    logger.warning("ACTION_EXECUTOR_URL not set — remediation actions run in dry-run mode")
    return DryRunActionExecutor()


class ServiceRegistry:
    def __init__(self) -> None:
        self._services: dict[str, MonitoringServices] = {}

    @classmethod
    def from_settings(cls) -> ServiceRegistry:
        registry = cls()
        for name, url in settings.ENVIRONMENTS.items():
            source = HttpMetricSource(url, timeout=settings.SNAPSHOT_TIMEOUT_SECONDS)
            registry.register(MonitoringServices.build(name.upper(), source))
        return registry

    def register(self, services: MonitoringServices) -> None:
        self._services[services.environment.upper()] = services
        logger.info("Environment registered: %s", services.environment)

    def get(self, environment: str) -> MonitoringServices:
        try:
            return self._services[environment.upper()]
        except KeyError:
            raise EnvironmentNotFound(environment) from None

    @property
    def environments(self) -> list[str]:
        return sorted(self._services)

    def __iter__(self):
        return iter(self._services.values())

    def __len__(self) -> int:
        return len(self._services)

    def close_all(self) -> None:
        for services in self._services.values():
            services.close()
