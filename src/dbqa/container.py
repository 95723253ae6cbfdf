"""
Lazy-initialised composition root.

:class:`DbqaContainer` wires the store, resolver, executor, evaluator,
alert engine, dispatcher, runner and scheduler from one
:class:`~dbqa.config.DbqaSettings` and creates each on first access.

Usage::

    from dbqa.container import DbqaContainer

    with DbqaContainer() as c:
        c.store.create_all()
        report = c.scheduler.run_query_now(query_id)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from dbqa.alerting.channels import EmailChannel, SlackChannel, WebhookChannel
from dbqa.alerting.dispatcher import NotificationDispatcher
from dbqa.alerting.engine import AlertEngine
from dbqa.config import DbqaSettings, get_settings
from dbqa.connections import ConnectionResolver, SQLAlchemyConnectionResolver
from dbqa.core.orm.session import DbqaSession, create_dbqa_engine, dbqa_session_factory
from dbqa.core.store import QueryStore
from dbqa.evaluation import ThresholdEvaluator
from dbqa.execution import CheckRunner, InFlightRegistry, QueryExecutor
from dbqa.logging import get_logger
from dbqa.scheduling import SchedulerBackend, SchedulerService, create_scheduler

logger = get_logger(__name__)


class DbqaContainer:
    """Lazy-initialised dependency container.

    Components are created on first property access and disposed via
    :meth:`close` (or the context-manager protocol). A resolver or
    scheduler backend can be injected, which is how tests swap in fakes.
    """

    def __init__(
        self,
        settings: DbqaSettings | None = None,
        *,
        resolver: ConnectionResolver | None = None,
        backend: SchedulerBackend | None = None,
    ) -> None:
        self._settings = settings
        self._resolver = resolver
        self._backend = backend
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[DbqaSession] | None = None
        self._store: QueryStore | None = None
        self._executor: QueryExecutor | None = None
        self._evaluator: ThresholdEvaluator | None = None
        self._alert_engine: AlertEngine | None = None
        self._dispatcher: NotificationDispatcher | None = None
        self._runner: CheckRunner | None = None
        self._registry: InFlightRegistry | None = None
        self._scheduler: SchedulerService | None = None

    # ── Properties (lazy) ────────────────────────────────────────

    @property
    def settings(self) -> DbqaSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def engine(self) -> Engine:
        """SQLAlchemy engine of the DB QA store itself."""
        if self._engine is None:
            self._engine = create_dbqa_engine(
                self.settings.database_url, echo=self.settings.database_echo
            )
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[DbqaSession]:
        if self._session_factory is None:
            self._session_factory = dbqa_session_factory(self.engine)
        return self._session_factory

    @property
    def store(self) -> QueryStore:
        if self._store is None:
            self._store = QueryStore(self.session_factory)
        return self._store

    @property
    def resolver(self) -> ConnectionResolver:
        if self._resolver is None:
            self._resolver = SQLAlchemyConnectionResolver(self.store)
        return self._resolver

    @property
    def executor(self) -> QueryExecutor:
        if self._executor is None:
            self._executor = QueryExecutor(
                self.resolver,
                default_timeout=self.settings.query_timeout_seconds,
                row_limit=self.settings.result_row_limit,
            )
        return self._executor

    @property
    def evaluator(self) -> ThresholdEvaluator:
        if self._evaluator is None:
            self._evaluator = ThresholdEvaluator()
        return self._evaluator

    @property
    def alert_engine(self) -> AlertEngine:
        if self._alert_engine is None:
            self._alert_engine = AlertEngine(self.store, self.settings.notify_on_resolve)
        return self._alert_engine

    @property
    def dispatcher(self) -> NotificationDispatcher:
        """Dispatcher with the email, Slack and webhook channels registered."""
        if self._dispatcher is None:
            s = self.settings
            dispatcher = NotificationDispatcher(self.store, pool_size=s.dispatch_pool_size)
            dispatcher.register(
                EmailChannel(
                    s.smtp_host,
                    s.email_from,
                    smtp_port=s.smtp_port,
                    smtp_user=s.smtp_user,
                    smtp_password=s.smtp_password,
                    use_tls=s.smtp_use_tls,
                    timeout=s.webhook_timeout_seconds,
                )
            )
            dispatcher.register(SlackChannel(timeout=s.webhook_timeout_seconds))
            dispatcher.register(WebhookChannel(timeout=s.webhook_timeout_seconds))
            self._dispatcher = dispatcher
        return self._dispatcher

    @property
    def runner(self) -> CheckRunner:
        if self._runner is None:
            self._runner = CheckRunner(
                self.store, self.executor, self.evaluator, self.alert_engine, self.dispatcher
            )
        return self._runner

    @property
    def registry(self) -> InFlightRegistry:
        if self._registry is None:
            self._registry = InFlightRegistry()
        return self._registry

    @property
    def scheduler(self) -> SchedulerService:
        if self._scheduler is None:
            self._scheduler = create_scheduler(
                self.settings, self.store, self.runner, self.registry, self._backend
            )
        return self._scheduler

    # ── Lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        """Stop the scheduler and dispose of managed resources."""
        if self._scheduler is not None:
            self._scheduler.stop(cancel_running=True)
        if self._dispatcher is not None:
            self._dispatcher.close()
        if self._resolver is not None:
            self._resolver.dispose()
        if self._engine is not None:
            self._engine.dispose()
        logger.debug("container_closed")

    def __enter__(self) -> DbqaContainer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
