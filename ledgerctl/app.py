"""Application bootstrap for ledgerctl.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → store → shared services
              → per-kind controllers → watches → REST

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Any

from ledgerctl.config import load_config, parse_duration
from ledgerctl.models.config import LedgerctlConfig
from ledgerctl.models.resources import ManagedResource, ResourceKind
from ledgerctl.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from ledgerctl.controller.runner import KindController

_SHUTDOWN_GRACE_SECONDS = 15

RECONCILER_ENTRY_POINT_GROUP = "ledgerctl.reconcilers"


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


def load_reconcilers() -> dict[str, Any]:
    """Business reconcilers registered under the ``ledgerctl.reconcilers`` entry-point group.

    Entry point names are component kinds (``peer``, ``orderer``...); each
    target is a zero-argument factory.
    """
    found: dict[str, Any] = {}
    for ep in entry_points(group=RECONCILER_ENTRY_POINT_GROUP):
        found[ep.name.lower()] = ep.load()()
    return found


class LedgerctlApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self, config: LedgerctlConfig | None = None) -> None:
        self.config: LedgerctlConfig | None = config

        self._k8s_client: object | None = None
        self._store: Any = None
        self._queue: Any = None
        self._restart_service: Any = None
        self._controllers: dict[ResourceKind, KindController] = {}
        self._watchers: list[Any] = []
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, json_output=self.config.log.json)
        self._log = get_logger("app")
        self._log.info("ledgerctl starting", version=_ledgerctl_version(), namespace=self.config.namespace)

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Resource store -------------------------------------------
        await self._start_store()

        # --- 5. Shared services and per-kind controllers ------------------
        await self._start_controllers()

        # --- 6. Watches --------------------------------------------------
        await self._start_watches()

        # --- 7. REST API -------------------------------------------------
        if self.config.api.enabled:
            await self._start_rest()

        self._running = True
        self._log.info("ledgerctl started", kinds=[k.value for k in self._controllers])

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._k8s_client = True
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_store(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from ledgerctl.store.kube import KubernetesStore

            self._store = KubernetesStore(api_group=self.config.api_group, api_version=self.config.api_version)
            self._log.info("resource store started", group=self.config.api_group, version=self.config.api_version)
        except Exception as exc:
            raise _ComponentError("store", exc) from exc

    async def _start_controllers(self) -> None:
        """Build the shared queue and restart coordinator, then one controller per enabled kind."""
        assert self._log is not None
        assert self.config is not None
        try:
            from ledgerctl.controller import (
                ChangeClassifier,
                IntentQueue,
                KindController,
                PassthroughReconciler,
                ReconcileDispatcher,
                StatusArbitrator,
            )
            from ledgerctl.crypto import CredentialBackupRotator
            from ledgerctl.restart import StaggeredRestartService

            cfg = self.config
            self._queue = IntentQueue()
            self._restart_service = StaggeredRestartService(
                self._store,
                cooldown=parse_duration(cfg.restart.cooldown),
                timeout=parse_duration(cfg.restart.timeout),
                log_cap=cfg.restart.log_cap,
                update_retries=cfg.restart.update_retries,
            )
            rotator = CredentialBackupRotator(self._store, iterations=cfg.backup.iterations)
            check_interval = parse_duration(cfg.restart.check_interval).total_seconds()
            reconcilers = load_reconcilers()

            for kind_name in cfg.kinds:
                kind = ResourceKind(kind_name)
                reconciler = reconcilers.get(kind.short)
                if reconciler is None:
                    self._log.warning("no business reconciler registered", kind=kind.value)
                    reconciler = PassthroughReconciler()
                arbitrator = StatusArbitrator(self._store, patch_retries=cfg.status.patch_retries)
                classifier = ChangeClassifier(kind, self._store, self._queue, arbitrator)
                dispatcher = ReconcileDispatcher(
                    kind,
                    self._store,
                    self._queue,
                    arbitrator,
                    reconciler,
                    self._restart_service,
                    rotator=rotator,
                    config=cfg,
                    restart_check_interval=check_interval,
                )
                controller = KindController(classifier, dispatcher)
                controller.start()
                self._controllers[kind] = controller
            self._log.info("controllers started", kinds=[k.value for k in self._controllers])
        except Exception as exc:
            raise _ComponentError("controllers", exc) from exc

    async def _start_watches(self) -> None:
        """Open watch streams for managed resources, secrets, config maps and deployments."""
        assert self._log is not None
        assert self.config is not None
        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            from ledgerctl.store.kube import KubernetesStore
            from ledgerctl.store.watch import ResourceWatcher

            custom = k8s_client.CustomObjectsApi()
            core = k8s_client.CoreV1Api()
            apps = k8s_client.AppsV1Api()
            ns = self.config.namespace
            controllers = self._controllers

            for kind, controller in controllers.items():
                self._watchers.append(
                    ResourceWatcher(
                        f"{kind.short}s",
                        custom.list_namespaced_custom_object if ns else custom.list_cluster_custom_object,
                        _resource_handler(kind, controller),
                        group=self.config.api_group,
                        version=self.config.api_version,
                        plural=KubernetesStore.plural(kind),
                        **({"namespace": ns} if ns else {}),
                    )
                )

            async def on_secret(event_type: str, obj: Any) -> None:
                secret = KubernetesStore.secret_from_api(obj)
                for controller in controllers.values():
                    await controller.on_secret_event(event_type, secret)

            async def on_config_map(event_type: str, obj: Any) -> None:
                if event_type == "DELETED":
                    return
                config_map = KubernetesStore.config_map_from_api(obj)
                for controller in controllers.values():
                    controller.on_config_map_event(config_map)

            async def on_deployment(event_type: str, obj: Any) -> None:
                for ref in obj.metadata.owner_references or []:
                    for kind, controller in controllers.items():
                        if ref.kind == kind.api_kind:
                            controller.on_workload_event(obj.metadata.namespace, ref.name)

            scope = {"namespace": ns} if ns else {}
            self._watchers.append(
                ResourceWatcher(
                    "secrets",
                    core.list_namespaced_secret if ns else core.list_secret_for_all_namespaces,
                    on_secret,
                    **scope,
                )
            )
            self._watchers.append(
                ResourceWatcher(
                    "configmaps",
                    core.list_namespaced_config_map if ns else core.list_config_map_for_all_namespaces,
                    on_config_map,
                    **scope,
                )
            )
            self._watchers.append(
                ResourceWatcher(
                    "deployments",
                    apps.list_namespaced_deployment if ns else apps.list_deployment_for_all_namespaces,
                    on_deployment,
                    **scope,
                )
            )

            for watcher in self._watchers:
                self._background_tasks.append(watcher.start())
            self._log.info("watches started", count=len(self._watchers))
        except Exception as exc:
            raise _ComponentError("watches", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn  # type: ignore[import-untyped]

            from ledgerctl.api import create_app

            fastapi_app = create_app(
                queue=self._queue,
                restart_service=self._restart_service,
                config=self.config,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("ledgerctl shutting down")

        self._running = False

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._watchers.clear()

        for kind in reversed(list(self._controllers)):
            await self._stop_component(f"controller.{kind.short}", self._controllers[kind])
        self._controllers.clear()
        await self._stop_k8s_client()

        log.info("ledgerctl stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._k8s_client is None:
            return
        log = self._log or get_logger("app")
        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            api_client = k8s_client.ApiClient()
            await api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._k8s_client = None


def _resource_handler(kind: ResourceKind, controller: KindController) -> Any:
    async def handle(event_type: str, obj: Any) -> None:
        await controller.on_resource_event(event_type, ManagedResource.from_dict(kind, obj))

    return handle


def _ledgerctl_version() -> str:
    from ledgerctl import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: LedgerctlConfig | None = None) -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = LedgerctlApp(config)
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app.running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
