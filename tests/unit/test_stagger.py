"""Tests for staggered restart admission."""

from __future__ import annotations

import itertools
import json
from datetime import timedelta

import pytest

from ledgerctl.errors import ConflictError, LedgerctlError, NotFoundError
from ledgerctl.models.resources import ConfigMapObject, PodInfo, ResourceKind
from ledgerctl.models.restart import AdmissionDecision, RestartReason, RestartRecord, RestartStatus
from ledgerctl.restart import RECORD_KEY, RestartConfigStore, StaggeredRestartService
from ledgerctl.store.memory import MemoryStore

from .conftest import FIXED_NOW

NS = "fabric"
PEER = ResourceKind.PEER
TLS = RestartReason.TLS_UPDATE.value
ECERT = RestartReason.ECERT_UPDATE.value


def _ready(name: str) -> PodInfo:
    return PodInfo(name=name, phase="Running", ready=True)


@pytest.fixture
def service(store: MemoryStore) -> StaggeredRestartService:
    return StaggeredRestartService(
        store, cooldown=timedelta(minutes=10), timeout=timedelta(minutes=5), clock=lambda: FIXED_NOW
    )


async def _record(service: StaggeredRestartService) -> RestartRecord:
    return await service.record(PEER, NS)


class TestRequestRestart:
    async def test_first_request_is_admitted(self, store: MemoryStore, service: StaggeredRestartService) -> None:
        decision = await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)

        assert decision == AdmissionDecision.ADMITTED
        assert store.restarts == [(PEER, NS, "org1peer1")]
        record = await _record(service)
        entry = record.log["org1peer1"][TLS]
        assert entry.status == RestartStatus.ADMITTED
        assert entry.timestamp == FIXED_NOW.isoformat()
        assert record.queues == {}
        flight = record.restarting["org1msp"]
        assert flight.instance == "org1peer1"
        assert flight.reasons == [TLS]
        assert flight.check_until == (FIXED_NOW + timedelta(minutes=5)).isoformat()

    async def test_admission_remembers_the_ready_pod(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        store.set_pods(NS, "org1peer1", [PodInfo(name="org1peer1-old", phase="Pending"), _ready("org1peer1-abc")])

        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)

        assert (await _record(service)).restarting["org1msp"].pod_name == "org1peer1-abc"

    async def test_repeat_within_cooldown_is_denied(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        later = FIXED_NOW + timedelta(minutes=3)

        decision = await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS, now=later)

        assert decision == AdmissionDecision.DENIED
        assert len(store.restarts) == 1
        entry = (await _record(service)).log["org1peer1"][TLS]
        assert entry.status == RestartStatus.PENDING
        assert entry.timestamp == FIXED_NOW.isoformat()

    async def test_repeat_after_cooldown_is_admitted(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        await service.reconcile(PEER, NS, now=FIXED_NOW + timedelta(minutes=6))
        later = FIXED_NOW + timedelta(minutes=11)

        decision = await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS, now=later)

        assert decision == AdmissionDecision.ADMITTED
        assert len(store.restarts) == 2

    async def test_other_reason_is_not_held_by_cooldown(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        store.set_pods(NS, "org1peer1", [_ready("org1peer1-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)

        decision = await service.request_restart(PEER, NS, "org1msp", "org1peer1", ECERT)

        assert decision == AdmissionDecision.QUEUED
        store.set_pods(NS, "org1peer1", [_ready("org1peer1-b")])
        await service.reconcile(PEER, NS)
        assert store.restarts == [(PEER, NS, "org1peer1"), (PEER, NS, "org1peer1")]
        record = await _record(service)
        assert record.log["org1peer1"][TLS].status == RestartStatus.COMPLETED
        assert record.log["org1peer1"][ECERT].status == RestartStatus.ADMITTED

    async def test_second_instance_waits_behind_in_flight_restart(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)

        decision = await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)

        assert decision == AdmissionDecision.QUEUED
        record = await _record(service)
        assert record.queues["org1msp"] == ["org1peer2"]
        assert record.log["org1peer2"][TLS].status == RestartStatus.PENDING
        assert store.restarts == [(PEER, NS, "org1peer1")]

    async def test_unfinished_restart_keeps_the_group_busy(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        store.set_pods(NS, "org1peer1", [_ready("org1peer1-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        # the record write wakes the restart config reconcile before the pod is replaced
        assert await service.reconcile(PEER, NS) is True

        decision = await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)

        assert decision == AdmissionDecision.QUEUED
        assert store.restarts == [(PEER, NS, "org1peer1")]

    async def test_queued_requests_are_combined(self, store: MemoryStore, service: StaggeredRestartService) -> None:
        store.set_pods(NS, "org1peer1", [_ready("org1peer1-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)
        await service.request_restart(PEER, NS, "org1msp", "org1peer2", ECERT)
        assert (await _record(service)).queues["org1msp"] == ["org1peer2"]

        store.set_pods(NS, "org1peer1", [_ready("org1peer1-b")])
        await service.reconcile(PEER, NS)

        assert store.restarts == [(PEER, NS, "org1peer1"), (PEER, NS, "org1peer2")]
        assert (await _record(service)).restarting["org1msp"].reasons == [TLS, ECERT]

    async def test_groups_are_independent(self, store: MemoryStore, service: StaggeredRestartService) -> None:
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        decision = await service.request_restart(PEER, NS, "org2msp", "org2peer1", TLS)
        assert decision == AdmissionDecision.ADMITTED
        assert len(store.restarts) == 2

    async def test_missing_workload_is_recorded_as_deleted(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        store.remove_workload(NS, "org1peer1")

        decision = await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)

        assert decision == AdmissionDecision.DENIED
        assert store.restarts == []
        record = await _record(service)
        assert record.restarting == {}
        assert record.log["org1peer1"][TLS].status == RestartStatus.DELETED

    async def test_console_restarts_immediately(self, store: MemoryStore, service: StaggeredRestartService) -> None:
        for _ in range(2):
            decision = await service.request_restart(
                ResourceKind.CONSOLE, NS, "", "console", RestartReason.CONFIG_OVERRIDE.value
            )
            assert decision == AdmissionDecision.ADMITTED
        assert len(store.restarts) == 2
        record = await service.record(ResourceKind.CONSOLE, NS)
        assert record.queues == {}
        assert record.restarting == {}
        assert record.log["console"]["configOverride"].status == RestartStatus.RESTARTED


class TestReconcile:
    async def test_next_instance_starts_when_pod_is_replaced(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        store.set_pods(NS, "org1peer1", [_ready("org1peer1-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)

        store.set_pods(NS, "org1peer1", [_ready("org1peer1-b")])
        assert await service.reconcile(PEER, NS) is True

        assert store.restarts[-1] == (PEER, NS, "org1peer2")
        record = await _record(service)
        assert record.queues == {}
        assert record.restarting["org1msp"].instance == "org1peer2"
        assert record.log["org1peer1"][TLS].status == RestartStatus.COMPLETED
        assert record.log["org1peer2"][TLS].status == RestartStatus.ADMITTED

        store.set_pods(NS, "org1peer2", [_ready("org1peer2-x")])
        assert await service.reconcile(PEER, NS) is False
        record = await _record(service)
        assert record.restarting == {}
        assert record.log["org1peer2"][TLS].status == RestartStatus.COMPLETED
        assert len(store.restarts) == 2

    @pytest.mark.parametrize(
        "pods",
        [
            [_ready("org1peer1-a")],
            [_ready("org1peer1-a"), _ready("org1peer1-b")],
            [PodInfo(name="org1peer1-b", phase="Running", ready=False)],
            [],
        ],
    )
    async def test_restart_is_in_flight_until_one_new_pod_is_ready(
        self, store: MemoryStore, service: StaggeredRestartService, pods: list[PodInfo]
    ) -> None:
        store.set_pods(NS, "org1peer1", [_ready("org1peer1-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)
        store.set_pods(NS, "org1peer1", pods)

        assert await service.reconcile(PEER, NS, now=FIXED_NOW + timedelta(minutes=4)) is True

        record = await _record(service)
        assert record.restarting["org1msp"].instance == "org1peer1"
        assert record.queues["org1msp"] == ["org1peer2"]
        assert len(store.restarts) == 1

    async def test_restart_expires_after_timeout(self, store: MemoryStore, service: StaggeredRestartService) -> None:
        store.set_pods(NS, "org1peer1", [_ready("org1peer1-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)

        await service.reconcile(PEER, NS, now=FIXED_NOW + timedelta(minutes=6))

        record = await _record(service)
        assert record.log["org1peer1"][TLS].status == RestartStatus.EXPIRED
        assert record.restarting["org1msp"].instance == "org1peer2"
        assert store.restarts[-1] == (PEER, NS, "org1peer2")

    async def test_deleted_workload_is_skipped(self, store: MemoryStore, service: StaggeredRestartService) -> None:
        store.set_pods(NS, "org1peer1", [_ready("org1peer1-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)
        store.remove_workload(NS, "org1peer2")

        store.set_pods(NS, "org1peer1", [_ready("org1peer1-b")])
        await service.reconcile(PEER, NS)

        record = await _record(service)
        assert record.restarting == {}
        assert record.log["org1peer2"][TLS].status == RestartStatus.DELETED
        assert store.restarts == [(PEER, NS, "org1peer1")]
        assert await service.reconcile(PEER, NS) is False

    async def test_reason_in_cooldown_stays_pending_when_queue_advances(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        store.set_pods(NS, "org1peer2", [_ready("org1peer2-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)
        store.set_pods(NS, "org1peer2", [_ready("org1peer2-b")])
        await service.reconcile(PEER, NS, now=FIXED_NOW + timedelta(minutes=1))

        store.set_pods(NS, "org1peer1", [_ready("org1peer1-a")])
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS, now=FIXED_NOW + timedelta(minutes=1))
        two_minutes = FIXED_NOW + timedelta(minutes=2)
        denied = await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS, now=two_minutes)
        queued = await service.request_restart(PEER, NS, "org1msp", "org1peer2", ECERT, now=two_minutes)
        assert (denied, queued) == (AdmissionDecision.DENIED, AdmissionDecision.QUEUED)

        store.set_pods(NS, "org1peer1", [_ready("org1peer1-b")])
        await service.reconcile(PEER, NS, now=FIXED_NOW + timedelta(minutes=3))

        record = await _record(service)
        assert record.restarting["org1msp"].instance == "org1peer2"
        assert record.restarting["org1msp"].reasons == [ECERT]
        assert record.log["org1peer2"][ECERT].status == RestartStatus.ADMITTED
        assert record.log["org1peer2"][TLS].status == RestartStatus.PENDING
        assert record.log["org1peer2"][TLS].timestamp == FIXED_NOW.isoformat()

    async def test_unchanged_pass_does_not_rewrite_record(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        before = (await store.get_config_map(NS, "peer-restart-config")).resource_version

        await service.reconcile(PEER, NS)

        assert (await store.get_config_map(NS, "peer-restart-config")).resource_version == before

    async def test_reconcile_on_empty_record(self, service: StaggeredRestartService) -> None:
        assert await service.reconcile(PEER, NS) is False


class TestPending:
    async def test_retry_pending_admits_after_cooldown(
        self, store: MemoryStore, service: StaggeredRestartService
    ) -> None:
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS, now=FIXED_NOW + timedelta(minutes=1))
        assert await service.pending_requests(PEER, NS, "org1peer1") == [TLS]

        later = FIXED_NOW + timedelta(minutes=15)
        await service.reconcile(PEER, NS, now=later)
        decision = await service.retry_pending(PEER, NS, "org1msp", "org1peer1", now=later)

        assert decision == AdmissionDecision.ADMITTED
        assert await service.pending_requests(PEER, NS, "org1peer1") == []
        assert len(store.restarts) == 2

    async def test_retry_with_nothing_pending(self, service: StaggeredRestartService) -> None:
        assert await service.retry_pending(PEER, NS, "org1msp", "org1peer1") is None


class TestConfigStore:
    async def test_record_is_persisted_as_json(self, store: MemoryStore, service: StaggeredRestartService) -> None:
        await service.request_restart(PEER, NS, "org1msp", "org1peer1", TLS)
        await service.request_restart(PEER, NS, "org1msp", "org1peer2", TLS)
        cm = await store.get_config_map(NS, "peer-restart-config")
        payload = json.loads(cm.binary_data[RECORD_KEY])
        assert payload["queues"] == {"org1msp": ["org1peer2"]}
        assert payload["restarting"]["org1msp"]["instance"] == "org1peer1"
        assert payload["restarting"]["org1msp"]["checkUntil"] == (FIXED_NOW + timedelta(minutes=5)).isoformat()
        assert payload["log"]["org1peer1"][TLS]["status"] == "admitted"

        assert RestartRecord.from_dict(payload).to_dict() == payload

    async def test_modify_retries_on_conflict(self, store: MemoryStore) -> None:
        records = RestartConfigStore(store, update_retries=3)
        await store.put_config_map(ConfigMapObject(name="peer-restart-config", namespace=NS))
        calls = 0

        def mutate(record: RestartRecord) -> None:
            nonlocal calls
            calls += 1
            record.add_to_queue("g", "i")
            if calls == 1:
                # a concurrent writer lands between our read and our write
                store._config_maps[(NS, "peer-restart-config")] = ConfigMapObject(
                    name="peer-restart-config", namespace=NS, resource_version="999"
                )

        await records.modify(PEER, NS, mutate)

        assert calls == 2
        record, _ = await records.load(PEER, NS)
        assert record.queues == {"g": ["i"]}

    async def test_modify_gives_up_after_retries(self, store: MemoryStore) -> None:
        records = RestartConfigStore(store, update_retries=2)
        await store.put_config_map(ConfigMapObject(name="peer-restart-config", namespace=NS))
        writes = itertools.count(100)

        def mutate(record: RestartRecord) -> None:
            store._config_maps[(NS, "peer-restart-config")] = ConfigMapObject(
                name="peer-restart-config", namespace=NS, resource_version=str(next(writes))
            )
            record.add_to_queue("g", "i")

        with pytest.raises(ConflictError):
            await records.modify(PEER, NS, mutate)

    async def test_unchanged_record_is_not_written(self, store: MemoryStore) -> None:
        records = RestartConfigStore(store)

        assert await records.modify(PEER, NS, lambda record: record.head("g")) is None

        with pytest.raises(NotFoundError):
            await store.get_config_map(NS, "peer-restart-config")

    async def test_unreadable_record_raises(self, store: MemoryStore) -> None:
        await store.put_config_map(
            ConfigMapObject(name="peer-restart-config", namespace=NS, binary_data={RECORD_KEY: b"{not json"})
        )
        with pytest.raises(LedgerctlError):
            await RestartConfigStore(store).load(PEER, NS)
