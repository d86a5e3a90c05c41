"""End-to-end passes from watch events through status and restarts."""

from __future__ import annotations

import copy
from unittest.mock import patch

from ledgerctl.controller.result import DispatchOutcome, ReconcileResult
from ledgerctl.controller.snapshot import save_spec_snapshot
from ledgerctl.models.intent import Intent
from ledgerctl.models.resources import (
    ActionSpec,
    ConfigMapObject,
    ManagedResource,
    PodInfo,
    ResourceSpec,
    SecretObject,
)
from ledgerctl.models.restart import RestartReason, RestartStatus
from ledgerctl.models.status import Status, StatusType

from .conftest import NS, Pipeline

KEY = (NS, "org1peer1")
READY = [PodInfo(name="p-0", phase="Running", ready=True)]


class TestIntentOrdering:
    async def test_intents_are_handled_oldest_first(self, peers: Pipeline) -> None:
        await peers.create("org1peer1")
        await peers.edit("org1peer1", config_override={"peer": {"id": "org1peer1"}})
        await peers.edit("org1peer1", extra={"replicas": 2})
        await peers.controller.on_secret_event(
            "ADDED", SecretObject(name="ecert-org1peer1-signcert", namespace=NS, data={"cert.pem": b"pem"})
        )

        assert peers.queue.pending(KEY) == 3
        assert peers.drain() == [KEY]

        peers.reconciler.default = ReconcileResult(requeue=True, requeue_after=30.0)
        outcomes = []
        with patch.object(peers.controller, "_requeue_later") as later:
            for _ in range(3):
                outcomes.append(await peers.controller.process(KEY))

        assert [intent for _, intent in peers.reconciler.calls] == [
            Intent.of("overrides_changed"),
            Intent.of("spec_changed"),
            Intent.of("ecert_created"),
        ]
        assert outcomes == [
            DispatchOutcome(requeue=True),
            DispatchOutcome(requeue=True),
            DispatchOutcome(requeue=True, requeue_after=30.0),
        ]
        later.assert_called_once_with(KEY, 30.0)

    async def test_duplicate_edits_collapse(self, peers: Pipeline) -> None:
        await peers.create("org1peer1")
        await peers.edit("org1peer1", extra={"replicas": 2})
        await peers.edit("org1peer1", extra={"replicas": 3})
        assert peers.queue.pending(KEY) == 1

    async def test_edits_while_down_are_caught_up(self, peers: Pipeline) -> None:
        created = await peers.store.create(
            ManagedResource(
                kind=peers.kind,
                namespace=NS,
                name="org1peer1",
                spec=ResourceSpec(fabric_version="2.4.9", mspid="org1msp"),
            )
        )
        await save_spec_snapshot(peers.store, created)
        edited = copy.deepcopy(created)
        edited.spec.fabric_version = "2.5.4"
        edited = await peers.store.update(edited)
        edited = await peers.store.patch_status(edited, Status(type=StatusType.DEPLOYED, version_reconciled="2.4.9"))

        await peers.controller.on_resource_event("ADDED", edited)

        intent = peers.queue.peek(KEY)
        assert intent.spec_changed
        assert intent.migrate_to_v25
        assert intent.fabric_version_changed


class TestStatus:
    async def test_orderer_waits_for_genesis_block(self, orderers: Pipeline) -> None:
        await orderers.create("orderernode1", node_number=1)
        orderers.store.set_pods(NS, "orderernode1", READY)
        key = (NS, "orderernode1")

        await orderers.controller.process(key)
        assert (await orderers.status("orderernode1")).type == StatusType.PRECREATED

        await orderers.store.put_secret(SecretObject(name="orderernode1-genesis", namespace=NS))
        await orderers.controller.process(key)
        status = await orderers.status("orderernode1")
        assert status.type == StatusType.DEPLOYED
        assert status.version_reconciled == "2.5.4"

    async def test_business_status_wins_over_readiness(self, peers: Pipeline) -> None:
        await peers.create("org1peer1")
        peers.store.set_pods(NS, "org1peer1", READY)
        peers.reconciler.results.append(
            ReconcileResult(
                status=Status(type=StatusType.WARNING, reason="certExpiring", message="tls cert expires soon"),
                force_persist=True,
            )
        )

        await peers.controller.process(KEY)
        assert (await peers.status("org1peer1")).type == StatusType.WARNING

        await peers.controller.process(KEY)
        assert (await peers.status("org1peer1")).type == StatusType.DEPLOYED


class TestStaggeredRestarts:
    async def _restart_pass(self, peers: Pipeline) -> DispatchOutcome | None:
        with patch.object(peers.controller, "_requeue_later"):
            return await peers.controller.process((NS, "peer-restart-config"))

    async def test_same_organization_restarts_one_at_a_time(self, peers: Pipeline) -> None:
        tls = RestartReason.TLS_UPDATE.value
        for name in ("org1peer1", "org1peer2"):
            peers.store.set_pods(NS, name, [PodInfo(name=f"{name}-a", phase="Running", ready=True)])
        peers.reconciler.default = ReconcileResult(restart_reasons=[tls])
        await peers.create("org1peer1")
        await peers.create("org1peer2")
        await peers.create("org2peer1", mspid="org2msp")
        for name in ("org1peer1", "org1peer2", "org2peer1"):
            await peers.controller.process((NS, name))

        assert [name for _, _, name in peers.store.restarts] == ["org1peer1", "org2peer1"]

        restart_key = (NS, "peer-restart-config")
        peers.controller.on_config_map_event(ConfigMapObject(name="peer-restart-config", namespace=NS))
        assert restart_key in peers.drain()

        # org1peer1 is still running its old pod
        assert await self._restart_pass(peers) == DispatchOutcome(requeue=True, requeue_after=10.0)
        assert [name for _, _, name in peers.store.restarts] == ["org1peer1", "org2peer1"]

        await peers.create("org1peer3")
        await peers.controller.process((NS, "org1peer3"))
        assert [name for _, _, name in peers.store.restarts] == ["org1peer1", "org2peer1"]
        assert (await peers.restarts.record(peers.kind, NS)).queues == {"org1msp": ["org1peer2", "org1peer3"]}

        peers.store.set_pods(NS, "org1peer1", [PodInfo(name="org1peer1-b", phase="Running", ready=True)])
        await self._restart_pass(peers)
        assert [name for _, _, name in peers.store.restarts] == ["org1peer1", "org2peer1", "org1peer2"]
        record = await peers.restarts.record(peers.kind, NS)
        assert record.log["org1peer1"][tls].status == RestartStatus.COMPLETED
        assert record.restarting["org1msp"].instance == "org1peer2"
        assert record.queues == {"org1msp": ["org1peer3"]}

        peers.advance(6)
        assert await self._restart_pass(peers) == DispatchOutcome(requeue=True, requeue_after=10.0)
        record = await peers.restarts.record(peers.kind, NS)
        assert record.log["org1peer2"][tls].status == RestartStatus.EXPIRED
        assert record.log["org2peer1"][tls].status == RestartStatus.EXPIRED
        assert record.restarting["org1msp"].instance == "org1peer3"

        peers.advance(6)
        assert await self._restart_pass(peers) == DispatchOutcome()
        record = await peers.restarts.record(peers.kind, NS)
        assert record.queues == {}
        assert record.restarting == {}

    async def test_restart_action_edit_restarts_workload(self, peers: Pipeline) -> None:
        await peers.create("org1peer1")
        await peers.controller.process(KEY)

        await peers.edit("org1peer1", action=ActionSpec(restart=True))
        await peers.controller.process(KEY)

        assert [name for _, _, name in peers.store.restarts] == ["org1peer1"]
        record = await peers.restarts.record(peers.kind, NS)
        assert record.log["org1peer1"][RestartReason.RESTART_ACTION.value].status == RestartStatus.ADMITTED
