"""
End-to-end test: two volume backends under one parent service.

  1. An LVM backend (TLS, storage network) and an NFS backend are declared
  2. Both acquire the finalizer, then record their input hash
  3. The NFS backend converges; the LVM backend waits for its network
  4. The storage network appears and the LVM backend converges
  5. The shared service password rotates; both backends roll their pods
  6. The NFS backend is deleted; the LVM backend is left untouched
"""

import json

import pytest

from volume_reconciler.errors import NotFoundError
from volume_reconciler.models.conditions import ConditionStatus
from volume_reconciler.workload.builder import CONFIG_HASH_ENV, NETWORKS_ANNOTATION

LVM = "cinder-volume-lvm"
NFS = "cinder-volume-nfs"

NFS_CONFIG = (
    "[nfs]\n"
    "volume_backend_name=nfs\n"
    "volume_driver=cinder.volume.drivers.nfs.NfsDriver\n"
    "nfs_shares_config=/etc/cinder/nfs_shares\n"
)


class TestTwoBackendScenarioE2E:
    """Full lifecycle of two backends sharing inputs."""

    @pytest.fixture(autouse=True)
    def _setup(self, env_factory):
        self.env = env_factory()
        self.env.seed_inputs(custom_secrets={
            "nfs-shares": {"nfs_shares": b"nfs_shares_config=10.0.0.5:/export\n"},
        })
        tls = self.env.add_ca_bundle()
        self.env.add(self.env.make_instance(
            name=LVM,
            spec=self.env.make_spec(tls=tls, network_attachments=["storage"]),
        ))
        self.env.add(self.env.make_instance(
            name=NFS,
            spec=self.env.make_spec(
                custom_service_config=NFS_CONFIG,
                custom_service_config_secrets=["nfs-shares"],
            ),
        ))

    def _ready(self, name):
        return self.env.condition("Ready", name).status == ConditionStatus.TRUE

    def test_full_scenario(self):
        env = self.env

        # --- Finalizer, then input hash ---
        for name in (LVM, NFS):
            assert env.reconcile(name).requeue is True
            assert env.get(name).finalizers == [env.config.finalizer]
        for name in (LVM, NFS):
            assert env.reconcile(name).requeue is True
            assert "input" in env.get(name).status.hash

        # --- NFS converges, LVM waits for the storage network ---
        assert env.reconcile(NFS).requeue is False
        assert self._ready(NFS)
        nfs_workload = env.applier.specs[NFS]
        assert nfs_workload.host_paths == []
        assert nfs_workload.labels["backend"] == "nfs"
        nfs_config = env.config_writer.configs[("openstack", f"{NFS}-config-data")]
        assert "enabled_backends=nfs" in nfs_config["02-service-custom.conf"]
        assert "10.0.0.5:/export" in nfs_config["03-secrets-custom.conf"]

        result = env.reconcile(LVM)
        assert result.requeue_after == env.config.normal_requeue_seconds
        assert not self._ready(LVM)
        assert LVM not in env.applier.specs

        # --- Storage network appears ---
        env.define_networks(["storage"], {"storage": ["172.18.0.31"]})
        assert env.reconcile(LVM).requeue is False
        assert self._ready(LVM)
        lvm_workload = env.applier.specs[LVM]
        assert lvm_workload.host_paths
        networks = json.loads(lvm_workload.pod_annotations[NETWORKS_ANNOTATION])
        assert networks[0]["name"] == "storage"
        assert env.get(LVM).status.network_attachments == {"storage": ["172.18.0.31"]}

        # --- Password rotation rolls both backends ---
        hashes = {name: env.applier.specs[name].env[CONFIG_HASH_ENV] for name in (LVM, NFS)}
        env.secrets.put("osp-secret", "openstack", {"CinderPassword": b"rotated"})
        for name in (LVM, NFS):
            assert env.reconcile(name).requeue is True
            assert env.converge(name) == 1
            assert env.applier.specs[name].env[CONFIG_HASH_ENV] != hashes[name]
            assert self._ready(name)

        # --- Delete NFS; LVM is unaffected ---
        lvm_before = env.get(LVM)
        patches = env.store.status_patches
        env.store.mark_for_deletion(env.get(NFS).key)
        assert env.reconcile(NFS).requeue is False
        with pytest.raises(NotFoundError):
            env.get(NFS)

        assert env.reconcile(LVM).requeue is False
        # One status write for the NFS deletion, none for LVM
        assert env.store.status_patches == patches + 1
        assert env.get(LVM).status == lvm_before.status
