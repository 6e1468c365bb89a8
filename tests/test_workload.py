"""Tests for the Workload Builder and service config materialization."""

import json

import pytest

from volume_reconciler.collaborators.memory import (
    InMemoryConfigWriter,
    InMemorySecretProvider,
)
from volume_reconciler.config.materializer import (
    CUSTOM_SERVICE_CONFIG_FILE_NAME,
    CUSTOM_SERVICE_CONFIG_SECRETS_FILE_NAME,
    DEFAULTS_CONFIG_FILE_NAME,
    generate_service_configs,
)
from volume_reconciler.errors import MalformedInputError, NotFoundError
from volume_reconciler.models.reconciler import ReconcilerConfig
from volume_reconciler.workload.builder import (
    CONFIG_HASH_ENV,
    LVM_HOST_PATHS,
    NETWORKS_ANNOTATION,
    build_workload,
    create_networks_annotation,
    instance_labels,
    service_labels,
)


class TestLabels:
    def test_service_labels(self, env_factory):
        labels = service_labels(env_factory.make_instance(), ReconcilerConfig())
        assert labels == {
            "service": "cinder",
            "component": "cinder-volume",
            "backend": "lvm",
        }

    def test_instance_labels_include_extra(self, env_factory):
        labels = instance_labels(
            env_factory.make_instance(), ReconcilerConfig(), {"backend": "lvm"}
        )
        assert labels["cinder.openstack.org/name"] == "cinder-volume-lvm"
        assert labels["cinder.openstack.org/namespace"] == "openstack"
        assert labels["backend"] == "lvm"


class TestNetworksAnnotation:
    def test_no_attachments(self):
        annotation = create_networks_annotation("openstack", [])
        assert json.loads(annotation[NETWORKS_ANNOTATION]) == []

    def test_one_entry_per_attachment(self):
        annotation = create_networks_annotation("openstack", ["storage", "internalapi"])
        entries = json.loads(annotation[NETWORKS_ANNOTATION])
        assert entries == [
            {"name": "storage", "namespace": "openstack", "interface": "storage"},
            {"name": "internalapi", "namespace": "openstack", "interface": "internalapi"},
        ]

    def test_blank_name_rejected(self):
        with pytest.raises(MalformedInputError):
            create_networks_annotation("openstack", ["storage", "  "])


class TestBuildWorkload:
    def test_lvm_workload_mounts_host_paths(self, env_factory):
        instance = env_factory.make_instance()
        spec = build_workload(instance, "abc", {"backend": "lvm"}, {}, True)
        assert spec.name == instance.name
        assert spec.replicas == 1
        assert spec.env == {CONFIG_HASH_ENV: "abc"}
        assert spec.config_secret == "cinder-volume-lvm-config-data"
        assert spec.privileged is True
        assert spec.host_paths == LVM_HOST_PATHS

    def test_network_annotation_lands_on_pods(self, env_factory):
        annotations = create_networks_annotation("openstack", ["storage"])
        spec = build_workload(env_factory.make_instance(), "abc", {}, annotations, True)
        assert spec.pod_annotations == annotations
        assert "annotations" not in spec.model_dump()

    def test_non_lvm_workload_has_no_host_paths(self, env_factory):
        spec = build_workload(env_factory.make_instance(), "abc", {}, {}, False)
        assert spec.host_paths == []

    def test_node_selector_passed_through(self, env_factory):
        instance = env_factory.make_instance(
            spec=env_factory.make_spec(node_selector={"storage": "true"})
        )
        spec = build_workload(instance, "abc", {}, {}, False)
        assert spec.node_selector == {"storage": "true"}


class TestGenerateServiceConfigs:
    def setup_method(self):
        self.secrets = InMemorySecretProvider()
        self.writer = InMemoryConfigWriter()
        self.config = ReconcilerConfig()
        self.secrets.put(
            "cinder-config-data",
            "openstack",
            {DEFAULTS_CONFIG_FILE_NAME: b"[DEFAULT]\ndebug=true\n"},
        )

    def test_writes_layered_config_and_records_hash(self, env_factory):
        instance = env_factory.make_instance()
        config_vars = {}
        uses_lvm = generate_service_configs(
            instance, self.secrets, self.writer, self.config, {"a": "b"}, config_vars
        )
        assert uses_lvm is True
        data = self.writer.configs[("openstack", "cinder-volume-lvm-config-data")]
        assert data[DEFAULTS_CONFIG_FILE_NAME] == "[DEFAULT]\ndebug=true\n"
        assert data[CUSTOM_SERVICE_CONFIG_FILE_NAME].startswith(
            "[DEFAULT]\nenabled_backends=lvm\n"
        )
        assert data[CUSTOM_SERVICE_CONFIG_SECRETS_FILE_NAME] == ""
        assert "cinder-volume-lvm-config-data" in config_vars
        assert self.writer.labels[("openstack", "cinder-volume-lvm-config-data")] == {
            "a": "b"
        }

    def test_custom_secrets_concatenated_in_order(self, env_factory):
        self.secrets.put("extra-1", "openstack", {"b.conf": b"b=1", "a.conf": b"a=1"})
        self.secrets.put("extra-2", "openstack", {"c.conf": b"c=1"})
        instance = env_factory.make_instance(
            spec=env_factory.make_spec(custom_service_config_secrets=["extra-1", "extra-2"])
        )
        generate_service_configs(
            instance, self.secrets, self.writer, self.config, {}, {}
        )
        data = self.writer.configs[("openstack", "cinder-volume-lvm-config-data")]
        assert data[CUSTOM_SERVICE_CONFIG_SECRETS_FILE_NAME] == "a=1\nb=1\nc=1\n"

    def test_missing_parent_config_raises_not_found(self, env_factory):
        self.secrets.delete("cinder-config-data", "openstack")
        with pytest.raises(NotFoundError):
            generate_service_configs(
                env_factory.make_instance(),
                self.secrets,
                self.writer,
                self.config,
                {},
                {},
            )
        assert self.writer.writes == 0

    def test_non_utf8_custom_secret_is_malformed(self, env_factory):
        self.secrets.put("extra-1", "openstack", {"x.conf": b"\xff\xfe"})
        instance = env_factory.make_instance(
            spec=env_factory.make_spec(custom_service_config_secrets=["extra-1"])
        )
        with pytest.raises(MalformedInputError, match="secret extra-1 key x.conf"):
            generate_service_configs(
                instance, self.secrets, self.writer, self.config, {}, {}
            )
        assert self.writer.writes == 0

    def test_non_utf8_parent_config_is_malformed(self, env_factory):
        self.secrets.put(
            "cinder-config-data", "openstack", {DEFAULTS_CONFIG_FILE_NAME: b"\xc3\x28"}
        )
        with pytest.raises(MalformedInputError, match="cinder-config-data"):
            generate_service_configs(
                env_factory.make_instance(),
                self.secrets,
                self.writer,
                self.config,
                {},
                {},
            )

    def test_unchanged_config_is_not_rewritten(self, env_factory):
        instance = env_factory.make_instance()
        first, second = {}, {}
        generate_service_configs(instance, self.secrets, self.writer, self.config, {}, first)
        generate_service_configs(instance, self.secrets, self.writer, self.config, {}, second)
        assert self.writer.writes == 1
        assert first == second
