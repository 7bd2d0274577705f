"""Shared test fixtures for talm tests."""
import json
import shutil
import subprocess
from pathlib import Path

import pytest

from talm.core.config import set_config

FIXTURES = Path(__file__).parent / "fixtures"

BASE_CONFIG = """\
version: v1alpha1
debug: false
persist: true
machine:
  type: controlplane
  token: abc123.0123456789abcdef
  install:
    disk: /dev/sda
    image: ghcr.io/siderolabs/installer:v1.7.0
cluster:
  clusterName: demo
  network:
    dnsDomain: cluster.local
    podSubnets:
    - 10.244.0.0/16
    serviceSubnets:
    - 10.96.0.0/12
    cni:
      name: flannel
"""


def resource(resource_id, spec, namespace="network"):
    return {"metadata": {"namespace": namespace, "id": resource_id, "version": 1}, "spec": spec}


def node_resources():
    """Resources of a single-NIC control plane node with a floating IP."""
    return {
        "hostname": [resource("hostname", {"hostname": "talos-cp-1", "domainname": ""})],
        "machinetype": [resource("machine-type", "controlplane", namespace="config")],
        "resolvers": [resource("resolvers", {"dnsServers": ["1.1.1.1", "8.8.8.8"]})],
        "nodeaddress": [resource("default", {"addresses": ["192.168.100.11/24"]})],
        "routes": [
            resource("inet4/192.168.100.0/24", {
                "family": "inet4", "dst": "192.168.100.0/24", "gateway": "",
                "outLinkName": "eth0",
            }),
            resource("inet4/192.168.100.1//1024", {
                "family": "inet4", "dst": "", "gateway": "192.168.100.1",
                "outLinkName": "eth0",
            }),
        ],
        "addresses": [
            resource("lo/127.0.0.1/8", {
                "address": "127.0.0.1/8", "linkName": "lo", "family": "inet4", "scope": "host",
            }),
            resource("eth0/192.168.100.11/24", {
                "address": "192.168.100.11/24", "linkName": "eth0", "family": "inet4", "scope": "global",
            }),
            resource("eth0/192.168.100.10/24", {
                "address": "192.168.100.10/24", "linkName": "eth0", "family": "inet4", "scope": "global",
            }),
            resource("eth0/fe80::1/64", {
                "address": "fe80::1/64", "linkName": "eth0", "family": "inet6", "scope": "link",
            }),
        ],
        "links": [
            resource("lo", {"hardwareAddr": "00:00:00:00:00:00", "busPath": "", "driver": ""}),
            resource("eth0", {
                "hardwareAddr": "aa:bb:cc:dd:ee:ff", "busPath": "0000:00:03.0",
                "driver": "virtio_net", "vendor": "Red Hat, Inc.", "product": "Virtio network device",
            }),
        ],
        "disks": [
            resource("sda", {
                "dev_path": "/dev/sda", "size": 107374182400, "model": "QEMU HARDDISK",
                "serial": "QM00001", "wwid": "",
            }, namespace="runtime"),
            resource("sdb", {
                "dev_path": "/dev/sdb", "size": 1073741824, "model": "QEMU HARDDISK",
                "serial": "QM00002", "wwid": "",
            }, namespace="runtime"),
        ],
        "systemdisk": [resource("system-disk", {"diskID": "sda", "devPath": "/dev/sda"}, namespace="runtime")],
    }


class FakeTalosctl:
    """subprocess.run stand-in answering talosctl commands from canned resources."""

    def __init__(self, resources=None, gen_output=BASE_CONFIG, reachable=True):
        self.resources = resources if resources is not None else node_resources()
        self.gen_output = gen_output
        self.reachable = reachable
        self.calls = []

    def __call__(self, cmd, capture_output=True, text=True, timeout=None):
        self.calls.append(list(cmd))
        args = cmd[1:]

        if args[0] == "version":
            if not self.reachable:
                return self._done(cmd, 1, stderr="error: connection refused")
            return self._done(cmd, 0, stdout="Client v1.7.0\nServer v1.7.0\n")

        if args[0] == "gen":
            return self._done(cmd, 0, stdout=self.gen_output)

        if args[0] == "get":
            kind = args[1]
            resource_id = args[2] if len(args) > 2 and not args[2].startswith("-") else ""
            if kind not in self.resources:
                return self._done(cmd, 1, stderr=f'error: resource type "{kind}" is not registered')
            objects = self.resources[kind]
            if resource_id:
                objects = [o for o in objects if o["metadata"]["id"] == resource_id]
                if not objects:
                    return self._done(cmd, 1, stderr="rpc error: code = NotFound desc = resource not found")
            stdout = "".join(json.dumps(o, indent=4) + "\n" for o in objects)
            return self._done(cmd, 0, stdout=stdout)

        return self._done(cmd, 1, stderr=f"unknown command {args[0]}")

    def commands(self, name):
        return [call for call in self.calls if call[1] == name]

    @staticmethod
    def _done(cmd, returncode, stdout="", stderr=""):
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


@pytest.fixture(autouse=True)
def reset_config():
    """Each test reads configuration from a clean environment."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def fake_talosctl():
    """Fake talosctl runner backed by a simulated control plane node."""
    return FakeTalosctl()


@pytest.fixture
def chart_dir(tmp_path):
    """Copy of the generic fixture chart."""
    target = tmp_path / "demo"
    shutil.copytree(FIXTURES / "charts" / "generic", target)
    return target


@pytest.fixture
def unreachable_talosctl():
    """Fake talosctl runner whose node refuses connections."""
    return FakeTalosctl(reachable=False)


@pytest.fixture
def live_provider(fake_talosctl):
    """Open live lookup provider against the simulated node."""
    from talm.discovery.lookup import LiveLookupProvider
    from talm.services.talosctl import NodeSession, Talosctl

    session = NodeSession(Talosctl(run_cmd=fake_talosctl), "192.168.100.11")
    with LiveLookupProvider(session) as provider:
        yield provider
