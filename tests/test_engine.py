"""End-to-end render tests against the generic fixture chart."""
import pytest
import yaml

from talm.core.engine import RenderOptions, render
from talm.core.errors import ConnectivityError, TemplateSyntaxError, ValueFileError, ValueParseError
from talm.services.talosctl import Talosctl


def options(chart_dir, **kwargs):
    kwargs.setdefault("template_files", ["templates/controlplane.yaml"])
    return RenderOptions(root=chart_dir, **kwargs)


class TestOfflineRender:
    """Test rendering without a node."""

    def test_guarded_lookups_render_empty(self, chart_dir, fake_talosctl):
        output = render(options(chart_dir, offline=True), Talosctl(run_cmd=fake_talosctl))

        document = yaml.safe_load(output)
        assert document["machine"]["type"] == "controlplane"
        assert document["machine"]["network"]["hostname"] == ""
        assert document["machine"]["network"]["interfaces"][0]["addresses"] == []
        assert document["machine"]["install"]["disk"] == ""
        assert document["cluster"]["clusterName"] == "demo"
        assert document["cluster"]["etcd"]["advertisedSubnets"] == ["192.168.100.0/24"]
        assert fake_talosctl.calls == []

    def test_worker_through_include(self, chart_dir, fake_talosctl):
        output = render(
            options(chart_dir, offline=True, template_files=["templates/worker.yaml"]),
            Talosctl(run_cmd=fake_talosctl),
        )

        document = yaml.safe_load(output)
        assert document["machine"]["type"] == "worker"
        assert "etcd" not in document["cluster"]

    def test_patch_output_has_no_base_content(self, chart_dir, fake_talosctl):
        output = render(options(chart_dir, offline=True), Talosctl(run_cmd=fake_talosctl))

        assert "flannel" not in output
        assert "token" not in output

    def test_values_precedence(self, chart_dir, fake_talosctl, tmp_path):
        override = tmp_path / "override.yaml"
        override.write_text("endpoint: https://10.0.0.2:6443\npodSubnets: [10.10.0.0/16]\n")

        output = render(
            options(
                chart_dir, offline=True,
                value_files=[str(override)],
                values=["endpoint=https://10.0.0.3:6443"],
            ),
            Talosctl(run_cmd=fake_talosctl),
        )

        document = yaml.safe_load(output)
        assert document["cluster"]["controlPlane"]["endpoint"] == "https://10.0.0.3:6443"
        assert document["cluster"]["network"]["podSubnets"] == ["10.10.0.0/16"]
        assert document["cluster"]["network"]["serviceSubnets"] == ["10.96.0.0/16"]

    def test_absolute_template_path(self, chart_dir, fake_talosctl):
        template = chart_dir / "templates" / "controlplane.yaml"

        output = render(options(chart_dir, offline=True, template_files=[str(template)]),
                        Talosctl(run_cmd=fake_talosctl))

        assert "clusterName" in output

    def test_template_outside_chart(self, chart_dir, fake_talosctl, tmp_path):
        outside = tmp_path / "outside.yaml"
        outside.write_text("a: 1\n")

        with pytest.raises(TemplateSyntaxError, match="outside the chart root"):
            render(options(chart_dir, offline=True, template_files=[str(outside)]),
                   Talosctl(run_cmd=fake_talosctl))


class TestOnlineRender:
    """Test rendering with live lookups."""

    def test_discovered_network(self, chart_dir, fake_talosctl):
        output = render(
            options(chart_dir, nodes=["192.168.100.11"], values=["floatingIP=192.168.100.10"]),
            Talosctl(run_cmd=fake_talosctl),
        )

        machine = yaml.safe_load(output)["machine"]
        interface = machine["network"]["interfaces"][0]
        assert interface["routes"][0]["gateway"] == "192.168.100.1"
        assert interface["addresses"] == ["192.168.100.11/24"]
        assert interface["vip"]["ip"] == "192.168.100.10"
        assert interface["deviceSelector"] == {"hardwareAddr": "aa:bb:cc:dd:ee:ff", "driver": "virtio_net"}
        assert machine["network"]["hostname"] == "talos-cp-1"
        assert machine["network"]["nameservers"] == ["1.1.1.1", "8.8.8.8"]
        assert machine["install"]["disk"] == "/dev/sda"

    def test_targets_first_node(self, chart_dir, fake_talosctl):
        render(options(chart_dir, nodes=["10.0.0.5", "10.0.0.6"], endpoints=["10.0.0.1"]),
               Talosctl(run_cmd=fake_talosctl))

        for cmd in fake_talosctl.calls:
            assert cmd[cmd.index("--nodes") + 1] == "10.0.0.5"

    def test_endpoint_fallback(self, chart_dir, fake_talosctl):
        render(options(chart_dir, endpoints=["10.0.0.1"], insecure=True), Talosctl(run_cmd=fake_talosctl))

        cmd = fake_talosctl.commands("version")[0]
        assert cmd[cmd.index("--nodes") + 1] == "10.0.0.1"
        assert "--insecure" in cmd

    def test_no_target(self, chart_dir, fake_talosctl):
        with pytest.raises(ConnectivityError, match="no nodes or endpoints"):
            render(options(chart_dir), Talosctl(run_cmd=fake_talosctl))

    def test_unreachable(self, chart_dir, unreachable_talosctl):
        with pytest.raises(ConnectivityError):
            render(options(chart_dir, nodes=["10.0.0.5"]), Talosctl(run_cmd=unreachable_talosctl))


class TestFullRender:
    """Test full-document rendering."""

    def test_full_merges_onto_base(self, chart_dir, fake_talosctl):
        output = render(
            options(chart_dir, offline=True, full=True, values=["floatingIP=192.168.100.10"]),
            Talosctl(run_cmd=fake_talosctl),
        )

        document = yaml.safe_load(output)
        assert document["cluster"]["network"]["cni"] == {"name": "flannel"}
        assert document["cluster"]["network"]["podSubnets"] == ["10.244.0.0/16"]
        assert document["machine"]["install"]["image"] == "ghcr.io/siderolabs/installer:v1.7.0"
        assert document["machine"]["install"]["disk"] == ""
        cmd = fake_talosctl.commands("gen")[0]
        assert cmd[3:5] == ["demo", "https://192.168.100.10:6443"]

    def test_secrets_and_version(self, chart_dir, fake_talosctl, tmp_path):
        secrets = tmp_path / "secrets.yaml"
        secrets.write_text("cluster:\n  id: abc\n  secret: xyz\n")

        render(
            options(chart_dir, offline=True, full=True, with_secrets=str(secrets), talos_version="v1.7"),
            Talosctl(run_cmd=fake_talosctl),
        )

        cmd = fake_talosctl.commands("gen")[0]
        assert cmd[cmd.index("--with-secrets") + 1] == str(secrets)
        assert cmd[cmd.index("--talos-version") + 1] == "v1.7"

    def test_missing_secrets(self, chart_dir, fake_talosctl, tmp_path):
        with pytest.raises(ValueFileError, match="secrets file not found"):
            render(options(chart_dir, offline=True, full=True, with_secrets=str(tmp_path / "nope.yaml")),
                   Talosctl(run_cmd=fake_talosctl))

    def test_bad_version(self, chart_dir, fake_talosctl):
        with pytest.raises(ValueParseError, match="invalid talos version"):
            render(options(chart_dir, offline=True, talos_version="latest"), Talosctl(run_cmd=fake_talosctl))
