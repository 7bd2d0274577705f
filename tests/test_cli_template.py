"""Tests for the template command."""
import pytest
import yaml
from typer.testing import CliRunner

from talm.cli import app

runner = CliRunner()


class TestMainHelp:
    """Test main CLI help output."""

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "talm - Manage Talos Linux machine configuration like Helm charts" in result.stdout
        assert "template" in result.stdout

    def test_template_help(self):
        result = runner.invoke(app, ["template", "--help"])

        assert result.exit_code == 0
        for flag in ("--set-string", "--set-file", "--set-json", "--set-literal", "--offline", "--full"):
            assert flag in result.stdout


class TestTemplateCommand:
    """Test rendering through the CLI."""

    def test_offline_render(self, chart_dir):
        result = runner.invoke(app, [
            "template", "--root", str(chart_dir), "--offline",
            "-t", "templates/controlplane.yaml",
        ])

        assert result.exit_code == 0
        first_line, _, body = result.stdout.partition("\n")
        assert first_line == '# talm: nodes=[], endpoints=[], templates=["templates/controlplane.yaml"]'
        assert yaml.safe_load(body)["cluster"]["clusterName"] == "demo"

    def test_set_flags(self, chart_dir, tmp_path):
        banner = tmp_path / "banner.txt"
        banner.write_text("welcome")

        result = runner.invoke(app, [
            "template", "--root", str(chart_dir), "--offline",
            "-t", "templates/controlplane.yaml",
            "--set", "endpoint=https://10.0.0.1:6443",
            "--set-string", "floatingIP=10.0.0.10",
            "--set-file", "banner=" + str(banner),
            "--set-json", 'podSubnets=["10.1.0.0/16"]',
        ])

        assert result.exit_code == 0
        document = yaml.safe_load(result.stdout.partition("\n")[2])
        assert document["cluster"]["controlPlane"]["endpoint"] == "https://10.0.0.1:6443"
        assert document["cluster"]["network"]["podSubnets"] == ["10.1.0.0/16"]
        assert document["machine"]["network"]["interfaces"][0]["vip"]["ip"] == "10.0.0.10"

    def test_chart_template_options(self, chart_dir):
        chart = yaml.safe_load((chart_dir / "Chart.yaml").read_text())
        chart["templateOptions"]["offline"] = True
        chart["templateOptions"]["values"] = ["endpoint=https://10.9.9.9:6443", "floatingIP=10.9.9.10"]
        (chart_dir / "Chart.yaml").write_text(yaml.safe_dump(chart))

        result = runner.invoke(app, [
            "template", "--root", str(chart_dir),
            "-t", "templates/worker.yaml",
            "--set", "floatingIP=10.0.0.10",
        ])

        assert result.exit_code == 0
        document = yaml.safe_load(result.stdout.partition("\n")[2])
        # Chart values come first, command line values win
        assert document["cluster"]["controlPlane"]["endpoint"] == "https://10.9.9.9:6443"
        assert document["machine"]["network"]["interfaces"][0]["vip"]["ip"] == "10.0.0.10"

    def test_modeline_lists_targets(self, chart_dir):
        result = runner.invoke(app, [
            "template", "--root", str(chart_dir), "--offline",
            "-n", "10.0.0.5", "-e", "10.0.0.1",
            "-t", "templates/controlplane.yaml", "-t", "templates/worker.yaml",
        ])

        assert result.exit_code == 0
        assert result.stdout.startswith(
            '# talm: nodes=["10.0.0.5"], endpoints=["10.0.0.1"], '
            'templates=["templates/controlplane.yaml","templates/worker.yaml"]\n'
        )
        assert "\n---\n" in result.stdout

    def test_error_exit_code(self, chart_dir):
        result = runner.invoke(app, [
            "template", "--root", str(chart_dir), "--offline",
            "-t", "templates/controlplane.yaml",
            "--set", "broken",
        ])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_missing_template(self, chart_dir):
        result = runner.invoke(app, [
            "template", "--root", str(chart_dir), "--offline",
            "-t", "templates/missing.yaml",
        ])

        assert result.exit_code == 1
        assert "template not found" in result.output

    def test_template_required(self, chart_dir):
        result = runner.invoke(app, ["template", "--root", str(chart_dir), "--offline"])

        assert result.exit_code != 0


class TestChartModeDefaults:
    """Test Chart.yaml full/offline defaults against command line flags."""

    @pytest.fixture
    def captured(self, monkeypatch):
        seen = []

        def fake_render(options):
            seen.append(options)
            return "machine: {}\n"

        monkeypatch.setattr("talm.cli_template_commands.render", fake_render)
        return seen

    @pytest.fixture
    def chart_with_modes(self, chart_dir):
        chart = yaml.safe_load((chart_dir / "Chart.yaml").read_text())
        chart["templateOptions"]["offline"] = True
        chart["templateOptions"]["full"] = True
        (chart_dir / "Chart.yaml").write_text(yaml.safe_dump(chart))
        return chart_dir

    def test_chart_defaults_apply(self, chart_with_modes, captured):
        result = runner.invoke(app, ["template", "--root", str(chart_with_modes), "-t", "templates/worker.yaml"])

        assert result.exit_code == 0
        assert captured[0].offline is True
        assert captured[0].full is True

    def test_no_offline_overrides_chart(self, chart_with_modes, captured):
        result = runner.invoke(app, [
            "template", "--root", str(chart_with_modes), "-t", "templates/worker.yaml", "--no-offline",
        ])

        assert result.exit_code == 0
        assert captured[0].offline is False
        assert captured[0].full is True

    def test_no_full_overrides_chart(self, chart_with_modes, captured):
        result = runner.invoke(app, [
            "template", "--root", str(chart_with_modes), "-t", "templates/worker.yaml", "--no-full",
        ])

        assert result.exit_code == 0
        assert captured[0].full is False
        assert captured[0].offline is True
