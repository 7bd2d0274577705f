"""talosctl wrapper used for node lookups and base config generation."""
import json
import subprocess
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from talm.core.config import get_config
from talm.core.errors import ConnectivityError
from talm.core.logger import get_logger

logger = get_logger(__name__)

RunCmd = Callable[..., subprocess.CompletedProcess]

# stderr fragments meaning "no such resource" rather than a failed connection
_NOT_FOUND_MARKERS = (
    "code = NotFound",
    "doesn't exist",
    "not registered",
    "resource type not found",
)


class ResourceNotFound(Exception):
    """The node answered, but the requested resource does not exist."""


def decode_json_stream(text: str) -> List[Dict[str, Any]]:
    """Decode the concatenated JSON objects printed by ``talosctl get -o json``."""
    decoder = json.JSONDecoder()
    objects: List[Dict[str, Any]] = []
    pos = 0
    while True:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            return objects
        obj, pos = decoder.raw_decode(text, pos)
        objects.append(obj)


class Talosctl:
    """Runs talosctl commands.

    Args:
        binary: talosctl executable (defaults to TalmConfig.talosctl_path)
        timeout: Per-command timeout in seconds (defaults to TalmConfig.lookup_timeout)
        run_cmd: subprocess.run compatible callable, injectable for tests
    """

    def __init__(
        self,
        binary: Optional[str] = None,
        timeout: Optional[int] = None,
        run_cmd: Optional[RunCmd] = None,
    ):
        config = get_config()
        self.binary = binary or config.talosctl_path
        self.timeout = timeout if timeout is not None else config.lookup_timeout
        self.run_cmd = run_cmd or subprocess.run

    def run(self, args: Sequence[str], timeout: Optional[int] = None) -> subprocess.CompletedProcess:
        """Run ``talosctl <args>`` and return the completed process.

        Raises:
            ConnectivityError: Binary missing or command timed out.
        """
        cmd = [self.binary, *args]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return self.run_cmd(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except FileNotFoundError as e:
            raise ConnectivityError(f"{self.binary} not found; install talosctl or set TALM_TALOSCTL") from e
        except subprocess.TimeoutExpired as e:
            raise ConnectivityError(f"talosctl {args[0]} timed out after {e.timeout}s") from e

    def gen_config(
        self,
        cluster_name: str,
        endpoint: str,
        output_type: str,
        secrets_path: Optional[str] = None,
        talos_version: Optional[str] = None,
        kubernetes_version: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> str:
        """Generate one machine config with ``talosctl gen config`` and return its YAML.

        Raises:
            subprocess.CalledProcessError: talosctl exited non-zero
        """
        args = [
            "gen", "config", cluster_name, endpoint,
            "--output-types", output_type,
            "--output", "-",
            "--with-docs=false",
            "--with-examples=false",
        ]
        if secrets_path:
            args += ["--with-secrets", secrets_path]
        if talos_version:
            args += ["--talos-version", talos_version]
        if kubernetes_version:
            args += ["--kubernetes-version", kubernetes_version]

        result = self.run(args, timeout=timeout)
        if result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, [self.binary, *args], result.stdout, result.stderr
            )
        return result.stdout


class NodeSession:
    """A talosctl-backed session against exactly one node.

    ``connect()`` probes the node once; every later call reuses the same
    target and connection flags until ``close()``.
    """

    def __init__(
        self,
        talosctl: Talosctl,
        node: str,
        endpoints: Sequence[str] = (),
        talosconfig: Optional[str] = None,
        insecure: bool = False,
    ):
        self.talosctl = talosctl
        self.node = node
        self.endpoints = list(endpoints)
        self.talosconfig = talosconfig
        self.insecure = insecure
        self.connected = False

    def _target_args(self) -> List[str]:
        args = ["--nodes", self.node]
        if self.insecure:
            args.append("--insecure")
        else:
            if self.endpoints:
                args += ["--endpoints", ",".join(self.endpoints)]
            if self.talosconfig:
                args += ["--talosconfig", self.talosconfig]
        return args

    def connect(self):
        """Probe the node.

        Raises:
            ConnectivityError: Node unreachable or talosctl unusable.
        """
        result = self.talosctl.run(["version", "--short", *self._target_args()])
        if result.returncode != 0:
            raise ConnectivityError(
                f"failed to connect to node {self.node}: {result.stderr.strip() or 'talosctl version failed'}"
            )
        self.connected = True
        mode = "maintenance (insecure)" if self.insecure else "authenticated"
        logger.info(f"Connected to node {self.node} [{mode}]")

    def close(self):
        if self.connected:
            logger.debug(f"Closed session to node {self.node}")
        self.connected = False

    def get(self, kind: str, namespace: str = "", resource_id: str = "") -> List[Dict[str, Any]]:
        """Fetch resources of *kind* (one when *resource_id* is given).

        Raises:
            ResourceNotFound: The node reports no such resource or kind.
            ConnectivityError: Session closed, command failed or output unreadable.
        """
        if not self.connected:
            raise ConnectivityError(f"session to node {self.node} is not open")

        args = ["get", kind]
        if resource_id:
            args.append(resource_id)
        if namespace:
            args += ["--namespace", namespace]
        args += ["-o", "json", *self._target_args()]

        result = self.talosctl.run(args)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            if any(marker in stderr for marker in _NOT_FOUND_MARKERS):
                raise ResourceNotFound(f"{kind}/{resource_id or '*'}")
            raise ConnectivityError(
                f"lookup of {kind} on node {self.node} failed: {stderr or f'exit code {result.returncode}'}"
            )

        try:
            return decode_json_stream(result.stdout)
        except ValueError as e:
            raise ConnectivityError(f"unreadable talosctl output for {kind}: {e}") from e

    def list(self, kind: str, namespace: str = "") -> Iterator[Dict[str, Any]]:
        """Iterate every resource of *kind*; a missing kind yields nothing."""
        try:
            objects = self.get(kind, namespace)
        except ResourceNotFound:
            return
        yield from objects
