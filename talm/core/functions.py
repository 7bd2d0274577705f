"""Template function library.

Pure helpers (YAML/JSON, string, regex and size formatting) and
lookup-backed helpers that read facts from the node behind the current
LookupProvider. Lookup-backed helpers never raise on missing resources;
they return an empty value so templates can branch on presence.
"""
import base64
import binascii
import json
import re
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

import yaml
from jinja2 import Undefined

from talm.config.values import ValueSet
from talm.core.errors import TemplateExecutionError
from talm.discovery.lookup import LookupProvider
from talm.models.resource import ResourceList

MB = 1 << 20
GB = 1 << 30
TB = 1 << 40

PHYSICAL_LINK_RE = re.compile(r"^(eno|eth|enp|enx|ens)")


def _plain(value: Any) -> Any:
    """Convert template-side values into plain data for serializers."""
    if isinstance(value, Undefined):
        return None
    if isinstance(value, ResourceList):
        return [_plain(item) for item in value.items]
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


# ==================== Serialization ====================

def to_yaml(value: Any) -> str:
    if isinstance(value, Undefined):
        return ""
    try:
        dumped = yaml.safe_dump(_plain(value), default_flow_style=False, sort_keys=False)
    except yaml.YAMLError as e:
        raise TemplateExecutionError(f"to_yaml: cannot serialize {type(value).__name__}: {e}") from e
    # safe_dump terminates scalars with a document end marker
    if dumped.endswith("\n...\n"):
        dumped = dumped[:-5]
    return dumped.rstrip("\n")


def from_yaml(text: str) -> Any:
    try:
        return yaml.safe_load(str(text))
    except yaml.YAMLError as e:
        raise TemplateExecutionError(f"from_yaml: invalid YAML input: {e}") from e


def to_json(value: Any) -> str:
    try:
        return json.dumps(_plain(value), separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise TemplateExecutionError(f"to_json: cannot serialize {type(value).__name__}: {e}") from e


def from_json(text: str) -> Any:
    try:
        return json.loads(str(text))
    except ValueError as e:
        raise TemplateExecutionError(f"from_json: invalid JSON input {str(text)[:40]!r}: {e}") from e


def from_json_array(text: str) -> List[Any]:
    value = from_json(text)
    if not isinstance(value, list):
        raise TemplateExecutionError(f"from_json_array: expected a JSON array, got {type(value).__name__}")
    return value


# ==================== Strings ====================

def nindent(text: Any, width: int) -> str:
    """Newline, then *text* with every line indented by *width* spaces."""
    pad = " " * int(width)
    return "\n" + pad + str(text).replace("\n", "\n" + pad)


def _text(value: Any) -> str:
    # Booleans print the way YAML and Go templates spell them
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def quote(value: Any) -> str:
    if isinstance(value, Undefined) or value is None:
        return '""'
    return json.dumps(_text(value))


def squote(value: Any) -> str:
    if isinstance(value, Undefined) or value is None:
        return "''"
    return f"'{_text(value)}'"


def _words(value: Any) -> List[str]:
    text = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", str(value))
    return [word for word in re.split(r"[\s_\-.]+", text) if word]


def camelcase(value: Any) -> str:
    return "".join(word[:1].upper() + word[1:].lower() for word in _words(value))


def snakecase(value: Any) -> str:
    return "_".join(word.lower() for word in _words(value))


def kebabcase(value: Any) -> str:
    return "-".join(word.lower() for word in _words(value))


def has_prefix(value: Any, prefix: str) -> bool:
    return str(value).startswith(prefix)


def has_suffix(value: Any, suffix: str) -> bool:
    return str(value).endswith(suffix)


def b64enc(value: Any) -> str:
    return base64.b64encode(str(value).encode()).decode()


def b64dec(value: Any) -> str:
    try:
        return base64.b64decode(str(value), validate=True).decode()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise TemplateExecutionError(f"b64dec: invalid base64 input: {e}") from e


# ==================== Regex ====================

def _compile(helper: str, pattern: str) -> "re.Pattern":
    try:
        return re.compile(pattern)
    except re.error as e:
        raise TemplateExecutionError(f"{helper}: invalid pattern {pattern!r}: {e}") from e


def regex_match(value: Any, pattern: str) -> bool:
    return _compile("regex_match", pattern).search(str(value)) is not None


def regex_replace(value: Any, pattern: str, replacement: str) -> str:
    return _compile("regex_replace", pattern).sub(replacement, str(value))


def regex_find_all(value: Any, pattern: str) -> List[str]:
    return [m.group(0) for m in _compile("regex_find_all", pattern).finditer(str(value))]


# ==================== Collections ====================

def has(collection: Any, item: Any) -> bool:
    """List membership (``Values.subnets | has("10.0.0.0/8")``)."""
    if isinstance(collection, Undefined) or collection is None:
        return False
    return item in list(collection)


def dig(value: Any, *keys: str, default: Any = "") -> Any:
    """Walk nested mappings by *keys*, returning *default* on any miss."""
    current = value
    for key in keys:
        if not isinstance(current, Mapping) or key not in current:
            return default
        current = current[key]
    return current


# ==================== Sizes & assertions ====================

def human_size(value: Any) -> str:
    """Format a byte count: MB below 2^20, GB up to 2^30, TB above."""
    try:
        size = int(value)
    except (TypeError, ValueError) as e:
        raise TemplateExecutionError(f"human_size: expected a byte count, got {value!r}") from e
    if size < MB:
        return f"{size / MB:.2f} MB"
    if size <= GB:
        return f"{size / GB:.2f} GB"
    return f"{size / TB:.2f} TB"


def required(value: Any, message: str = "required value is missing") -> Any:
    if isinstance(value, Undefined) or value is None or value == "":
        raise TemplateExecutionError(message)
    return value


def fail(message: str):
    raise TemplateExecutionError(message)


PURE_HELPERS: Dict[str, Callable] = {
    "to_yaml": to_yaml,
    "from_yaml": from_yaml,
    "to_json": to_json,
    "from_json": from_json,
    "from_json_array": from_json_array,
    "nindent": nindent,
    "quote": quote,
    "squote": squote,
    "camelcase": camelcase,
    "snakecase": snakecase,
    "kebabcase": kebabcase,
    "has_prefix": has_prefix,
    "has_suffix": has_suffix,
    "b64enc": b64enc,
    "b64dec": b64dec,
    "regex_match": regex_match,
    "regex_replace": regex_replace,
    "regex_find_all": regex_find_all,
    "has": has,
    "dig": dig,
    "human_size": human_size,
    "required": required,
}


class FunctionLibrary:
    """Helpers bound to one invocation's values and lookup provider."""

    def __init__(self, provider: LookupProvider, values: Optional[ValueSet] = None):
        self.provider = provider
        self.values = values if values is not None else ValueSet()

    def filters(self) -> Dict[str, Callable]:
        return dict(PURE_HELPERS)

    def globals(self) -> Dict[str, Callable]:
        helpers: Dict[str, Callable] = dict(PURE_HELPERS)
        helpers.update({
            "fail": fail,
            "lookup": self.lookup,
            "predictable_link_name": self.predictable_link_name,
            "discovered_hostname": self.discovered_hostname,
            "discovered_machine_type": self.discovered_machine_type,
            "discovered_disks": self.discovered_disks,
            "discovered_system_disk_name": self.discovered_system_disk_name,
            "discovered_default_gateway": self.discovered_default_gateway,
            "discovered_default_link_name": self.discovered_default_link_name,
            "discovered_default_addresses": self.discovered_default_addresses,
            "discovered_default_link_selector": self.discovered_default_link_selector,
            "discovered_default_resolvers": self.discovered_default_resolvers,
            "discovered_node_addresses": self.discovered_node_addresses,
            "discovered_node_link_name": self.discovered_node_link_name,
            "discovered_physical_links": self.discovered_physical_links,
        })
        return helpers

    # ==================== Raw lookup ====================

    def lookup(self, kind: str, namespace: str = "", resource_id: str = ""):
        """``{}`` when missing; a ResourceList when *resource_id* is empty."""
        if resource_id:
            payload = self.provider.lookup(kind, namespace, resource_id)
            return payload.to_dict() if payload else {}
        return ResourceList([p.to_dict() for p in self.provider.list(kind, namespace)])

    def _spec(self, kind: str, resource_id: str) -> Any:
        payload = self.provider.lookup(kind, "", resource_id)
        return payload.spec if payload else None

    def _specs(self, kind: str) -> List[Dict[str, Any]]:
        return [p.spec or {} for p in self.provider.list(kind)]

    # ==================== Identity ====================

    def discovered_hostname(self) -> str:
        spec = self._spec("hostname", "hostname") or {}
        return spec.get("hostname", "")

    def discovered_machine_type(self) -> str:
        spec = self._spec("machinetype", "machine-type")
        return str(spec) if spec else ""

    # ==================== Disks ====================

    def discovered_disks(self) -> List[Dict[str, Any]]:
        system = self._spec("systemdisk", "system-disk") or {}
        disks = []
        for payload in self.provider.list("disks"):
            spec = payload.spec or {}
            device_name = spec.get("dev_path") or f"/dev/{payload.id}"
            disks.append({
                "device_name": device_name,
                "model": spec.get("model", ""),
                "serial": spec.get("serial", ""),
                "wwid": spec.get("wwid", ""),
                "size": spec.get("size", 0),
                "system_disk": bool(system) and (
                    payload.id == system.get("diskID") or device_name == system.get("devPath")
                ),
            })
        return disks

    def discovered_system_disk_name(self) -> str:
        """First disk flagged as system disk, else the first disk, else ``""``."""
        disks = self.discovered_disks()
        for disk in disks:
            if disk["system_disk"]:
                return disk["device_name"]
        return disks[0]["device_name"] if disks else ""

    # ==================== Network ====================

    def _default_route(self) -> Optional[Dict[str, Any]]:
        # Several default routes (dual stack): the last one scanned wins
        route = None
        for spec in self._specs("routes"):
            if spec.get("dst", "") == "" and spec.get("gateway", ""):
                route = spec
        return route

    def discovered_default_gateway(self) -> str:
        route = self._default_route()
        return route.get("gateway", "") if route else ""

    def discovered_default_link_name(self) -> str:
        route = self._default_route()
        return route.get("outLinkName", "") if route else ""

    def discovered_default_addresses(self) -> List[str]:
        """Non host-scoped addresses on the default route's link, minus the floating IP."""
        route = self._default_route()
        if not route:
            return []

        floating_ip = self.values.get("floatingIP")
        addresses = []
        for spec in self._specs("addresses"):
            if spec.get("linkName") != route.get("outLinkName"):
                continue
            if spec.get("family") != route.get("family") or spec.get("scope") == "host":
                continue
            address = spec.get("address", "")
            if floating_ip and address.startswith(f"{floating_ip}/"):
                continue
            addresses.append(address)
        return addresses

    def discovered_default_link_selector(self) -> Dict[str, str]:
        link_name = self.discovered_default_link_name()
        if not link_name:
            return {}
        spec = self._spec("links", link_name)
        if not spec:
            return {}
        return {"hardwareAddr": spec.get("hardwareAddr", ""), "driver": spec.get("driver", "")}

    def discovered_node_addresses(self) -> List[str]:
        """Addresses Talos selected as the node's own (``nodeaddress/default``)."""
        spec = self._spec("nodeaddress", "default") or {}
        return list(spec.get("addresses") or [])

    def discovered_node_link_name(self) -> str:
        """Link carrying the first of the node's own addresses."""
        node_addresses = self.discovered_node_addresses()
        if not node_addresses:
            return ""
        for spec in self._specs("addresses"):
            if spec.get("address") in node_addresses:
                return spec.get("linkName", "")
        return ""

    def discovered_default_resolvers(self) -> List[str]:
        spec = self._spec("resolvers", "resolvers") or {}
        return list(spec.get("dnsServers") or [])

    def discovered_physical_links(self) -> List[Dict[str, str]]:
        links = []
        for payload in self.provider.list("links"):
            spec = payload.spec or {}
            if not spec.get("busPath") or not PHYSICAL_LINK_RE.match(payload.id):
                continue
            links.append({
                "id": payload.id,
                "hardwareAddr": spec.get("hardwareAddr", ""),
                "busPath": spec.get("busPath", ""),
                "driver": spec.get("driver", ""),
                "vendor": spec.get("vendor", ""),
                "product": spec.get("product", ""),
                "predictable_name": _predictable_name(spec.get("hardwareAddr", "")),
            })
        return links

    def predictable_link_name(self, link_id: str) -> str:
        spec = self._spec("links", link_id) or {}
        return _predictable_name(spec.get("hardwareAddr", ""))


def _predictable_name(hardware_addr: str) -> str:
    return f"enx{hardware_addr.replace(':', '')}" if hardware_addr else ""

