import os
import json
import ipaddress
from dataclasses import dataclass, fields, replace

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))   # folder holding server.py
DEFAULT_CONFIG_FILE = os.path.join(BASE_DIR, "ftp_config.json")
DEFAULT_ROOT = os.path.join(BASE_DIR, "data")

WILDCARD_IP = "0.0.0.0"


@dataclass(frozen=True)
class ServerConfig:
    """Immutable server settings, shared read-only by every session."""
    bind_ip: str = WILDCARD_IP
    control_port: int = 21
    advertised_ip: str = "127.0.0.1"
    passive_port_min: int = 21000
    passive_port_max: int = 21100
    root_directory: str = DEFAULT_ROOT
    anonymous_enabled: bool = True
    username: str = "user"
    password: str = "password"

    def __post_init__(self):
        for name in ("bind_ip", "advertised_ip"):
            try:
                ipaddress.IPv4Address(getattr(self, name))
            except ValueError:
                raise ValueError(f"{name} is not a valid IPv4 address: {getattr(self, name)!r}")
        if not 0 <= self.control_port <= 65535:
            raise ValueError(f"control_port out of range: {self.control_port}")
        if not 1 <= self.passive_port_min <= self.passive_port_max <= 65535:
            raise ValueError(
                f"Invalid passive port range [{self.passive_port_min}, {self.passive_port_max}]"
            )
        root = os.path.normpath(os.path.abspath(self.root_directory))
        if not os.path.isdir(root):
            raise ValueError(f"Root directory does not exist: {root}")
        # frozen dataclass: store the normalized root by hand
        object.__setattr__(self, "root_directory", root)

    @property
    def passive_ports(self):
        return range(self.passive_port_min, self.passive_port_max + 1)


def _read_config_file(path):
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    known = {f.name for f in fields(ServerConfig)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")
    return data


def load_config(path=None, environ=None) -> ServerConfig:
    """
    Builds the ServerConfig from the JSON file and the FTP_* environment
    variables. The environment wins over the file.
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get("FTP_CONFIG") or DEFAULT_CONFIG_FILE
    values = _read_config_file(path)

    if environ.get("FTP_ROOT"):
        values["root_directory"] = environ["FTP_ROOT"]
    if environ.get("FTP_HOST"):
        values["bind_ip"] = environ["FTP_HOST"]
    if environ.get("FTP_PORT"):
        try:
            values["control_port"] = int(environ["FTP_PORT"])
        except ValueError:
            raise ValueError(f"FTP_PORT must be an integer: {environ['FTP_PORT']!r}")
    if environ.get("FTP_PASV_ADDRESS", "").strip():
        values["advertised_ip"] = environ["FTP_PASV_ADDRESS"].strip()

    return ServerConfig(**values)


def with_port(config, control_port):
    return replace(config, control_port=control_port)


def save_config_values(path, updates):
    """Updates some keys of the JSON config file, keeping the rest."""
    data = _read_config_file(path)
    data.update(updates)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
