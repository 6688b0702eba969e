import os
import sys

from ftpserver.config import DEFAULT_ROOT, load_config, with_port
from ftpserver.server_core import start_ftp_server

FALLBACK_PORT = 2121


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    config_path = argv[0] if argv else None

    # The default data directory is created on first run
    if not os.environ.get("FTP_ROOT"):
        os.makedirs(DEFAULT_ROOT, exist_ok=True)

    try:
        config = load_config(config_path)
    except (ValueError, OSError) as e:
        print(f"[CONFIG] Invalid configuration: {e}")
        return 1

    # Only Unix-like systems have geteuid
    if hasattr(os, "geteuid") and os.geteuid() != 0 and 0 < config.control_port < 1024:
        print(f"[CONFIG] Warning: port {config.control_port} needs root. "
              f"Using port {FALLBACK_PORT} for local testing.")
        config = with_port(config, FALLBACK_PORT)

    print("------------------------------------------------")
    print(f"--- FTP server on {config.bind_ip}:{config.control_port} ---")
    print(f"--- Root: {config.root_directory}")
    print(f"--- Passive ports: {config.passive_port_min}-{config.passive_port_max}")
    print(f"--- Anonymous login: {'enabled' if config.anonymous_enabled else 'disabled'}")
    print("------------------------------------------------")

    start_ftp_server(config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
