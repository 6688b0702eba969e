#!/usr/bin/env python3
import os
import sys
import getpass

from ftpserver.config import DEFAULT_CONFIG_FILE, save_config_values
from ftpserver.credentials import hash_password

# ----------- CLI -----------

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    config_path = argv[0] if argv else os.environ.get("FTP_CONFIG", DEFAULT_CONFIG_FILE)

    print("=== Set the FTP account ===")

    username = input("Username: ").strip()
    if not username:
        print("Username cannot be empty.")
        return 1

    password = getpass.getpass("Password: ")
    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        print("Passwords do not match.")
        return 1

    try:
        save_config_values(config_path, {"username": username, "password": hash_password(password)})
    except (ValueError, OSError) as e:
        print(f"Could not update {config_path}: {e}")
        return 1
    print(f"User '{username}' saved to {config_path}")
    return 0

if __name__ == "__main__":
    sys.exit(main())
