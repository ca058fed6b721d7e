"""hcmachine CLI: drive one machine from the command line.

Usage examples::

    hcmachine --config '{"access_token": "..."}' create web-1
    hcmachine status web-1
    hcmachine url web-1
    hcmachine rm web-1

The driver record is kept in the machine store between invocations, so
only ``create`` needs the configuration.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, NoReturn, get_args

from hcmachine.base.supported_drivers import existing_drivers, existing_operations


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ``hcmachine`` CLI.

    Returns:
        Configured :class:`~argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(
        prog="hcmachine",
        description="Provision and control a Hetzner Cloud machine",
    )
    parser.add_argument(
        "--driver", "-d",
        default="hetzner",
        choices=list(get_args(existing_drivers)),
        help="Machine driver",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default="{}",
        help='JSON driver config for create (e.g. \'{"image":"ubuntu-24.04"}\')',
    )
    parser.add_argument(
        "--storage-path", "-s",
        type=str,
        default=None,
        help="Machine store root (default: HCMACHINE_STORAGE_PATH or ~/.hcmachine)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log every poll",
    )
    parser.add_argument(
        "operation",
        choices=list(get_args(existing_operations)),
        help="Operation to perform",
    )
    parser.add_argument(
        "machine",
        nargs="?",
        help="Machine name (not needed for 'flags')",
    )
    return parser


def _fail(message: str) -> NoReturn:
    print(message, file=sys.stderr)
    sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses arguments, builds or loads the machine's driver, runs the
    requested operation and saves the updated driver record. Results are
    printed as JSON (lists) or plain text.

    Args:
        argv: Optional argument list (defaults to ``sys.argv``).
    """
    parser = _build_parser()
    ns = parser.parse_args(argv)

    try:
        config: dict[str, Any] = json.loads(ns.config)
    except json.JSONDecodeError as e:
        _fail(f"Invalid --config JSON: {e}")
    if ns.storage_path:
        config["store_path"] = ns.storage_path

    # Lazy-import to avoid loading the provider SDK for --help
    from hcmachine.base.config import DEFAULT_STORE_PATH, FLAG_REGISTRY
    from hcmachine.base.exceptions import MachineDriverError
    from hcmachine.base.logger import hm_logger
    from hcmachine.base.store import MachineStore
    from hcmachine.factory import driver_factory, load_driver

    if ns.debug:
        hm_logger.logger.setLevel(logging.DEBUG)

    if ns.operation == "flags":
        flags = [flag.model_dump() for flag in FLAG_REGISTRY[ns.driver]]
        print(json.dumps(flags, indent=2))
        return

    if not ns.machine:
        _fail(f"Operation '{ns.operation}' needs a machine name")

    try:
        if ns.operation == "create":
            driver = driver_factory(ns.driver, ns.machine, config)
            if driver.store.exists(ns.machine):
                _fail(f"Machine '{ns.machine}' already exists")
            driver.pre_create_check()
            driver.create()
            driver.store.save(driver.to_record())
            print(driver.get_ip())
            return

        store = MachineStore(
            config.get("store_path")
            or os.environ.get("HCMACHINE_STORAGE_PATH")
            or DEFAULT_STORE_PATH
        )
        driver = load_driver(store.load(ns.machine), store=store)

        result: Any = None
        if ns.operation == "status":
            result = driver.get_state().value or "None"
        elif ns.operation == "ip":
            result = driver.get_ip()
        elif ns.operation == "url":
            result = driver.get_url()
        elif ns.operation == "rm":
            server_id = driver.server_id
            driver.remove()
            # Key pair and record are kept; the provider key stays registered.
            driver.server_id = 0
            driver.ip_address = ""
            result = (
                f"Removed server {server_id}; SSH key {driver.ssh_key_id} is still "
                f"registered, key files kept in {store.machine_dir(ns.machine)}"
            )
        else:
            getattr(driver, ns.operation)()

        store.save(driver.to_record())
    except (MachineDriverError, ValueError) as e:
        _fail(f"Operation failed: {e}")

    print("OK" if result is None else result)


if __name__ == "__main__":
    main()
