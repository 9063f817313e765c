#!/usr/bin/env python

import argparse
from importlib.resources import files
from pathlib import Path

from stokesd.config import SdConfiguration
from stokesd.io_utils import setup_logging
from stokesd.main import main

DEFAULT_CONFIG_FP = files(__package__) / "default_configuration.toml"


def cli_main():
    parser = argparse.ArgumentParser(
        prog="stokesd", description="Run Stokesian Dynamics simulations of spheres in an unbounded fluid."
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Set the configuration file of your simulation.",
        type=Path,
        default=None,
    )
    parser.add_argument(
        "-s",
        "--start-configuration",
        help="Provide a starting configuration of the particles (.npy file).",
        type=Path,
        default=None,
    )
    parser.add_argument(
        "-o", "--output", help="Output directory to store the results in.", type=Path, default=None
    )
    parser.add_argument("--debug", help="Also write a debug log.", action="store_true")
    args = parser.parse_args()

    setup_logging(args.output, debug_enabled=args.debug)

    if args.config is None:
        config_fp = DEFAULT_CONFIG_FP
    else:
        config_fp = args.config

    config = SdConfiguration.from_toml(config_fp, args.start_configuration)

    main(**config.parameters, output=args.output)


if __name__ == "__main__":
    cli_main()
