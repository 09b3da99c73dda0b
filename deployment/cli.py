#!/usr/bin/env python3
"""
Command line entry point: deploy the artifacts listed in a manifest.

    deploy-sequencer migrations/2_deploy_exchange.json
    deploy-sequencer migrations/2_deploy_exchange.json --resume
    deploy-sequencer migrations/2_deploy_exchange.json --plan
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from .address_table import AddressTable
from .artifacts import ArtifactRegistry
from .config import DeploymentConfig, load_manifest
from .deployer import Deployer, DryRunDeployer, Web3Deployer
from .errors import DeploymentError
from .notifications import Notifier
from .orchestrator import Orchestrator

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_file: str, verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deploy-sequencer",
        description="Deploy and link contracts in dependency order",
    )
    parser.add_argument("manifest", help="JSON manifest listing artifacts and constructor arguments")
    parser.add_argument("--artifacts-dir", help="Compiler output directory (default: $ARTIFACTS_DIR)")
    parser.add_argument("--deployment-file", help="Address table file (default: $DEPLOYMENT_FILE)")
    parser.add_argument("--resume", action="store_true",
                        help="Seed the run with the existing deployment file and skip what it lists")
    parser.add_argument("--dry-run", action="store_true",
                        help="Use deterministic fake addresses; nothing is sent or written")
    parser.add_argument("--plan", action="store_true", help="Print the deployment order and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _initial_table(config: DeploymentConfig, path: str, resume: bool) -> AddressTable:
    if resume and os.path.exists(path):
        return AddressTable.load(path, chain_id=config.chain_id)
    if resume:
        logger.warning(f"No deployment file at {path}; starting from an empty table")
    return AddressTable(network=config.network, chain_id=config.chain_id)


def main(argv: Optional[List[str]] = None, deployer: Optional[Deployer] = None) -> int:
    """Run one deployment. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = DeploymentConfig.from_env()
    except DeploymentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_file, args.verbose)
    artifacts_dir = args.artifacts_dir or config.artifacts_dir
    deployment_file = args.deployment_file or config.deployment_file

    try:
        manifest = load_manifest(args.manifest)
        registry = ArtifactRegistry.from_directory(artifacts_dir, manifest.artifacts)
        table = _initial_table(config, deployment_file, args.resume)

        if args.plan:
            orchestrator = Orchestrator(registry, DryRunDeployer(), manifest.constructor_args, table)
            for index, name in enumerate(orchestrator.plan().order, start=1):
                status = "deployed" if name in table else "pending"
                print(f"{index}. {name} ({status})")
            return 0

        if deployer is None:
            deployer = DryRunDeployer() if args.dry_run else Web3Deployer.from_config(config)
    except DeploymentError as e:
        logger.error(f"Deployment setup failed: {e}")
        return 2

    # Persist after every record so an interrupted run can be resumed
    on_deployed = None if args.dry_run else (lambda record: table.save(deployment_file))
    orchestrator = Orchestrator(
        registry, deployer, manifest.constructor_args, table, on_deployed=on_deployed
    )
    run = orchestrator.run()

    if not args.dry_run and run.deployed:
        try:
            table.save(deployment_file)
            logger.info(f"Deployment data written to {deployment_file}")
        except OSError as e:
            logger.error(f"Could not write deployment data to {deployment_file}: {e}")

    notifier = Notifier(config)
    if notifier.enabled and not args.dry_run:
        notifier.notify(run)

    for name, address in run.addresses.items():
        print(f"{name}: {address}")

    if not run.succeeded:
        print(f"Deployment failed at {run.failed_artifact or 'graph build'}: {run.error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
