# Copyright (c) 2020, 2023, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import argparse
import logging

from .controller import config, kubeutils, utils
from .controller.errors import ConditionMismatch
from .controller.infinispan.cluster_api import Infinispan


def print_status(cluster: Infinispan, logger: logging.Logger) -> int:
    print(f"Infinispan {cluster}")
    for c in cluster.conditions:
        print(f"  {c.type:20} {c.status.value:8} {c.message}")

    try:
        cluster.ensure_cluster_stability()
        print("Stable: yes")
        stable = True
    except ConditionMismatch as e:
        print(f"Stable: no ({e})")
        stable = False

    print(f"Upgrade: {cluster.upgrade_state(logger).value}")
    return 0 if stable else 2


def main(argv):
    parser = argparse.ArgumentParser(description = "Infinispan cluster status")
    parser.add_argument('--debug',  type = int, nargs="?", const = 1, default = 0, help = "Debug")
    parser.add_argument('--logging-level', type = int, nargs="?", default = logging.INFO, help = "Logging Level")
    parser.add_argument('namespace', type = str, help = "Namespace of the Infinispan object")
    parser.add_argument('name', type = str, help = "Name of the Infinispan object")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else args.logging_level,
                        format='%(asctime)s - [%(levelname)s] [%(name)s] %(message)s',
                        datefmt="%Y-%m-%dT%H:%M:%S")
    logger = logging.getLogger("status")
    utils.log_banner(__file__, logger)

    config.config_from_env()
    if args.debug or config.debug:
        config.log_config_banner(logger)
    kubeutils.configure()

    cluster = Infinispan.try_read(args.namespace, args.name)
    if cluster is None:
        logger.error(f"Infinispan {args.namespace}/{args.name} not found")
        return 1

    if args.debug:
        cluster.log_cluster_info(logger)
    return print_status(cluster, logger)
