# Copyright (c) 2020, 2022, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import datetime
import os
import base64
import json


def b64decode(s: str) -> str:
    return base64.b64decode(s).decode("utf8")

def b64encode(s: str) -> str:
    return base64.b64encode(bytes(s, "utf8")).decode("ascii")


def parse_label_map(value: str, what: str) -> dict:
    """
    Parse a JSON object of label name/value pairs. An empty string means no
    labels.
    """
    if not value:
        return {}
    try:
        labels = json.loads(value)
    except ValueError as e:
        raise ValueError(f"Error unmarshalling {what}: {e}") from e
    if not isinstance(labels, dict) or not all(isinstance(v, str) for v in labels.values()):
        raise ValueError(f"Error unmarshalling {what}: expected a map of strings")
    return labels


def log_banner(path: str, logger) -> None:
    from importlib.metadata import version
    from . import config

    kopf_version = version("kopf")
    ts = datetime.datetime.fromtimestamp(os.stat(path).st_mtime).isoformat()

    path = os.path.basename(path)
    logger.info(
        f"Infinispan Operator/{path}={config.OPERATOR_VERSION} timestamp={ts} kopf={kopf_version} uid={os.getuid()}")
