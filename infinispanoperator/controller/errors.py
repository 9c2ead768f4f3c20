# Copyright (c) 2020, 2021, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Optional

import kopf

# Delay before kopf re-runs a handler that failed on one of the errors below
STABILITY_RECHECK_DELAY = 10
CREDENTIAL_RETRY_DELAY = 30


class ConditionMismatch(kopf.TemporaryError):
    """
    A status condition doesn't hold the value required for the cluster to be
    considered stable. Not a failure, the cluster is just not there yet.
    """

    def __init__(self, condition_type: str, actual: str, expected: str,
                 message: str = "", delay: Optional[float] = STABILITY_RECHECK_DELAY):
        if message:
            msg = f"key '{condition_type}' has Status '{actual}', expected '{expected}' Reason '{message}'"
        else:
            msg = f"key '{condition_type}' has Status '{actual}', expected '{expected}'"
        super().__init__(msg, delay=delay)
        self.condition_type = condition_type
        self.actual = actual
        self.expected = expected
        self.message = message


class CredentialLookupFailed(kopf.TemporaryError):
    """
    The operator admin credentials could not be read from the secret store.
    The original error is chained as __cause__.
    """

    def __init__(self, secret_name: str, namespace: str, reason: str,
                 delay: Optional[float] = CREDENTIAL_RETRY_DELAY):
        super().__init__(
            f"unable to retrieve operator admin identities from {namespace}/{secret_name}: {reason}",
            delay=delay)
        self.secret_name = secret_name
        self.namespace = namespace
