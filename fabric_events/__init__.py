# SPDX-License-Identifier: Apache-2.0

# Set default logging handler to avoid "No handler found" warnings.
import logging

from fabric_events.version import VERSION

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ['VERSION']
