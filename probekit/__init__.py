# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""probekit: normalized, timeout-safe probe operations for a host"""

__version__ = "1.0.0"
