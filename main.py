#!/usr/bin/env python3
"""
cStor Pool Upgrade Tool

Upgrades CStorPoolClusters and the CStorPoolInstances they own, instances
first. Supports running directly from a source checkout; for production use,
install the project and use the `cstor-upgrade` console script.
"""

import os
import sys

# Add src/ to path to import modules directly
REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
SRC_PATH = os.path.join(REPO_ROOT, "src")
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from cli import main

if __name__ == "__main__":
    sys.exit(main())
