#!/usr/bin/env python3
# file: .github/scripts/sync-release-upload-artifacts.py
# version: 2.0.0
# guid: c4d5e6f7-a8b9-c0d1-e2f3-a4b5c6d7e8f9

"""Upload release artifacts from the working directory to a GitHub release.

Usage:
    sync-release-upload-artifacts.py [--directory DIR] [--tag TAG] [--output]

Environment:
    GITHUB_REPOSITORY, GH_TOKEN or GITHUB_TOKEN (required)
    RELEASE_TAG, RELEASE_MAX_RETRIES, RELEASE_BASE_RETRY_MS,
    RELEASE_UPLOAD_DELAY_MS, GITHUB_API_URL, GITHUB_SHA (optional)
"""

import sys
from pathlib import Path

SCRIPTS_PATH = Path(__file__).resolve().parents[1] / "workflows" / "scripts"
if str(SCRIPTS_PATH) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_PATH))

import release_assets  # noqa: E402


if __name__ == "__main__":
    release_assets.main()
