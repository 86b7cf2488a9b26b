#!/usr/bin/env python3
# file: .github/workflows/scripts/release_assets.py
# version: 1.0.0
# guid: 7e2a9b4c-1d3f-4a5b-8c6d-e7f8091a2b3c

"""Synchronize local build artifacts with the assets of a GitHub release.

A run resolves (or creates) the release for the configured tag, lists the
candidate files in a directory, and for each file in name order deletes any
asset with the same name before uploading the current bytes. Uploads are
paced with a fixed delay to stay clear of secondary rate limits.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
import re
import time
from typing import Any, Callable, Optional
from urllib.parse import quote

import workflow_common
from github_request import GitHubApiError, GitHubClient
from release_config import ReleaseSyncConfig, load_config

ALLOWED_EXTENSIONS = (".json", ".tl", ".dat")

# rows are appended by workflow_common.timed_operation
TIMING_TABLE_HEADER = "| Step | Duration |\n| --- | --- |\n"

_URL_TEMPLATE = re.compile(r"\{[^}]*\}$")


@dataclass(frozen=True)
class ReleaseAsset:
    """Asset attached to a release, identified by name."""

    id: int
    name: str


@dataclass(frozen=True)
class Release:
    """Snapshot of a release taken once at the start of a run."""

    id: int
    tag_name: str
    upload_url_template: str
    assets: tuple[ReleaseAsset, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Release":
        assets = tuple(
            ReleaseAsset(id=asset["id"], name=asset["name"])
            for asset in payload.get("assets") or []
        )
        return cls(
            id=payload["id"],
            tag_name=payload.get("tag_name", ""),
            upload_url_template=payload["upload_url"],
            assets=assets,
        )

    @property
    def upload_url(self) -> str:
        """Upload endpoint with the ``{?name,label}`` template removed."""
        return _URL_TEMPLATE.sub("", self.upload_url_template)

    def asset_map(self) -> dict[str, ReleaseAsset]:
        return {asset.name: asset for asset in self.assets}


@dataclass(frozen=True)
class LocalArtifact:
    """Candidate file for upload."""

    path: Path

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix

    @property
    def content_type(self) -> str:
        return get_content_type(self.file_name)

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass
class SyncResult:
    """Outcome of a completed sync run."""

    release: Release
    uploaded: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


def get_content_type(file_name: str) -> str:
    """Infer the upload content type from the file extension."""
    extension = Path(file_name).suffix
    if extension == ".json":
        return "application/json"
    if extension == ".dat":
        return "application/octet-stream"
    return "text/plain; charset=utf-8"


def list_release_files(directory: Path) -> list[LocalArtifact]:
    """List regular files with an allowed extension, sorted by name.

    Symlinks are skipped even when they resolve to a regular file.
    """
    artifacts = [
        LocalArtifact(path)
        for path in directory.iterdir()
        if path.is_file()
        and not path.is_symlink()
        and path.suffix in ALLOWED_EXTENSIONS
    ]
    return sorted(artifacts, key=lambda artifact: artifact.file_name)


class ReleaseSynchronizer:
    """Drive one release sync run through the GitHub API."""

    def __init__(
        self,
        client: GitHubClient,
        config: ReleaseSyncConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.config = config
        self.sleep = sleep

    def resolve_release(self) -> Release:
        """Fetch the release for the configured tag, creating it on 404."""
        tag = self.config.tag
        tag_url = f"{self.config.repo_api_url}/releases/tags/{quote(tag, safe='')}"

        try:
            payload = self.client.get(tag_url).expect_json()
            release = Release.from_payload(payload)
            print(f"📦 Using existing release for tag {tag} (id: {release.id}).")
            return release
        except GitHubApiError as error:
            if not error.is_not_found:
                raise

        print(f"🆕 Release for tag {tag} not found, creating it...")
        body: dict[str, Any] = {
            "tag_name": tag,
            "name": tag,
            "draft": False,
            "prerelease": False,
        }
        if self.config.target_commitish:
            body["target_commitish"] = self.config.target_commitish

        payload = self.client.post(
            f"{self.config.repo_api_url}/releases",
            json=body,
        ).expect_json()
        release = Release.from_payload(payload)
        print(f"✅ Created release {tag} (id: {release.id}).")
        return release

    def delete_asset(self, asset: ReleaseAsset) -> None:
        print(f"🗑️  Deleting existing asset {asset.name} (id: {asset.id}).")
        self.client.delete(f"{self.config.repo_api_url}/releases/assets/{asset.id}")

    def upload_artifact(self, release: Release, artifact: LocalArtifact) -> None:
        content = artifact.read_bytes()
        print(f"⬆️  Uploading {artifact.file_name} ({len(content)} bytes)...")
        self.client.post(
            release.upload_url,
            params={"name": artifact.file_name},
            headers={
                "Content-Type": artifact.content_type,
                "Content-Length": str(len(content)),
            },
            data=content,
        )

    def sync(self, directory: Path) -> SyncResult:
        """Run the full resolve, enumerate, delete-and-upload sequence."""
        release = self.resolve_release()
        result = SyncResult(release=release)

        artifacts = list_release_files(directory)
        if not artifacts:
            print(
                "ℹ️  No matching release files found "
                f"({', '.join('*' + ext for ext in ALLOWED_EXTENSIONS)})."
            )
            return result

        print(f"📁 Preparing to upload {len(artifacts)} files.")
        existing_assets = release.asset_map()

        for artifact in artifacts:
            existing = existing_assets.get(artifact.file_name)
            if existing is not None:
                self.delete_asset(existing)
                result.deleted.append(existing.name)

            self.upload_artifact(release, artifact)
            result.uploaded.append(artifact.file_name)

            self.sleep(self.config.upload_delay_ms / 1000)

        print(
            f"✅ Release {release.tag_name or self.config.tag} updated "
            f"successfully with {len(result.uploaded)} assets."
        )
        return result


def write_summary(result: SyncResult) -> None:
    """Append a markdown table of uploaded assets to the step summary."""
    lines = [f"\n## Release {result.release.tag_name} assets\n\n"]
    if result.uploaded:
        lines.append("| Asset | Replaced |\n| --- | --- |\n")
        replaced = set(result.deleted)
        for name in result.uploaded:
            lines.append(f"| {name} | {'yes' if name in replaced else 'no'} |\n")
    else:
        lines.append("No matching release files found.\n")
    workflow_common.append_summary("".join(lines))


def write_outputs(result: SyncResult) -> None:
    workflow_common.write_output("release_id", str(result.release.id))
    workflow_common.write_output("release_tag", result.release.tag_name)
    workflow_common.write_output("uploaded_count", str(len(result.uploaded)))
    workflow_common.write_output("deleted_count", str(len(result.deleted)))


def run(
    directory: Path,
    config: ReleaseSyncConfig,
    client: Optional[GitHubClient] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncResult:
    """Sync ``directory`` with the configured release."""
    if client is None:
        client = GitHubClient(config.token, config.retry_policy(), sleep=sleep)
    synchronizer = ReleaseSynchronizer(client, config, sleep=sleep)
    return synchronizer.sync(directory)


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for CLI usage."""
    parser = argparse.ArgumentParser(
        description="Upload *.json, *.tl and *.dat files to a GitHub release",
    )
    parser.add_argument(
        "--directory",
        type=Path,
        default=Path.cwd(),
        help="Directory containing release files (default: current directory)",
    )
    parser.add_argument("--tag", help="Release tag override")
    parser.add_argument(
        "--output",
        action="store_true",
        help="Write release information to GITHUB_OUTPUT",
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(overrides={"tag": args.tag})
        print(f"🚀 Syncing release {config.tag} for {config.repository}")

        try:
            workflow_common.append_summary(TIMING_TABLE_HEADER)
        except workflow_common.WorkflowError as error:
            print(workflow_common.sanitize_log(str(error)))

        with workflow_common.timed_operation("Sync release assets"):
            result = run(args.directory, config)

        if args.output:
            write_outputs(result)

        try:
            write_summary(result)
        except workflow_common.WorkflowError as error:
            print(workflow_common.sanitize_log(str(error)))

    except Exception as error:  # pylint: disable=broad-except
        workflow_common.handle_error(error, "Release asset sync")


if __name__ == "__main__":
    main()
