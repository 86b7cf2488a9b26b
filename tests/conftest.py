#!/usr/bin/env python3
# file: tests/conftest.py
# version: 1.0.0
# guid: 1f2e3d4c-5b6a-4798-8a9b-0c1d2e3f4a5b

"""Shared fixtures: canned responses and an in-memory GitHub releases API."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional
from urllib.parse import unquote

import pytest
import requests
from requests.structures import CaseInsensitiveDict

API_URL = "https://api.github.com"
UPLOADS_URL = "https://uploads.github.com"
REPOSITORY = "octo/widgets"

_REASONS = {
    200: "OK",
    201: "Created",
    204: "No Content",
    403: "Forbidden",
    404: "Not Found",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}


def build_response(
    status: int,
    body: Any = None,
    headers: Optional[dict[str, str]] = None,
    reason: Optional[str] = None,
) -> requests.Response:
    """Create a real requests.Response with the given status and body."""
    response = requests.Response()
    response.status_code = status
    response.reason = reason if reason is not None else _REASONS.get(status, "")
    response.encoding = "utf-8"
    response.headers = CaseInsensitiveDict(headers or {})
    if body is None:
        response._content = b""
    elif isinstance(body, (dict, list)):
        response._content = json.dumps(body).encode("utf-8")
        response.headers.setdefault(
            "content-type", "application/json; charset=utf-8"
        )
    elif isinstance(body, bytes):
        response._content = body
    else:
        response._content = str(body).encode("utf-8")
        response.headers.setdefault("content-type", "text/plain; charset=utf-8")
    return response


class FakeGitHub:
    """Minimal stateful stand-in for the releases API behind a requests.Session."""

    def __init__(self) -> None:
        self.releases: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.injected: list[tuple[str, str, requests.Response]] = []
        self._next_release_id = 100
        self._next_asset_id = 5000

    @property
    def repo_url(self) -> str:
        return f"{API_URL}/repos/{REPOSITORY}"

    def add_release(self, tag: str, asset_names: tuple[str, ...] = ()) -> dict[str, Any]:
        release_id = self._next_release_id
        self._next_release_id += 1
        release = {
            "id": release_id,
            "tag_name": tag,
            "upload_url": (
                f"{UPLOADS_URL}/repos/{REPOSITORY}/releases/{release_id}"
                "/assets{?name,label}"
            ),
            "assets": [],
        }
        self.releases[tag] = release
        for name in asset_names:
            self._add_asset(release, name, b"old")
        return release

    def _add_asset(self, release: dict[str, Any], name: str, content: bytes) -> dict[str, Any]:
        asset = {"id": self._next_asset_id, "name": name, "size": len(content)}
        self._next_asset_id += 1
        release["assets"].append(asset)
        return asset

    def asset_names(self, tag: str) -> list[str]:
        return [asset["name"] for asset in self.releases[tag]["assets"]]

    def inject(self, method: str, url_fragment: str, response: requests.Response) -> None:
        """Return ``response`` once for the next matching request."""
        self.injected.append((method, url_fragment, response))

    def methods(self) -> list[str]:
        return [f"{method} {url}" for method, url, _ in self.calls]

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append((method, url, kwargs))

        for index, (inj_method, fragment, response) in enumerate(self.injected):
            if inj_method == method and fragment in url:
                del self.injected[index]
                return response

        tags_prefix = f"{self.repo_url}/releases/tags/"
        if method == "GET" and url.startswith(tags_prefix):
            tag = unquote(url[len(tags_prefix):])
            if tag not in self.releases:
                return build_response(404, {"message": "Not Found"})
            return build_response(200, self.releases[tag])

        if method == "POST" and url == f"{self.repo_url}/releases":
            payload = kwargs["json"]
            release = self.add_release(payload["tag_name"])
            release.update({k: v for k, v in payload.items() if k != "tag_name"})
            return build_response(201, release)

        assets_prefix = f"{self.repo_url}/releases/assets/"
        if method == "DELETE" and url.startswith(assets_prefix):
            asset_id = int(url[len(assets_prefix):])
            for release in self.releases.values():
                for asset in release["assets"]:
                    if asset["id"] == asset_id:
                        release["assets"].remove(asset)
                        return build_response(204)
            return build_response(404, {"message": "Not Found"})

        if method == "POST" and url.startswith(UPLOADS_URL):
            release_id = int(url.split("/releases/")[1].split("/")[0])
            release = next(r for r in self.releases.values() if r["id"] == release_id)
            name = kwargs["params"]["name"]
            if name in [asset["name"] for asset in release["assets"]]:
                return build_response(
                    422,
                    {"message": "Validation Failed", "errors": [{"code": "already_exists"}]},
                )
            return build_response(201, self._add_asset(release, name, kwargs["data"]))

        return build_response(404, {"message": f"Unhandled {method} {url}"})


@pytest.fixture
def make_response() -> Callable[..., requests.Response]:
    """Factory for canned responses."""
    return build_response


@pytest.fixture
def fake_github() -> FakeGitHub:
    """Fresh in-memory GitHub releases API."""
    return FakeGitHub()
