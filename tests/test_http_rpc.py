"""Tests for the JSON-RPC HTTP surface.

Tests:
- Auth and envelope handling
- Error code mapping
- Page, version and collaboration flows end to end
"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from folio.app import create_app
from folio.http_rpc import _METHODS, RpcRequest


def _call(client: TestClient, method: str, params: dict[str, Any] | None = None, req_id: int = 1) -> dict[str, Any]:
    body: dict[str, Any] = {"jsonrpc": "2.0", "id": req_id, "method": method}
    if params is not None:
        body["params"] = params
    res = client.post("/rpc", json=body)
    assert res.status_code == 200
    return res.json()


def _result(client: TestClient, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    data = _call(client, method, params)
    assert "error" not in data, data
    return data["result"]


@pytest.fixture
def eng(client: TestClient) -> dict[str, Any]:
    return _result(client, "kb/spaces/create", {"key": "eng", "name": "Engineering"})["space"]


# =============================================================================
# Transport
# =============================================================================


class TestTransport:
    def test_health(self, client: TestClient) -> None:
        res = client.get("/health")

        assert res.status_code == 200
        assert res.json()["status"] == "ok"

    def test_missing_auth_rejected(self, store) -> None:
        with TestClient(create_app(store, seed_demo=False)) as anonymous:
            res = anonymous.post("/rpc", json={"jsonrpc": "2.0", "id": 1, "method": "kb/spaces/list"})

        assert res.status_code == 401

    def test_malformed_actor_rejected(self, client: TestClient) -> None:
        res = client.post(
            "/rpc",
            json={"jsonrpc": "2.0", "id": 1, "method": "kb/spaces/list"},
            headers={"Authorization": "Bearer not a valid id"},
        )

        assert res.status_code == 401

    def test_invalid_json(self, client: TestClient) -> None:
        res = client.post("/rpc", content=b"{nope", headers={"Content-Type": "application/json"})

        assert res.json()["error"]["code"] == -32700

    def test_non_object_body(self, client: TestClient) -> None:
        res = client.post("/rpc", json=[1, 2])

        assert res.json()["error"]["code"] == -32600

    def test_bad_envelope(self, client: TestClient) -> None:
        res = client.post("/rpc", json={"jsonrpc": "2.0", "id": 7, "method": ""})

        error = res.json()["error"]
        assert res.json()["id"] == 7
        assert error["code"] == -32600
        assert error["data"]["fields"] == ["method"]

    def test_params_must_be_object(self, client: TestClient) -> None:
        res = client.post("/rpc", json={"jsonrpc": "2.0", "id": 1, "method": "kb/spaces/list", "params": [1]})

        assert res.json()["error"]["code"] == -32600

    def test_unknown_method(self, client: TestClient) -> None:
        data = _call(client, "kb/nope")

        assert data["error"]["code"] == -32601

    def test_unknown_param(self, client: TestClient) -> None:
        data = _call(client, "kb/spaces/list", {"bogus": 1})

        assert data["error"]["code"] == -32602

    def test_registry_entries_are_callable(self) -> None:
        assert all(callable(handler) for handler, _ in _METHODS.values())
        assert RpcRequest.model_validate({"method": "kb/tree"}).jsonrpc == "2.0"


# =============================================================================
# Error Mapping
# =============================================================================


class TestErrors:
    def test_validation_error_code(self, client: TestClient) -> None:
        data = _call(client, "kb/spaces/create", {"key": "1bad", "name": "Bad"})

        assert data["error"]["code"] == -32000
        assert data["error"]["data"]["field"] == "key"

    def test_not_found_code(self, client: TestClient) -> None:
        data = _call(client, "kb/pages/get", {"page_id": "page-missing"})

        assert data["error"]["code"] == -32003
        assert data["error"]["data"]["resource_type"] == "page"

    def test_missing_lookup_params(self, client: TestClient) -> None:
        data = _call(client, "kb/spaces/get", {})

        assert data["error"]["code"] == -32602


# =============================================================================
# Flows
# =============================================================================


class TestPageFlow:
    def test_actor_comes_from_credential(self, client: TestClient) -> None:
        space = _result(client, "kb/spaces/create", {"key": "ops", "name": "Ops", "actor_id": "mallory"})["space"]

        assert space["key"] == "OPS"
        assert space["created_by"] == "user-1"

    def test_space_listing_counts_pages(self, client: TestClient, eng: dict[str, Any]) -> None:
        _result(client, "kb/pages/create", {"space_id": eng["id"], "title": "Home"})

        spaces = _result(client, "kb/spaces/list")["spaces"]

        assert [(s["key"], s["page_count"]) for s in spaces] == [("ENG", 1)]

    def test_create_get_update(self, client: TestClient, eng: dict[str, Any]) -> None:
        parent = _result(client, "kb/pages/create", {"space_id": eng["id"], "title": "Guides"})["page"]
        page = _result(
            client,
            "kb/pages/create",
            {
                "space_id": eng["id"],
                "title": "Deploy Guide",
                "parent_id": parent["id"],
                "content": [{"type": "paragraph", "content": "Step one"}],
            },
        )["page"]

        fetched = _result(client, "kb/pages/get", {"space_key": "ENG", "slug": "deploy-guide"})["page"]
        assert fetched["id"] == page["id"]
        assert [c["title"] for c in fetched["breadcrumbs"]] == ["Guides"]
        assert fetched["attachment_count"] == 0

        updated = _result(
            client,
            "kb/pages/update",
            {"page_id": page["id"], "title": "Deploy Guide v2", "change_message": "rename"},
        )["page"]
        assert updated["version"] == 2
        assert updated["slug"] == "deploy-guide-v2"

        recent = _result(client, "kb/recent/list")["pages"]
        assert [r["page_id"] for r in recent] == [page["id"]]

    def test_bad_block_payload(self, client: TestClient, eng: dict[str, Any]) -> None:
        data = _call(
            client,
            "kb/pages/create",
            {"space_id": eng["id"], "title": "Bad", "content": [{"type": "heading", "attributes": {"level": 9}}]},
        )

        assert data["error"]["code"] == -32000

    def test_tree_move_delete(self, client: TestClient, eng: dict[str, Any]) -> None:
        a = _result(client, "kb/pages/create", {"space_id": eng["id"], "title": "A"})["page"]
        b = _result(client, "kb/pages/create", {"space_id": eng["id"], "title": "B"})["page"]

        _result(client, "kb/pages/move", {"page_id": b["id"], "target_position": 0})
        tree = _result(client, "kb/tree", {"space_id": eng["id"]})["tree"]
        assert [n["id"] for n in tree] == [b["id"], a["id"]]

        assert _result(client, "kb/pages/delete", {"page_id": a["id"]})["ok"] is True
        tree = _result(client, "kb/tree", {"space_id": eng["id"]})["tree"]
        assert [n["id"] for n in tree] == [b["id"]]

    def test_versions(self, client: TestClient, eng: dict[str, Any]) -> None:
        page = _result(client, "kb/pages/create", {"space_id": eng["id"], "title": "Doc"})["page"]
        _result(client, "kb/pages/update", {"page_id": page["id"], "title": "Doc 2"})

        versions = _result(client, "kb/versions/list", {"page_id": page["id"]})["versions"]
        assert [v["version"] for v in versions] == [2, 1]
        assert "content" not in versions[0]

        diff = _result(client, "kb/versions/compare", {"page_id": page["id"], "from_version": 1, "to_version": 2})
        assert diff["diff"]["title_changed"] is True

        restored = _result(client, "kb/versions/restore", {"page_id": page["id"], "version": 1})["page"]
        assert restored["title"] == "Doc"
        assert restored["version"] == 3

    def test_search(self, client: TestClient, eng: dict[str, Any]) -> None:
        _result(client, "kb/pages/create", {"space_id": eng["id"], "title": "Incident Review"})

        results = _result(client, "kb/search", {"query": "incident"})["results"]

        assert [r["title"] for r in results] == ["Incident Review"]

    def test_markdown_import_export(self, client: TestClient, eng: dict[str, Any]) -> None:
        imported = _result(
            client,
            "kb/pages/import_markdown",
            {"space_id": eng["id"], "title": "Imported", "markdown": "## Hello\n\nWorld\n"},
        )
        assert imported["block_count"] == 2

        exported = _result(client, "kb/pages/markdown", {"page_id": imported["page"]["id"]})

        assert exported["markdown"] == "# Imported\n\n## Hello\n\nWorld\n"


class TestCollaborationFlow:
    def test_labels_comments_activity(self, client: TestClient, eng: dict[str, Any]) -> None:
        page = _result(client, "kb/pages/create", {"space_id": eng["id"], "title": "Doc"})["page"]
        label = _result(client, "kb/labels/create", {"space_id": eng["id"], "name": "Backend"})["label"]

        assert _result(client, "kb/labels/add", {"page_id": page["id"], "label_id": label["id"]})["ok"] is True
        labels = _result(client, "kb/labels/list", {"page_id": page["id"]})["labels"]
        assert [lbl["name"] for lbl in labels] == ["backend"]

        comment = _result(client, "kb/comments/add", {"page_id": page["id"], "content": "LGTM"})["comment"]
        assert comment["created_by"] == "user-1"
        assert _result(client, "kb/comments/resolve", {"comment_id": comment["id"]})["ok"] is True

        activity = _result(client, "kb/activity", {"page_id": page["id"]})["activity"]
        assert [a["action"] for a in activity] == ["commented", "labeled", "created"]

    def test_templates(self, client: TestClient, eng: dict[str, Any]) -> None:
        templates = _result(client, "kb/templates/list", {"space_id": eng["id"]})["templates"]
        assert "tpl-how-to" in [t["id"] for t in templates]

        page = _result(
            client,
            "kb/pages/create",
            {"space_id": eng["id"], "title": "How to deploy", "template_id": "tpl-how-to"},
        )["page"]
        assert page["content"][0]["type"] == "heading"

        missing = _call(client, "kb/templates/get", {"template_id": "tpl-nope"})
        assert missing["error"]["code"] == -32003
