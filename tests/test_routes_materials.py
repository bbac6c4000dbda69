from typing import Callable

from fastapi.testclient import TestClient


def test_create_material_with_explicit_chunks(material: dict):
    assert material["name"] == "Weather"
    assert [c["name"] for c in material["chunks"]] == ["Today", "Tomorrow"]
    assert [c["order"] for c in material["chunks"]] == [0, 1]
    for chunk in material["chunks"]:
        assert chunk["statistics"]["attempts"] == 0
        assert chunk["statistics"]["success_rate"] == 0


def test_create_material_splits_content_automatically(client: TestClient):
    rv = client.post(
        "/materials",
        json={"name": "Numbered", "content": "(1) first point\n(2) second point"},
    )
    assert rv.status_code == 201
    chunks = rv.json()["chunks"]
    assert [c["content"] for c in chunks] == ["first point", "second point"]
    assert [c["name"] for c in chunks] == ["チャンク1: first po...", "チャンク2: second p..."]


def test_create_material_without_chunks_is_rejected(client: TestClient):
    rv = client.post("/materials", json={"name": "Blank", "content": "   \n  "})
    assert rv.status_code == 422


def test_list_and_get_material(client: TestClient, material: dict):
    listed = client.get("/materials").json()
    assert [m["id"] for m in listed] == [material["id"]]

    rv = client.get(f"/materials/{material['id']}")
    assert rv.status_code == 200
    assert rv.json()["content"] == material["content"]


def test_unknown_material_is_404(client: TestClient):
    assert client.get("/materials/not-an-id").status_code == 404


def test_other_learner_cannot_read_material(
    client: TestClient, material: dict, login_as: Callable[[dict], None], other_learner: dict
):
    login_as(other_learner)
    assert client.get(f"/materials/{material['id']}").status_code == 403
    assert client.get("/materials").json() == []


def test_update_and_rename_chunk(client: TestClient, material: dict):
    rv = client.patch(f"/materials/{material['id']}", json={"name": "Forecast"})
    assert rv.status_code == 200
    assert rv.json()["name"] == "Forecast"

    chunk_id = material["chunks"][0]["id"]
    rv = client.patch(f"/materials/{material['id']}/chunks/{chunk_id}", json={"name": "Sunny"})
    assert rv.status_code == 200
    assert rv.json()["chunks"][0]["name"] == "Sunny"

    rv = client.patch(f"/materials/{material['id']}/chunks/missing", json={"name": "x"})
    assert rv.status_code == 404


def test_material_hints(client: TestClient, material: dict):
    rv = client.get(f"/materials/{material['id']}/hints")
    assert rv.json() == {"hints": "今日は晴れです\n\n明日は雨です"}


def test_delete_material_removes_sessions(client: TestClient, material: dict, store):
    chunk_id = material["chunks"][0]["id"]
    client.post(f"/materials/{material['id']}/chunks/{chunk_id}/study", json={"level": 2})
    assert store.study_sessions

    rv = client.delete(f"/materials/{material['id']}")
    assert rv.status_code == 204
    assert client.get(f"/materials/{material['id']}").status_code == 404
    assert not store.study_sessions


def test_edit_chunk_content_rebuilds_material_text(client: TestClient, material: dict):
    chunk = material["chunks"][1]
    session_id = client.post(
        f"/materials/{material['id']}/chunks/{chunk['id']}/study", json={"level": 2}
    ).json()["session"]["id"]
    client.post(f"/study-sessions/{session_id}/attempt", json={"input_text": "明日は雨です"})

    rv = client.patch(
        f"/materials/{material['id']}/chunks/{chunk['id']}",
        json={"content": "  明日は曇りです \n"},
    )
    assert rv.status_code == 200
    updated = rv.json()
    assert updated["chunks"][1]["content"] == "明日は曇りです"
    assert updated["chunks"][1]["name"] == "Tomorrow"
    assert updated["chunks"][1]["statistics"]["attempts"] == 1
    assert updated["content"] == "今日は晴れです\n\n明日は曇りです"

    hints = client.get(f"/materials/{material['id']}/hints").json()["hints"]
    assert hints == "今日は晴れです\n\n明日は曇りです"


def test_edit_chunk_rejects_blank_content_and_name(client: TestClient, material: dict):
    chunk_id = material["chunks"][0]["id"]
    url = f"/materials/{material['id']}/chunks/{chunk_id}"
    assert client.patch(url, json={"content": " \n "}).status_code == 422
    assert client.patch(url, json={"name": "   "}).status_code == 422
    assert client.get(f"/materials/{material['id']}").json()["chunks"][0]["name"] == "Today"


def test_edit_chunk_rejects_oversized_content(client: TestClient, material: dict):
    chunk_id = material["chunks"][0]["id"]
    rv = client.patch(
        f"/materials/{material['id']}/chunks/{chunk_id}", json={"content": "あ" * 10001}
    )
    assert rv.status_code == 422


def test_material_update_only_renames(client: TestClient, material: dict):
    rv = client.patch(
        f"/materials/{material['id']}", json={"name": "Forecast", "content": "ignored"}
    )
    assert rv.status_code == 200
    assert rv.json()["content"] == material["content"]


def test_blank_names_are_rejected(client: TestClient, material: dict):
    rv = client.post("/materials", json={"name": "  ", "content": "text"})
    assert rv.status_code == 422

    rv = client.post(
        "/materials",
        json={"name": "Named", "content": "text", "chunks": [{"name": " \t", "content": "text"}]},
    )
    assert rv.status_code == 422

    assert client.patch(f"/materials/{material['id']}", json={"name": "   "}).status_code == 422


def test_names_are_stored_trimmed(client: TestClient):
    rv = client.post(
        "/materials",
        json={"name": " Poem ", "content": "x", "chunks": [{"name": " Verse ", "content": " x "}]},
    )
    assert rv.status_code == 201
    assert rv.json()["name"] == "Poem"
    chunk = rv.json()["chunks"][0]
    assert (chunk["name"], chunk["content"]) == ("Verse", "x")


def test_oversized_explicit_chunk_is_rejected(client: TestClient):
    rv = client.post(
        "/materials",
        json={
            "name": "Long",
            "content": "short",
            "chunks": [{"name": "Big", "content": "あ" * 10001}],
        },
    )
    assert rv.status_code == 422
    assert "chunks[0].content" in rv.json()["detail"]
    assert client.get("/materials").json() == []
