from __future__ import annotations

from fastapi.testclient import TestClient

from proposal_engine.main import app


def _payload() -> dict[str, object]:
    return {
        "template": {"sections": [{"key": "context", "label": "Context"}, {"key": "wp1", "label": "WP1"}]},
        "content": {
            "context": "The region faces high youth unemployment and few training options.",
            "gender_equality": "Half of the trainer positions are reserved for women.",
        },
        "records": {"workPackages": [{"name": "Research"}, {"name": "Pilot"}]},
        "layout": None,
    }


def test_assemble_returns_sections_and_report() -> None:
    with TestClient(app) as client:
        response = client.post("/assemble", json=_payload())

    assert response.status_code == 200
    body = response.json()
    assert [section["id"] for section in body["sections"]] == [
        "context",
        "anchor/wp_overview",
        "wp1",
        "work_package_2",
        "gender_equality",
    ]
    assert body["unmatched_keys"] == ["gender_equality"]
    assert body["synthesized_anchors"] == ["anchor/wp_overview"]
    assert body["sections"][2]["title"] == "Research"
    assert body["sections"][2]["wp_idx"] == 0


def test_assemble_tolerates_malformed_parts() -> None:
    with TestClient(app) as client:
        response = client.post("/assemble", json={"template": "oops", "content": [1, 2], "records": 5})

    assert response.status_code == 200
    assert response.json() == {"sections": [], "unmatched_keys": [], "synthesized_anchors": []}


def test_structure_returns_typed_blocks() -> None:
    with TestClient(app) as client:
        response = client.post("/structure", json={"richtext": "BudgetTotal: 50000Duration: 12 months"})

    assert response.status_code == 200
    assert response.json()["blocks"] == [
        {"kind": "labeled_paragraph", "label": "Budget Total", "value": "50000", "bullet": False},
        {"kind": "labeled_paragraph", "label": "Duration", "value": "12 months", "bullet": False},
    ]


def test_export_markdown_returns_document() -> None:
    payload = _payload() | {"title": "Skills for Rural Youth"}
    with TestClient(app) as client:
        response = client.post("/export/markdown", json=payload)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/markdown")
    assert response.text.startswith("# Skills for Rural Youth\n")
    assert "| WP2 | Pilot | 0 | 0 |" in response.text


def test_export_markdown_rejects_blank_title() -> None:
    payload = _payload() | {"title": " "}
    with TestClient(app) as client:
        response = client.post("/export/markdown", json=payload)

    assert response.status_code == 422
    assert response.json()["detail"]["errors"] == ["Document title is required."]


def test_export_markdown_requires_title_field() -> None:
    with TestClient(app) as client:
        response = client.post("/export/markdown", json=_payload())

    assert response.status_code == 422
