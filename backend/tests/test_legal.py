from __future__ import annotations

from homelab.extensions import db
from homelab.models import LegalPrivacy


def _paragraph(section: int, title: str, number: int, content: str, **extra):
    return {
        "section_number": section,
        "section_title": title,
        "paragraph_number": number,
        "paragraph_content": content,
        **extra,
    }


def test_public_privacy_policy_groups_active_paragraphs(client, app):
    with app.app_context():
        db.session.add_all(
            [
                LegalPrivacy(**_paragraph(2, "Storage", 1, "Files stay on your hardware.")),
                LegalPrivacy(**_paragraph(1, "Scope", 2, "Second scope paragraph.")),
                LegalPrivacy(**_paragraph(1, "Scope", 1, "First scope paragraph.")),
                LegalPrivacy(**_paragraph(3, "Retired", 1, "Hidden.", is_active=False)),
            ]
        )
        db.session.commit()

    response = client.get("/legal/privacy")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["total_sections"] == 2
    assert [section["section_title"] for section in payload["sections"]] == ["Scope", "Storage"]
    assert [item["content"] for item in payload["sections"][0]["paragraphs"]] == [
        "First scope paragraph.",
        "Second scope paragraph.",
    ]
    assert payload["metadata"]["version"] == "1.0"
    assert payload["metadata"]["effective_date"]


def test_admin_manages_paragraphs(client, login):
    headers = login("admin", "adminpass1")

    created = client.post("/legal/privacy", json=_paragraph(1, "Scope", 1, "Initial text."), headers=headers)
    assert created.status_code == 201
    paragraph_id = created.get_json()["paragraph"]["id"]

    updated = client.patch(f"/legal/privacy/{paragraph_id}", json={"paragraph_content": "Revised text."}, headers=headers)
    assert updated.status_code == 200
    assert updated.get_json()["paragraph"]["paragraph_content"] == "Revised text."

    assert client.delete(f"/legal/privacy/{paragraph_id}", headers=headers).status_code == 200
    assert client.get("/legal/privacy").get_json()["sections"] == []

    everything = client.get("/legal/privacy/all", headers=headers).get_json()
    assert everything["total"] == 1
    assert everything["paragraphs"][0]["is_active"] is False


def test_paragraph_validation(client, login):
    headers = login("admin", "adminpass1")

    missing = client.post("/legal/privacy", json={"section_number": 1}, headers=headers)
    assert missing.status_code == 400
    assert missing.get_json()["error"]["code"] == "MISSING_FIELD"

    empty = client.post("/legal/privacy", json={}, headers=headers)
    assert empty.get_json()["error"]["code"] == "INVALID_PAYLOAD"

    bad_number = client.post("/legal/privacy", json=_paragraph("one", "Scope", 1, "Text"), headers=headers)
    assert bad_number.status_code == 400

    assert client.patch("/legal/privacy/99999", json={"section_title": "x"}, headers=headers).status_code == 404


def test_metadata_update(client, login):
    headers = login("admin", "adminpass1")

    response = client.put(
        "/legal/privacy/metadata",
        json={"version": "2.1", "effective_date": "2026-11-01", "change_log": "Clarified retention."},
        headers=headers,
    )
    assert response.status_code == 200

    public = client.get("/legal/privacy").get_json()["metadata"]
    assert public["version"] == "2.1"
    assert public["effective_date"] == "2026-11-01"

    invalid = client.put("/legal/privacy/metadata", json={"effective_date": "soon"}, headers=headers)
    assert invalid.status_code == 400


def test_paragraph_management_requires_admin(client, login):
    headers = login()
    response = client.post("/legal/privacy", json=_paragraph(1, "Scope", 1, "Text"), headers=headers)
    assert response.status_code == 403
