from __future__ import annotations

from homelab.preferences.routes import _sanitize_homelab_config


def test_sanitize_drops_unknown_and_invalid_values():
    assert _sanitize_homelab_config(
        {
            "theme": "neon",
            "clock_format": "12",
            "color_accessibility": "high_contrast",
            "consent_privacy": 0,
            "preferences": '{"widgets": ["clock"]}',
            "unexpected": True,
        }
    ) == {
        "clock_format": "12",
        "color_accessibility": "high_contrast",
        "consent_privacy": False,
        "preferences": {"widgets": ["clock"]},
    }
    assert _sanitize_homelab_config({"clock_format": "eleven", "preferences": "[1, 2]"}) == {
        "clock_format": "24",
        "preferences": {},
    }


def test_defaults_before_anything_is_stored(client, login):
    response = client.get("/homelab/config", headers=login())
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["stored"] is False
    assert payload["config"]["theme"] == "dark"
    assert payload["config"]["consent_privacy"] is True


def test_update_and_read_back(client, login):
    headers = login()

    first = client.put("/homelab/config", json={"theme": "light", "preferences": {"dock": "left"}}, headers=headers)
    assert first.status_code == 200
    assert first.get_json()["config"]["theme"] == "light"

    client.put("/homelab/config", json={"seen_homelab_modal": True}, headers=headers)

    stored = client.get("/homelab/config", headers=headers).get_json()
    assert stored["stored"] is True
    assert stored["config"]["theme"] == "light"
    assert stored["config"]["seen_homelab_modal"] is True
    assert stored["config"]["preferences"] == {"dock": "left"}

    other = client.get("/homelab/config", headers=login("bob", "bobpass123")).get_json()
    assert other["stored"] is False


def test_update_rejects_empty_or_malformed_bodies(client, login):
    headers = login()

    malformed = client.put("/homelab/config", data="{not json", content_type="application/json", headers=headers)
    assert malformed.status_code == 400
    assert malformed.get_json()["error"]["code"] == "INVALID_JSON"

    nothing_valid = client.put("/homelab/config", json={"theme": "neon"}, headers=headers)
    assert nothing_valid.status_code == 400
    assert nothing_valid.get_json()["error"]["code"] == "NO_CHANGES"
