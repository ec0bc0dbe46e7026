from __future__ import annotations

from homelab.common.client_info import parse_user_agent, real_ip_address


CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/126.0.0.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1"
)
FIREFOX_ANDROID = "Mozilla/5.0 (Android 14; Mobile; rv:127.0) Gecko/127.0 Firefox/127.0"
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:127.0) Gecko/20100101 Firefox/127.0"


def test_parse_desktop_browsers():
    assert parse_user_agent(CHROME_WINDOWS) == {
        "browser": "Google Chrome",
        "os": "Windows 10/11",
        "device_type": "desktop",
    }
    assert parse_user_agent(EDGE_WINDOWS)["browser"] == "Microsoft Edge"
    assert parse_user_agent(FIREFOX_LINUX) == {
        "browser": "Mozilla Firefox",
        "os": "Linux",
        "device_type": "desktop",
    }


def test_parse_mobile_and_tablet():
    assert parse_user_agent(SAFARI_IPHONE) == {"browser": "Apple Safari", "os": "iOS 17", "device_type": "mobile"}
    assert parse_user_agent(FIREFOX_ANDROID) == {
        "browser": "Mozilla Firefox",
        "os": "Android 14",
        "device_type": "mobile",
    }
    ipad = parse_user_agent(SAFARI_IPAD)
    assert ipad["os"] == "iPadOS"
    assert ipad["device_type"] == "tablet"


def test_parse_unknown_agent_falls_back():
    assert parse_user_agent(None) == {"browser": "Unknown", "os": "Unknown", "device_type": "unknown"}
    assert parse_user_agent("curl/8.5.0") == {"browser": "Unknown", "os": "Unknown", "device_type": "unknown"}


def test_real_ip_address_priority():
    headers = {
        "CF-Connecting-IP": "203.0.113.9",
        "X-Real-IP": "198.51.100.2",
        "X-Forwarded-For": "192.0.2.1, 10.0.0.1",
    }
    assert real_ip_address(headers, "127.0.0.1") == "203.0.113.9"

    headers.pop("CF-Connecting-IP")
    assert real_ip_address(headers, "127.0.0.1") == "198.51.100.2"

    headers.pop("X-Real-IP")
    assert real_ip_address(headers, "127.0.0.1") == "192.0.2.1"

    assert real_ip_address({}, "127.0.0.1") == "127.0.0.1"


def test_real_ip_address_ignores_invalid_values():
    assert real_ip_address({"X-Forwarded-For": "not-an-ip"}, "::1") == "::1"
    assert real_ip_address({"X-Real-IP": "garbage"}, None) == "unknown"
