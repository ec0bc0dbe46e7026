from __future__ import annotations

import ipaddress
import re
from collections.abc import Mapping
from typing import Any


IP_HEADERS = ("CF-Connecting-IP", "X-Real-IP", "X-Forwarded-For")

BROWSER_RULES: list[tuple[re.Pattern[str], re.Pattern[str] | None, str]] = [
    (re.compile(r"MSIE|Trident", re.I), None, "Internet Explorer"),
    (re.compile(r"Edge|Edg/", re.I), None, "Microsoft Edge"),
    (re.compile(r"OPR/|Opera", re.I), None, "Opera"),
    (re.compile(r"Firefox", re.I), None, "Mozilla Firefox"),
    (re.compile(r"Chrome", re.I), None, "Google Chrome"),
    (re.compile(r"Safari", re.I), re.compile(r"Chrome|Chromium", re.I), "Apple Safari"),
]

# Mobile platforms first: their user agents also mention Linux or Mac OS X.
OS_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"Android (\d+)", re.I), "Android {0}"),
    (re.compile(r"Android", re.I), "Android"),
    (re.compile(r"iPhone OS (\d+)", re.I), "iOS {0}"),
    (re.compile(r"iPad", re.I), "iPadOS"),
    (re.compile(r"Windows NT 10", re.I), "Windows 10/11"),
    (re.compile(r"Windows NT 6\.3", re.I), "Windows 8.1"),
    (re.compile(r"Windows NT 6\.2", re.I), "Windows 8"),
    (re.compile(r"Windows NT 6\.1", re.I), "Windows 7"),
    (re.compile(r"Windows", re.I), "Windows"),
    (re.compile(r"Mac OS X 10[._](\d+)", re.I), "macOS {0}"),
    (re.compile(r"Mac OS X", re.I), "macOS"),
    (re.compile(r"Linux", re.I), "Linux"),
]

TABLET_PATTERN = re.compile(r"Tablet|iPad", re.I)
MOBILE_PATTERN = re.compile(r"Mobile|Android|iPhone", re.I)
DESKTOP_PATTERN = re.compile(r"Windows|Macintosh|Linux", re.I)


def parse_user_agent(user_agent: str | None) -> dict[str, str]:
    result = {"browser": "Unknown", "os": "Unknown", "device_type": "unknown"}
    ua = user_agent or ""
    if not ua:
        return result

    for pattern, excluded, name in BROWSER_RULES:
        if pattern.search(ua) and not (excluded and excluded.search(ua)):
            result["browser"] = name
            break

    for pattern, label in OS_RULES:
        match = pattern.search(ua)
        if match:
            result["os"] = label.format(*match.groups())
            break

    if TABLET_PATTERN.search(ua):
        result["device_type"] = "tablet"
    elif MOBILE_PATTERN.search(ua):
        result["device_type"] = "mobile"
    elif DESKTOP_PATTERN.search(ua):
        result["device_type"] = "desktop"

    return result


def _valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def real_ip_address(headers: Mapping[str, Any], remote_addr: str | None) -> str:
    candidates = [headers.get(name) for name in IP_HEADERS]
    candidates.append(remote_addr)

    for raw in candidates:
        if not raw:
            continue
        value = str(raw).split(",")[0].strip()
        if _valid_ip(value):
            return value
    return "unknown"
