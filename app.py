#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
import signal
import subprocess
import sys
import time
import urllib.error
import urllib.request
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parent
BACKEND_DIR = ROOT_DIR / "backend"
RUNTIME_DIR = ROOT_DIR / ".runtime"
BACKEND_VENV_DIR = RUNTIME_DIR / "backend-venv"


def run_checked(cmd: list[str], cwd: Path | None = None, env: dict[str, str] | None = None) -> None:
    print(f"[setup] {' '.join(cmd)}")
    subprocess.run(cmd, cwd=cwd, env=env, check=True)


def backend_python_executable() -> Path:
    if os.name == "nt":
        return BACKEND_VENV_DIR / "Scripts" / "python.exe"
    return BACKEND_VENV_DIR / "bin" / "python"


def ensure_backend_runtime() -> Path:
    python_path = backend_python_executable()
    if python_path.exists():
        return python_path

    RUNTIME_DIR.mkdir(parents=True, exist_ok=True)
    run_checked([sys.executable, "-m", "venv", str(BACKEND_VENV_DIR)])
    if not python_path.exists():
        raise RuntimeError("Failed to create backend runtime environment.")
    return python_path


def backend_dependencies_installed(python_executable: Path) -> bool:
    check_cmd = [
        str(python_executable),
        "-c",
        "import flask, flask_sqlalchemy, flask_migrate, flask_jwt_extended, flask_cors, dotenv, argon2, filetype, homelab",
    ]
    return subprocess.run(check_cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL).returncode == 0


def ensure_backend_dependencies(python_executable: Path, auto_install: bool) -> None:
    if backend_dependencies_installed(python_executable):
        return

    if not auto_install:
        raise RuntimeError("Backend dependencies are missing. Run: pip install -e .")

    run_checked([str(python_executable), "-m", "pip", "install", "-e", str(ROOT_DIR)])


def seed_admin(python_executable: Path, username: str, email: str, password: str) -> None:
    env = os.environ.copy()
    env["ADMIN_USERNAME"] = username
    env["ADMIN_EMAIL"] = email
    env["ADMIN_PASSWORD"] = password
    run_checked([str(python_executable), "seed.py"], cwd=BACKEND_DIR, env=env)


def wait_for_http(url: str, timeout_seconds: int = 30) -> None:
    start = time.time()
    while time.time() - start < timeout_seconds:
        try:
            with urllib.request.urlopen(url, timeout=2) as response:
                if 200 <= response.status < 500:
                    return
        except (urllib.error.URLError, TimeoutError):
            time.sleep(0.4)
    raise RuntimeError(f"Timed out waiting for {url}")


def terminate_process(process: subprocess.Popen[str]) -> None:
    if process.poll() is not None:
        return
    process.terminate()
    try:
        process.wait(timeout=6)
    except subprocess.TimeoutExpired:
        process.kill()


def start_backend(python_executable: Path, host: str, port: int) -> subprocess.Popen[str]:
    env = os.environ.copy()
    env["FLASK_DEBUG"] = "0"
    env["PYTHONUNBUFFERED"] = "1"
    env.setdefault("FRONTEND_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    return subprocess.Popen(
        [
            str(python_executable),
            "-m",
            "flask",
            "--app",
            "wsgi:app",
            "run",
            "--host",
            host,
            "--port",
            str(port),
        ],
        cwd=BACKEND_DIR,
        env=env,
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Start the home-lab backend for local development.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument("--admin-user", default="admin")
    parser.add_argument("--admin-email", default="admin@homelab.local")
    parser.add_argument("--admin-password", default="admin1234")
    parser.add_argument("--skip-seed", action="store_true", help="Do not create or update the admin account.")
    parser.add_argument("--no-install", action="store_true", help="Do not auto-install missing dependencies.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    if not BACKEND_DIR.exists():
        raise RuntimeError("Expected a backend/ directory in the project root.")

    backend_python = ensure_backend_runtime()
    ensure_backend_dependencies(backend_python, auto_install=not args.no_install)
    if not args.skip_seed:
        seed_admin(backend_python, args.admin_user, args.admin_email, args.admin_password)

    backend = start_backend(backend_python, args.host, args.port)
    stop_requested = False

    def handle_signal(signum, frame):  # type: ignore[no-untyped-def]
        nonlocal stop_requested
        stop_requested = True

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        wait_for_http(f"http://{args.host}:{args.port}/health")
        print(f"[ready] Backend listening on http://{args.host}:{args.port}")
        while not stop_requested and backend.poll() is None:
            time.sleep(0.5)
    finally:
        terminate_process(backend)

    return backend.returncode or 0


if __name__ == "__main__":
    sys.exit(main())
