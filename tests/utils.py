from __future__ import annotations

from typing import Any, Dict, Tuple

from fastapi.testclient import TestClient

ADMIN_PASSWORD = "correct-horse"


def admin_login(client: TestClient, password: str = ADMIN_PASSWORD) -> Tuple[Dict[str, str], Dict[str, Any]]:
    """Log in as the configured admin, returning auth headers and the login payload."""
    res = client.post("/login", json={"username": "admin", "password": password})
    assert res.status_code == 200, res.text
    data = res.json()
    return {"Authorization": f"Bearer {data['token']}"}, data


def register_device(client: TestClient, user_id: str, brand: str = "Dell", model: str = "XPS 13") -> None:
    res = client.post("/device", json={"user_id": user_id, "brand": brand, "model": model})
    assert res.status_code in (200, 201), res.text
