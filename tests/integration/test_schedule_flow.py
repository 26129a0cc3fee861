import httpx
import os
import uuid
import pytest

# Where the deployed service is reachable, including the protected app path
SCHEDULE_API_URL = os.getenv("SCHEDULE_API_URL", "http://localhost:8000/mjj/api")
SCHEDULE_PASSWORD = os.getenv("SCHEDULE_PASSWORD", "mjj")

def _ensure_integration_ready():
    if os.getenv("RUN_INTEGRATION_TESTS") != "1":
        pytest.skip("Integration tests disabled. Set RUN_INTEGRATION_TESTS=1 to run.")
    try:
        httpx.get(SCHEDULE_API_URL.rsplit("/", 2)[0] + "/health", timeout=2.0)
    except Exception:
        pytest.skip("Schedule service not reachable.")

def test_save_backup_and_restore_flow():
    """
    Walks through login, two saves, the backup list and a restore
    against a running instance of the schedule service.
    """
    _ensure_integration_ready()
    marker = uuid.uuid4().hex[:8]
    first_text = f"2025年10月10日|13:30-20:00|個案{marker}|地點:大廈"
    second_text = f"10月11日|09:00|個案{marker}|備註"

    with httpx.Client(base_url=SCHEDULE_API_URL, timeout=10.0) as client:
        # 1. Log in; the session cookie is kept by the client
        login_response = client.post("/login", json={"password": SCHEDULE_PASSWORD})
        assert login_response.status_code == 200
        print("Login successful, session cookie received.")

        # 2. Save two versions of the schedule
        for text in (first_text, second_text):
            save_response = client.post("/schedule", content=text.encode("utf-8"))
            assert save_response.status_code == 200

        current = client.get("/schedule").json()
        assert current["rawText"] == second_text
        assert current["events"][0]["caseName"] == f"個案{marker}"

        # 3. Both saves are in the backup history, newest first
        backups = client.get("/backups").json()
        assert backups[0]["preview"].startswith(second_text)
        first_backup = next(b for b in backups if b["preview"].startswith(first_text))

        # 4. Restore the first save
        restore_response = client.post("/restore", json={"backupId": first_backup["id"]})
        assert restore_response.status_code == 200
        assert client.get("/schedule").json()["rawText"] == first_text
        print(f"Restored backup {first_backup['id']}.")
