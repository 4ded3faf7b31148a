import os

import httpx

BASE_URL = os.getenv("SMARTREC_URL", "http://localhost:8000")


def main():
    with httpx.Client(base_url=BASE_URL, timeout=10.0) as client:
        response = client.get("/health")
        assert response.status_code == 200, f"Expected 200, got {response.status_code}"
        assert response.json() == {"status": "ok"}
        print("Health: ok")

        metrics = client.get("/metrics").json()
        print(f"Metrics: {metrics}")

        sessions = client.get("/sessions").json()
        assert isinstance(sessions, list)
        print(f"{len(sessions)} archived session(s)")

        for summary in sessions[:3]:
            session = client.get(f"/sessions/{summary['id']}").json()
            print(f"  {session['title']} ({session['date']}, {session['duration']}s): "
                  f"{len(session['segments'])} segment(s)")

        missing = client.get("/sessions/does-not-exist")
        assert missing.status_code == 404, f"Expected 404, got {missing.status_code}"

    print("\nAPI smoke test passed!")


if __name__ == "__main__":
    main()
