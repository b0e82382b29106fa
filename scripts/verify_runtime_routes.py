import json
import os

import httpx

CHUNK_SIZE = 256 * 1024


def _upload_resumable(client: httpx.Client, payload: bytes) -> int:
    created = client.post(
        "/v1/videos?uploadType=resumable",
        json={"title": "runtime-check", "tags": ["smoke"]},
        headers={"X-Upload-Content-Length": str(len(payload)), "X-Upload-Content-Type": "video/mp4"},
    )
    print(f"[INFO] POST /v1/videos status={created.status_code}")
    if created.status_code != 201:
        print(f"[FAIL] could not create video: {created.text}")
        return 2
    video_id = created.json()["id"]

    for start in range(0, len(payload), CHUNK_SIZE):
        chunk = payload[start : start + CHUNK_SIZE]
        end = start + len(chunk) - 1
        response = client.put(
            f"/upload/v1/videos/{video_id}?uploadType=resumable",
            content=chunk,
            headers={"Content-Range": f"bytes {start}-{end}/{len(payload)}"},
        )
        print(f"[INFO] PUT bytes {start}-{end} status={response.status_code}")
        if response.status_code not in (200, 206):
            print(f"[FAIL] chunk rejected: {response.text}")
            return 3

    video = client.get(f"/v1/videos/{video_id}").json()
    if video.get("status") != "completed":
        print(f"[FAIL] video {video_id} not completed: {json.dumps(video, sort_keys=True)}")
        return 4
    print(f"[OK] video {video_id} completed with parts {video['received_parts']}")
    return 0


def main() -> int:
    base_url = os.getenv("VERIFY_BASE_URL", "http://127.0.0.1:8000").rstrip("/")
    print(f"Checking runtime at {base_url}")
    with httpx.Client(base_url=base_url, timeout=30.0) as client:
        try:
            health = client.get("/health")
        except httpx.HTTPError as exc:
            print(f"[FAIL] Could not connect to service: {exc}")
            return 1

        print(f"[INFO] /health status={health.status_code}")
        if health.status_code != 200:
            print("[FAIL] /health is not healthy.")
            return 1

        version = client.get("/version")
        print(f"[INFO] /version status={version.status_code} X-VOD-App-Version={version.headers.get('X-VOD-App-Version')}")
        if version.status_code == 200:
            print(f"[OK] version payload: {json.dumps(version.json(), sort_keys=True)}")

        size = int(os.getenv("VERIFY_VIDEO_BYTES", str(2 * CHUNK_SIZE + 1000)))
        return _upload_resumable(client, os.urandom(size))


if __name__ == "__main__":
    raise SystemExit(main())
