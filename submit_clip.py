#!/usr/bin/env python3
"""
Command-line client for the Clip Relay API.

Usage:
    python submit_clip.py https://x.com/a/status/5                      # Whole video
    python submit_clip.py https://x.com/a/status/5 --start 00:00:05 --end 00:00:10
    python submit_clip.py https://x.com/a/status/5 --poll                # Use the job API
    python submit_clip.py https://x.com/a/status/5 --save clips/        # Download the clip

Reads BASE_URL from the environment or a .env file (default http://localhost:9000).
"""

import argparse
import os
import sys
import time
from pathlib import Path

import requests
from dotenv import load_dotenv

# Load .env file
load_dotenv()

BASE_URL = os.getenv("BASE_URL", "http://localhost:9000").rstrip("/")
REQUEST_TIMEOUT = 900  # POST /clip waits for download + trim


def build_payload(tweet_url: str, start: str = None, end: str = None) -> dict:
    payload = {"tweetUrl": tweet_url}
    if start:
        payload["start"] = start
    if end:
        payload["end"] = end
    return payload


def clip_sync(payload: dict):
    """Submit to POST /clip and wait for the download URL."""
    print(f"\n🚀 Clipping {payload['tweetUrl']}")
    print(f"   Range: {payload.get('start', 'start')} - {payload.get('end', 'end')}")

    response = requests.post(f"{BASE_URL}/clip", json=payload, timeout=REQUEST_TIMEOUT)
    if response.status_code != 200:
        print(f"❌ Clip failed: {response.status_code} {response.text}")
        return None

    download_url = response.json()["downloadUrl"]
    print(f"✅ Clip ready: {download_url}")
    return download_url


def submit_job(payload: dict):
    """Submit to POST /jobs and return the job id."""
    response = requests.post(f"{BASE_URL}/jobs", json=payload, timeout=30)
    if response.status_code != 202:
        print(f"❌ Failed to submit job: {response.status_code}")
        print(response.text)
        return None

    job_id = response.json()["jobId"]
    print(f"✅ Job submitted: {job_id}")
    return job_id


def poll_job_status(job_id: str, poll_interval: float = 2):
    """Poll job status until it succeeds or fails."""
    print(f"\n⏳ Waiting for job {job_id} to complete...")

    start_time = time.time()
    last_status = ""

    while True:
        response = requests.get(f"{BASE_URL}/jobs/{job_id}", timeout=30)
        if response.status_code != 200:
            print(f"❌ Failed to get job status: {response.status_code}")
            return None

        status = response.json()
        job_status = status.get("status", "")

        if job_status != last_status:
            elapsed = time.time() - start_time
            print(f"   [{elapsed:6.1f}s] {job_status}")
            last_status = job_status

        if job_status == "succeeded":
            print(f"\n✅ Job completed in {time.time() - start_time:.1f}s!")
            return status.get("downloadUrl")
        elif job_status == "failed":
            print(f"\n❌ Job failed: {status.get('error')}")
            return None

        time.sleep(poll_interval)


def save_clip(download_url: str, output_dir: Path) -> Path:
    """Download the clip into output_dir."""
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / download_url.rsplit("/", 1)[-1]

    with requests.get(download_url, stream=True, timeout=REQUEST_TIMEOUT) as response:
        response.raise_for_status()
        with open(output_path, "wb") as f:
            for chunk in response.iter_content(chunk_size=1024 * 1024):
                f.write(chunk)

    size_mb = output_path.stat().st_size / 1024 / 1024
    print(f"📥 Saved {output_path} ({size_mb:.1f} MB)")
    return output_path


def main():
    parser = argparse.ArgumentParser(description="Clip a video from a social-media post")
    parser.add_argument("tweet_url", help="URL of the post containing the video")
    parser.add_argument("--start", default=None, help="Start offset, e.g. 00:00:05")
    parser.add_argument("--end", default=None, help="End offset, e.g. 00:00:10")
    parser.add_argument("--poll", action="store_true", help="Use POST /jobs and poll instead of waiting")
    parser.add_argument("--save", type=Path, default=None, help="Directory to download the clip into")
    args = parser.parse_args()

    payload = build_payload(args.tweet_url, args.start, args.end)

    if args.poll:
        job_id = submit_job(payload)
        download_url = poll_job_status(job_id) if job_id else None
    else:
        download_url = clip_sync(payload)

    if download_url is None:
        sys.exit(1)

    if args.save:
        save_clip(download_url, args.save)


if __name__ == "__main__":
    main()
