from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
import urllib.request
import urllib.error


DEFAULT_BASE_URL = os.getenv("CLASSIFIEDS_BASE_URL", "http://localhost:8000")
DEFAULT_CUSTOM_TOKEN = os.getenv("CLASSIFIEDS_CUSTOM_TOKEN", "")

DEFAULT_TIMEOUT_SECONDS = 30


def http_post(url: str, payload: dict[str, Any], session_token: str | None = None) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if session_token:
        headers["X-Session-Token"] = session_token
    req = urllib.request.Request(url=url, data=data, method="POST", headers=headers)
    try:
        with urllib.request.urlopen(req, timeout=DEFAULT_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        body = ""
        try:
            body = e.read().decode("utf-8")
        except Exception:
            body = ""
        print(f"HTTP {e.code} {e.reason} for {url}", file=sys.stderr)
        if body:
            print(body, file=sys.stderr)
        return {"error": {"status": e.code, "reason": e.reason, "body": body}}
    except urllib.error.URLError as e:
        print(f"Network error for {url}: {e}", file=sys.stderr)
        return {"error": {"reason": str(e)}}


def main() -> int:
    p = argparse.ArgumentParser(description="Seed listings into a running classifieds API.")
    p.add_argument("--file", required=True, help="path to json file: {\"items\": [listing, ...]}")
    p.add_argument("--base-url", default=DEFAULT_BASE_URL)
    p.add_argument("--custom-token", default=DEFAULT_CUSTOM_TOKEN, help="post as this identity (anonymous if omitted)")
    p.add_argument("--dry-run", action="store_true", help="validate the file and stop")
    args = p.parse_args()

    try:
        with open(args.file, "r", encoding="utf-8") as f:
            body = json.load(f)
    except Exception as e:
        print(f"Failed to read JSON file: {e}", file=sys.stderr)
        return 2

    if not isinstance(body, dict) or not isinstance(body.get("items"), list):
        print("Invalid payload: expected JSON object with an 'items' list.", file=sys.stderr)
        return 2

    items = body["items"]
    if args.dry_run:
        print(f"{len(items)} listings ready to seed")
        return 0

    base_url = args.base_url.rstrip("/")
    session = http_post(f"{base_url}/v1/auth/sign-in", {"custom_token": args.custom_token or None})
    if "error" in session:
        return 1
    if session.get("fallback"):
        print("Custom token rejected; seeding as an anonymous identity.", file=sys.stderr)

    failures = 0
    for item in items:
        resp = http_post(f"{base_url}/v1/listings", item, session["session_token"])
        if "error" in resp:
            failures += 1
            continue
        print(f"{resp['id']}  {resp['price_display']:>14}  {resp['title']}")

    print(f"seeded {len(items) - failures}/{len(items)} as {session['identity_id']}")
    return 0 if failures == 0 else 1

if __name__ == "__main__":
    raise SystemExit(main())
