"""
Connectivity diagnostic for the marketplace's Supabase project.

Checks, in order:
1. SUPABASE_URL / SUPABASE_KEY are present and the URL looks like a project URL
2. The project host resolves in DNS
3. The auth service answers its health endpoint
4. profiles, tutor_portfolios and sessions can each be read over REST

Usage:
    python scripts/check_supabase_tables.py
"""

import os
import re
import socket
from typing import Dict
from urllib.parse import urlparse

import requests
from dotenv import load_dotenv

TABLES = ("profiles", "tutor_portfolios", "sessions")


def check_url_format(url: str) -> bool:
    """Check if URL has correct Supabase format."""
    if re.match(r"https://[a-z0-9]{20}\.supabase\.co/?$", url):
        print("✅ URL format is valid")
        return True
    print("⚠️  URL does not look like a hosted project URL (https://<ref>.supabase.co)")
    print(f"   Your URL: {url}")
    return False


def check_dns(hostname: str) -> bool:
    print(f"\n🔍 Resolving {hostname}")
    try:
        info = socket.getaddrinfo(hostname, 443, proto=socket.IPPROTO_TCP)
    except socket.gaierror as e:
        print(f"❌ DNS resolution FAILED: {e}")
        return False
    print(f"✅ DNS resolves to: {', '.join(sorted({addr[4][0] for addr in info}))}")
    return True


def check_auth_health(url: str, api_key: str) -> bool:
    print("\n🌐 Auth health endpoint")
    try:
        response = requests.get(f"{url}/auth/v1/health", headers={"apikey": api_key}, timeout=10)
    except requests.exceptions.RequestException as e:
        print(f"❌ HTTP connection FAILED: {e}")
        return False
    if response.status_code == 200:
        print("✅ Auth service reachable")
        return True
    print(f"⚠️  Auth health returned {response.status_code}: {response.text[:200]}")
    return False


def check_tables(url: str, api_key: str) -> Dict[str, bool]:
    """Read one row from each marketplace table."""
    headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}
    results = {}
    for table in TABLES:
        try:
            response = requests.get(
                f"{url}/rest/v1/{table}",
                params={"select": "*", "limit": 1},
                headers=headers,
                timeout=10,
            )
        except requests.exceptions.RequestException as e:
            print(f"❌ {table:18s} request failed: {e}")
            results[table] = False
            continue
        ok = response.status_code == 200
        detail = f"{len(response.json())} row(s) visible" if ok else response.text[:120]
        print(f"{'✅' if ok else '❌'} {table:18s} {response.status_code} {detail}")
        results[table] = ok
    return results


def main() -> int:
    print("=" * 70)
    print("🔍 TUTOR MARKETPLACE - SUPABASE DIAGNOSTICS")
    print("=" * 70)

    load_dotenv()
    load_dotenv('../.env')

    url = (os.getenv("SUPABASE_URL") or "").rstrip("/")
    key = os.getenv("SUPABASE_KEY") or os.getenv("SUPABASE_SERVICE_KEY")

    print(f"   URL: {url or None}")
    print(f"   Key: {key[:12]}... (truncated)" if key else "   Key: None")
    if not url or not key:
        print("\n❌ Missing SUPABASE_URL or SUPABASE_KEY in .env")
        return 1

    check_url_format(url)
    if not check_dns(urlparse(url).hostname):
        return 1

    auth_ok = check_auth_health(url, key)

    print("\n📋 Tables")
    tables = check_tables(url, key)

    all_pass = auth_ok and all(tables.values())
    print("\n" + "=" * 70)
    print("✅ ALL CHECKS PASSED" if all_pass else "❌ SOME CHECKS FAILED - see above")
    print("=" * 70)
    return 0 if all_pass else 1


if __name__ == "__main__":
    raise SystemExit(main())
