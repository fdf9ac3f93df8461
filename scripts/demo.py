#!/usr/bin/env python3
"""
Guardrail -- End-to-End Demo Script

Walks through the decision loop: an allowed booking, an approval-required
booking with alternatives, a blocked program, overlapping windows, a
risky login, and the approval lifecycle through finalize.

Usage:
    1. uvicorn main:app --port 8000
    2. python scripts/demo.py

Requires: httpx
"""

from __future__ import annotations

import json
import os
import sys
import time
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx

BASE_URL = os.environ.get("GATEWAY_URL", "http://localhost:8000")
APPROVER_API_KEY = os.environ.get("APPROVER_API_KEY", "test-key-change-me")

# ---------------------------------------------------------------------------
# Terminal colors (ANSI)
# ---------------------------------------------------------------------------

class C:
    RESET   = "\033[0m"
    BOLD    = "\033[1m"
    DIM     = "\033[2m"
    RED     = "\033[91m"
    GREEN   = "\033[92m"
    YELLOW  = "\033[93m"
    BLUE    = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN    = "\033[96m"
    WHITE   = "\033[97m"
    BG_RED  = "\033[41m"
    BG_GREEN = "\033[42m"
    BG_YELLOW = "\033[43m"


def banner(text: str, color: str = C.CYAN):
    width = 64
    print()
    print(f"{color}{C.BOLD}{'=' * width}{C.RESET}")
    print(f"{color}{C.BOLD}  {text}{C.RESET}")
    print(f"{color}{C.BOLD}{'=' * width}{C.RESET}")
    print()


def step(n: int, text: str):
    print(f"  {C.BOLD}{C.WHITE}[Step {n}]{C.RESET} {text}")


def ok(text: str):
    print(f"  {C.GREEN}{C.BOLD}OK{C.RESET} {text}")


def fail(text: str):
    print(f"  {C.RED}{C.BOLD}FAIL{C.RESET} {text}")


def info(text: str):
    print(f"  {C.DIM}{text}{C.RESET}")


def outcome_badge(outcome: str) -> str:
    if outcome == "Allowed":
        return f"{C.BG_GREEN}{C.WHITE}{C.BOLD} ALLOWED {C.RESET}"
    elif outcome == "Blocked":
        return f"{C.BG_RED}{C.WHITE}{C.BOLD} BLOCKED {C.RESET}"
    elif outcome == "Approval required":
        return f"{C.BG_YELLOW}{C.WHITE}{C.BOLD} APPROVAL REQUIRED {C.RESET}"
    return f"{C.BOLD} {outcome} {C.RESET}"


def pp(data: dict, indent: int = 4):
    raw = json.dumps(data, indent=indent, default=str)
    for line in raw.split("\n"):
        print(f"    {C.DIM}{line}{C.RESET}")


def show_decision(r: httpx.Response):
    body = r.json()
    print()
    print(f"  {outcome_badge(body.get('outcome', '?'))}  HTTP {r.status_code}  "
          f"Program: {body.get('program_availability', '?')}")
    print()
    for reason in body.get("reasons", []):
        print(f"    {C.YELLOW}*{C.RESET} [{reason['severity']}] {reason['title']}: {reason['detail']}")
    for alt in body.get("alternatives", []):
        print(f"    {C.CYAN}->{C.RESET} {alt['title']}  {C.DIM}{alt['expected_outcome']}{C.RESET}")
    for tip in body.get("coach", []):
        print(f"    {C.MAGENTA}i{C.RESET} {tip['title']}  {C.DIM}{tip['detail']}{C.RESET}")
    return body


def pause(seconds: float = 1.0):
    time.sleep(seconds)


SLOT = {"id": "slot-10", "name": "Morning", "days": ["Wed"], "start": "10:00", "end": "11:00"}
EVENING = {"id": "slot-22", "name": "Late evening", "days": ["Wed"], "start": "22:30", "end": "23:30"}


def booking(total: int, **extra) -> dict:
    ctx = {
        "funding_method": "Program",
        "slot": SLOT,
        "available_slots": [SLOT],
        "recipient": {"id": "r-1", "name": "CleanCo", "tier": "Preferred"},
        "category": "Cleaning",
        "total": total,
        "actor_id": "user:demo",
        "context_id": f"demo-{uuid4().hex[:8]}",
    }
    ctx.update(extra)
    return ctx


# ---------------------------------------------------------------------------
# Demo steps
# ---------------------------------------------------------------------------

def main():
    banner("GUARDRAIL  --  Policy Decision Engine", C.MAGENTA)
    print(f"  {C.DIM}Gateway: {BASE_URL}{C.RESET}")
    pause(1)

    banner("1. Health Check", C.BLUE)
    step(1, "GET /health")
    try:
        r = httpx.get(f"{BASE_URL}/health", timeout=5)
        ok(f"Gateway operational  ({r.json().get('service', '?')})")
    except httpx.HTTPError as exc:
        fail(f"Gateway unreachable: {exc}")
        print(f"\n  {C.RED}Start the gateway first:{C.RESET}")
        print(f"  {C.YELLOW}  uvicorn main:app --port 8000{C.RESET}\n")
        sys.exit(1)
    pause(1)

    banner("2. ALLOWED -- Everyday Booking", C.GREEN)
    step(2, "POST /evaluate  total=50000, preferred recipient, morning slot")
    show_decision(httpx.post(f"{BASE_URL}/evaluate", json={"context": booking(50_000)}))
    pause(1.5)

    banner("3. APPROVAL REQUIRED -- Large Total After Hours", C.YELLOW)
    step(3, "POST /evaluate  total=400000, evening slot")
    info("The engine lists every reason and what would clear it...")
    show_decision(httpx.post(f"{BASE_URL}/evaluate", json={
        "context": booking(400_000, slot=EVENING, available_slots=[SLOT, EVENING]),
    }))
    pause(1.5)

    banner("4. BLOCKED -- Program Not Linked", C.RED)
    step(4, "POST /evaluate  program_status=Not linked")
    show_decision(httpx.post(f"{BASE_URL}/evaluate", json={
        "context": booking(50_000, program_status="Not linked"),
    }))
    pause(1.5)

    banner("5. WINDOWS -- Overlap Check", C.BLUE)
    step(5, "POST /windows/overlaps")
    r = httpx.post(f"{BASE_URL}/windows/overlaps", json={"windows": [
        {"id": "a", "name": "Lunch", "days": ["Mon", "Tue"], "start": "11:30", "end": "14:00"},
        {"id": "b", "name": "Canteen", "days": ["Tue"], "start": "13:00", "end": "15:00"},
    ]})
    for pair in r.json().get("conflicting_pairs", []):
        print(f"    {C.RED}x{C.RESET} {pair['description']}")
    pause(1.5)

    banner("6. RISK -- Login From a New Country", C.YELLOW)
    step(6, "POST /risk/evaluate  Kampala -> Nairobi in one hour")
    now = datetime.now(timezone.utc)
    r = httpx.post(f"{BASE_URL}/risk/evaluate", json={
        "attempt": {"actor_id": "user:demo", "device_id": "phone", "city": "Nairobi",
                    "country": "KE", "at": now.isoformat()},
        "last_success": {"actor_id": "user:demo", "device_id": "phone", "city": "Kampala",
                         "country": "UG", "at": (now - timedelta(hours=1)).isoformat()},
        "known_device_ids": ["phone"],
    })
    pp(r.json())
    pause(1.5)

    banner("7. APPROVAL -- Submit, Approve, Finalize", C.GREEN)
    step(7, "POST /approvals")
    r = httpx.post(f"{BASE_URL}/approvals", json={
        "context": booking(400_000), "reason": "Quarterly deep clean of the dorms",
    })
    submitted = r.json()
    if r.status_code != 202:
        fail(f"Submit failed: HTTP {r.status_code}")
        pp(submitted)
        return
    ok(f"Submitted {submitted['id']}  state={submitted['state']}")
    hold = submitted.get("hold") or {}
    info(f"Slot {hold.get('resource_id', '?')} held until {hold.get('held_until', '?')}")

    r = httpx.post(f"{BASE_URL}/approvals/{submitted['id']}/approve",
                   json={"note": "Within the facilities budget"},
                   headers={"Authorization": f"Bearer {APPROVER_API_KEY}"})
    if r.status_code == 200:
        ok(f"Approved by {r.json().get('decided_by', '?')}")
    else:
        fail(f"Approval failed: HTTP {r.status_code}")
        pp(r.json())

    r = httpx.post(f"{BASE_URL}/approvals/{submitted['id']}/finalize")
    body = r.json()
    print()
    print(f"    {C.BOLD}{body.get('status', '?')}{C.RESET}  HTTP {r.status_code}  "
          f"{C.DIM}{body.get('message', body.get('error', ''))}{C.RESET}")
    print()


if __name__ == "__main__":
    main()
