#!/usr/bin/env python3
"""Interactive CLI script to playtest a paired session against a running API.

Usage:
    python play.py                              # pillar "general", http://localhost:8000
    python play.py friendships                  # pair on a specific pillar
    python play.py friendships http://host:8000

Two players share the terminal (hot-seat). Each answers blind; answers are
revealed once both are in, then the stats for both players are shown.

Start the server first: uvicorn peer_connect.main:app
"""

import sys
import uuid

import requests

# --- ANSI Colors ---
DIVIDER = "\033[90m" + "─" * 50 + "\033[0m"
RESET = "\033[0m"
DIM = "\033[90m"
BOLD = "\033[1m"
YELLOW = "\033[93m"
GREEN = "\033[92m"
RED = "\033[91m"
PLAYER_COLORS = ["\033[96m", "\033[95m"]


class ApiClient:
    """Thin HTTP client that acts as one user."""

    def __init__(self, base_url: str, user_id: str):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id

    def _request(self, method: str, path: str, **kwargs) -> dict:
        resp = requests.request(
            method,
            f"{self.base_url}{path}",
            headers={"X-User-Id": self.user_id},
            timeout=10,
            **kwargs,
        )
        if resp.status_code >= 400:
            detail = resp.json().get("detail", resp.text)
            raise RuntimeError(f"{method} {path} -> {resp.status_code}: {detail}")
        return resp.json()

    def pair(self, pillar: str) -> dict:
        return self._request("POST", "/api/sessions/pair", json={"pillar": pillar})

    def view(self, session_id: str) -> dict:
        return self._request("GET", f"/api/sessions/{session_id}")

    def answer(self, session_id: str, card_index: int, option_index: int) -> dict:
        return self._request(
            "POST",
            f"/api/sessions/{session_id}/answers",
            json={"card_index": card_index, "option_index": option_index},
        )

    def stats(self) -> dict:
        return self._request("GET", "/api/stats/me")


# =============================================================
# Display helpers
# =============================================================

def label(player_no: int) -> str:
    return f"{PLAYER_COLORS[player_no]}[Player {player_no + 1}]{RESET}"


def display_card(view: dict):
    card = view["card"]
    print()
    print(DIVIDER)
    print(f"{BOLD}  Card {view['card_index'] + 1}/{view['total_cards']}{RESET}")
    print(f"  {card['question']}")
    print()
    for i, option in enumerate(card["options"]):
        print(f"  \033[97m{i + 1}\033[0m. {option}")
    print()


def ask_choice(player_no: int, option_count: int) -> int:
    """Prompt one player for an option number and return its index."""
    valid = [str(i + 1) for i in range(option_count)]
    while True:
        choice = input(f"  {label(player_no)} pick ({'/'.join(valid)}): ").strip()
        if choice in valid:
            # Scroll the pick out of sight for the other player
            print("\n" * 30)
            return int(choice) - 1
        print(f"  {RED}Invalid choice, enter {'/'.join(valid)}{RESET}")


def display_reveal(card: dict, resolved: dict):
    mine = card["options"][resolved["my_answer"]]
    theirs = card["options"][resolved["partner_answer"]]
    print(f"  {label(0)} {mine}")
    print(f"  {label(1)} {theirs}")
    if resolved["matched"]:
        print(f"  {GREEN}Same answer! Match bonus.{RESET}")
    else:
        print(f"  {DIM}Different answers - ask each other why.{RESET}")


def display_stats(player_no: int, stats: dict):
    print(
        f"  {label(player_no)} streak {YELLOW}{stats['current_streak']}{RESET}"
        f" (best {stats['longest_streak']})"
        f"  sessions {stats['total_sessions']}"
        f"  points {YELLOW}{stats['total_points']}{RESET}"
    )


# =============================================================
# Main
# =============================================================

def play_session(pillar: str, base_url: str):
    players = [ApiClient(base_url, f"player-{uuid.uuid4().hex[:8]}") for _ in range(2)]

    first = players[0].pair(pillar)
    second = players[1].pair(pillar)
    if first["session_id"] != second["session_id"] or second["status"] != "active":
        print(f"{RED}Players were not paired together (is someone else waiting on '{pillar}'?){RESET}")
        return
    session_id = second["session_id"]

    print()
    print(f"{BOLD}" + "=" * 50 + f"{RESET}")
    print(f"{BOLD}  Peer-Connect: {pillar}{RESET}")
    print(f"  {DIM}session {session_id}{RESET}")
    print(f"{BOLD}" + "=" * 50 + f"{RESET}")

    view = players[0].view(session_id)
    while view["status"] == "active":
        card = view["card"]
        card_index = view["card_index"]
        display_card(view)

        for player_no, player in enumerate(players):
            option = ask_choice(player_no, len(card["options"]))
            player.answer(session_id, card_index, option)

        view = players[0].view(session_id)
        resolved = next(r for r in view["resolved_cards"] if r["card_index"] == card_index)
        display_card({**view, "card": card, "card_index": card_index})
        display_reveal(card, resolved)

    print()
    print(DIVIDER)
    print(f"\n{BOLD}  ── Session {view['status']} ──{RESET}\n")
    for player_no, player in enumerate(players):
        display_stats(player_no, player.stats())
    print()


def main():
    pillar = sys.argv[1] if len(sys.argv) > 1 else "general"
    base_url = sys.argv[2] if len(sys.argv) > 2 else "http://localhost:8000"
    play_session(pillar, base_url)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print(f"\n\n{DIM}Session left.{RESET}")
    except (requests.exceptions.RequestException, RuntimeError) as e:
        print(f"{RED}{e}{RESET}")
