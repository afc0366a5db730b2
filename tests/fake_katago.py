"""
Stand-in for `katago analysis` used by the engine tests.

Reads one JSON query per line from stdin and answers on stdout. The first
command line argument selects the behaviour:

    ok        answer every query (default)
    error     answer with an error field
    mismatch  answer with a different id
    garbage   answer with a line that is not JSON
    die       exit without answering
    hang      never answer
    warning   send a standalone warning line, then the answer

The win rate reported for a position is 0.5 minus 0.01 per move played.
"""

import json
import sys
import time


def answer(query):
    turn = query["analyzeTurns"][0]
    winrate = 0.5 - 0.01 * len(query["moves"])
    return {
        "id": query["id"],
        "turnNumber": turn,
        "isDuringSearch": False,
        "rootInfo": {"winrate": winrate, "visits": query.get("maxVisits", 1)},
        "moveInfos": [
            {"move": "D4", "winrate": winrate - 0.05, "visits": 3, "order": 1, "pv": ["D4"]},
            {"move": "Q16", "winrate": winrate, "visits": 10, "order": 0, "pv": ["Q16", "D4"]},
        ],
    }


def main():
    mode = sys.argv[1] if len(sys.argv) > 1 else "ok"
    print("KataGo stand-in ready", file=sys.stderr, flush=True)

    for line in sys.stdin:
        query = json.loads(line)
        print(f"query {query['id']}", file=sys.stderr, flush=True)

        if mode == "die":
            sys.exit(3)
        if mode == "hang":
            time.sleep(600)
            continue

        if mode == "error":
            response = {"id": query["id"], "error": "Illegal move 1: Q16"}
        elif mode == "mismatch":
            response = answer(query)
            response["id"] = "other"
        elif mode == "warning":
            warning = {"id": query["id"], "field": "extraField", "warning": "Unexpected or unused field"}
            sys.stdout.write(json.dumps(warning) + "\n")
            response = answer(query)
        else:
            response = answer(query)

        if mode == "garbage":
            sys.stdout.write("this is not json\n")
        else:
            sys.stdout.write(json.dumps(response) + "\n")
        sys.stdout.flush()


if __name__ == "__main__":
    main()
