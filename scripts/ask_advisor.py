#!/usr/bin/env python3
"""
Ask a market advisor one question from the command line.

Usage:
    python scripts/ask_advisor.py crypto "What is the price of BTC?"
    python scripts/ask_advisor.py stock "Analyze TSLA" --trace

Requires an LLM API key (LLM_API_KEY / ANTHROPIC_API_KEY) and the market
data keys (TWELVEDATA_API_KEY, TAVILY_API_KEY) in the environment or .env.
"""

import argparse
import asyncio
import json
import sys

from advisor.agents.advisors import advise
from advisor.agents.domains import PROFILES
from advisor.config import settings
from advisor.exceptions import AdvisorError
from advisor.logging_config import setup_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Ask a market advisor a question")
    parser.add_argument("domain", choices=sorted(PROFILES), help="Advisor domain")
    parser.add_argument("question", help="The question to ask")
    parser.add_argument(
        "--trace", action="store_true",
        help="Also print the node transitions and collected data",
    )
    args = parser.parse_args()

    setup_logging(settings.log_level)

    try:
        result = asyncio.run(advise(args.domain, args.question))
    except (AdvisorError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(result.answer)
    if args.trace:
        print("\n---")
        print("Transitions:", " -> ".join(result.transitions))
        print(f"Visits: {result.visit_count}")
        print(json.dumps(result.state.data, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
