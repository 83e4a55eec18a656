"""
chatguard quickstart

Screens two messages before sending them to a model. The first passes
preflight and is forwarded via LiteLLM; the second is blocked by the tier 1
checks and never reaches the model.

Run:
  cd examples/quickstart
  export OPENAI_API_KEY=...        # or any provider LiteLLM supports
  python quickstart.py
"""

import asyncio
import json

from chatguard import GuardSettings, PreflightService
from chatguard.service import extract_client_info

MESSAGES = [
    "Explain how DNS resolution works, step by step.",
    "<script>alert(document.cookie)</script>",
]


async def main():
    service = PreflightService.from_settings(GuardSettings())
    # What a web framework would hand over for an incoming request
    client = extract_client_info({"X-Forwarded-For": "203.0.113.7", "User-Agent": "quickstart"})

    try:
        for text in MESSAGES:
            outcome = await service.guarded_completion(
                client.user_id,
                [
                    {"role": "system", "content": "You are a helpful networking tutor."},
                    {"role": "user", "content": text},
                ],
                model="gpt-4o-mini",
                ip=client.ip,
                user_agent=client.user_agent,
            )
            print(f"> {text}")
            if outcome.passed:
                print(outcome.response.choices[0].message.content)
            else:
                print(json.dumps(outcome.error, indent=2))
            print()
    finally:
        await service.close()


if __name__ == "__main__":
    asyncio.run(main())
