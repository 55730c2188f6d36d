"""
Example 01: Request / Response
==============================

Demonstrates two agents talking through one Mailroom database:
- Sending a request and answering it with reference_id
- Peeking without consuming vs. receiving
- Sharing global and project-scoped context

Run:
    uv run python examples/01_request_response.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path when running directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


async def main() -> None:
    from mailroom import GLOBAL, Mailroom, resolve_sender, scope_for

    print("=== Mailroom Request/Response Example ===\n")

    project = "acme/widgets"

    async with Mailroom.open(db_path="/tmp/mailroom_example_01.db") as mailroom:
        await mailroom.context.set(GLOBAL, "style", "terse")
        await mailroom.context.set(scope_for(project), "branch", "feature/login")

        request_id = await mailroom.queue.send(
            project, "reviewer", "builder", "Please review feature/login"
        )
        print(f"builder -> reviewer: request {request_id}")

        pending = await mailroom.queue.peek(project, "reviewer")
        print(f"reviewer has {len(pending)} pending message(s) (peek does not consume)")

        for msg in await mailroom.queue.receive(project, "reviewer"):
            branch = await mailroom.context.get(scope_for(project), "branch")
            print(f"reviewer got {msg.id} from {msg.from_agent}: {msg.content!r} [{branch}]")
            await mailroom.queue.send(
                project, msg.from_agent, "reviewer", "LGTM", reference_id=msg.id
            )

        await mailroom.queue.send(project, "builder", resolve_sender(None), "build started")

        for msg in await mailroom.queue.receive(project, "builder"):
            print(f"builder got {msg.content!r} from {msg.from_agent} (re: {msg.reference_id})")

        print(f"\nglobal keys: {await mailroom.context.list(GLOBAL)}")
        print(f"project keys: {await mailroom.context.list(scope_for(project))}")


if __name__ == "__main__":
    asyncio.run(main())
