#!/usr/bin/env python3
"""
Terminal chat with the advisor, streaming answers as they arrive.

Usage:
    python scripts/chat.py --user <user-uuid> [--conversation <uuid>] [--specialist budget_optimizer]

Ctrl+C ends the session; an answer in progress is kept as a partial turn.
"""

import argparse
import asyncio
import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from loguru import logger

from infrastructure.log import setup_logging


async def chat(user_id: str, conversation_id: str, specialist: str) -> None:
    from advisor.orchestrator import DETECT_SPECIALIST, build_advisor
    from infrastructure.observability import flush

    advisor = build_advisor()
    if conversation_id is None:
        conversation = await asyncio.to_thread(advisor.store.create_conversation, user_id, specialist)
        conversation_id = conversation.id
    logger.info(f"Conversation: {conversation_id}")
    requested = specialist if specialist else DETECT_SPECIALIST

    print("\nYuri is ready. Type 'exit' to quit.\n")
    try:
        while True:
            message = (await asyncio.to_thread(input, "you > ")).strip()
            if not message:
                continue
            if message.lower() in ("exit", "quit"):
                break

            print("yuri > ", end="", flush=True)
            async for delta in advisor.stream_response(
                user_id=user_id,
                conversation_id=conversation_id,
                message=message,
                requested_specialist=requested,
            ):
                print(delta, end="", flush=True)
            print("\n")
    finally:
        await advisor.jobs.drain(timeout=30)
        flush()


def main():
    parser = argparse.ArgumentParser(description="Chat with the skincare advisor")
    parser.add_argument("--user", required=True, help="User id (UUID)")
    parser.add_argument("--conversation", default=None, help="Existing conversation id")
    parser.add_argument("--specialist", default=None, help="Pin a specialist for this conversation")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    setup_logging(args.log_level)
    try:
        asyncio.run(chat(args.user, args.conversation, args.specialist))
    except (KeyboardInterrupt, EOFError):
        pass
    return 0


if __name__ == '__main__':
    sys.exit(main())
