from typing import List
import argparse
import aiohttp
import asyncio
import json
import logging

logger = logging.getLogger(__name__)

from social.graze.bsid.resolve.profile import DEFAULT_NAME_LOOKUP_URL, lookup_profile


async def realMain() -> None:
    parser = argparse.ArgumentParser(
        prog="resolve", description="Resolve Blockstack IDs to verified profiles"
    )
    parser.add_argument("username", nargs="+", help="The Blockstack ID(s) to resolve.")
    parser.add_argument(
        "--lookup-url",
        default=DEFAULT_NAME_LOOKUP_URL,
        help="The name lookup endpoint usernames are appended to.",
    )

    args = vars(parser.parse_args())

    usernames: List[str] = args.get("username", [])

    async with aiohttp.ClientSession() as session:
        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(lookup_profile(session, username, args.get("lookup_url")))
                for username in usernames
            ]
        for username, task in zip(usernames, tasks):
            result = task.result()
            if result.error is not None:
                logging.error(
                    "Failed resolving %s: %s (%s)",
                    username,
                    result.error.kind.value,
                    result.error.reason,
                )
                continue
            print(f"{username} {json.dumps(result.profile)}")


def main() -> None:
    asyncio.run(realMain())


if __name__ == "__main__":
    main()
