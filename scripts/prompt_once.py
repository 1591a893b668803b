# scripts/prompt_once.py
"""
Send one conversational (or goal-setting) request for a profile and print
the reply.  Agent state is a static snapshot, so this exercises templates,
roles and the chosen backend without a running game.

    python scripts/prompt_once.py profiles/andy.json "greg: hi there"
    python scripts/prompt_once.py profiles/andy.json "greg: what now?" --goal
"""
import pathlib, sys
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

import argparse, asyncio

from promptcraft.agents.profile import load_profile
from promptcraft.agents.prompter import Prompter
from promptcraft.context.provider import SnapshotAgentContext


async def _main(args) -> int:
    profile = load_profile(args.profile, args.default)
    agent = SnapshotAgentContext(
        name=profile.name,
        stats=args.stats,
        memory_text=args.memory,
    )
    prompter = Prompter(agent, profile, bots_dir=args.bots_dir)
    turns = [{"role": "user", "content": args.message}]

    if args.goal:
        goal = await prompter.prompt_goal_setting(turns)
        print(goal if goal else "(no goal)")
        return 0 if goal else 1

    print(await prompter.prompt_convo(turns))
    return 0


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    ap.add_argument("profile", help="agent profile JSON")
    ap.add_argument("message", help="user message, e.g. 'greg: hi'")
    ap.add_argument("--default", default="profiles/_default.json", help="default profile JSON")
    ap.add_argument("--stats", default="STATS\n- Health: 20 / 20", help="stats snapshot text")
    ap.add_argument("--memory", default="", help="saved memory text")
    ap.add_argument("--bots-dir", default="bots", help="where the profile copy is written")
    ap.add_argument("--goal", action="store_true", help="ask for a goal instead of a reply")
    sys.exit(asyncio.run(_main(ap.parse_args())))
