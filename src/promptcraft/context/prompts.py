# src/promptcraft/context/prompts.py

# Returned to a coding request that arrives while another is in flight.
NO_RESPONSE = "```//no response```"

# Annotation the conversation layer puts on messages relayed from other bots.
# A model that emits it is role-playing as another bot.
OTHER_BOT_MARKER = "(FROM OTHER BOT)"

GOAL_USER_TEMPLATE = """Use the below info to determine what goal to target next

$LAST_GOALS
$STATS
$INVENTORY
$CONVO"""
