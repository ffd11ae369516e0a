"""
Slack copy for the coffee-chat bot.

Plain-text messages plus the Block Kit payload for the "did you meet?" prompt.
Action ids here must match what the interactivity webhook listens for.
"""

from typing import Any


# =============================================================================
# MESSAGES
# =============================================================================

MATCH_INTRO = "You've been matched for a coffee chat! Schedule a time to meet :)"

MEET_REMINDER_FALLBACK = "Reminder: Did you have your coffee chat this week?"
MEET_PROMPT = "Were you able to meet this week?"

RESPONSE_YES = "Awesome to hear! Hope you had fun :)"
RESPONSE_NO = "Aw, always a next time!"
RESPONSE_RECORD_FAILED = "Sorry, we couldn't record that. Please try again in a moment."


# =============================================================================
# ACTIONS
# =============================================================================

ACTION_DID_YOU_MEET_YES = "did_you_meet_yes"
ACTION_DID_YOU_MEET_NO = "did_you_meet_no"
DID_YOU_MEET_BLOCK_ID = "did_you_meet_block"


def _button(action_id: str, label: str, match_id: str) -> dict[str, Any]:
    return {
        "type": "button",
        "action_id": action_id,
        "text": {"type": "plain_text", "text": label, "emoji": True},
        "value": match_id,
    }


def build_did_you_meet_blocks(match_id: str, intro_text: str = MEET_PROMPT) -> list[dict[str, Any]]:
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": intro_text}},
        {
            "type": "actions",
            "block_id": DID_YOU_MEET_BLOCK_ID,
            "elements": [
                _button(ACTION_DID_YOU_MEET_YES, "Yes", match_id),
                _button(ACTION_DID_YOU_MEET_NO, "No", match_id),
            ],
        },
    ]


def build_summary_text(round_date: Any, counts: dict[str, int]) -> str:
    return "\n".join(
        [
            "This week's coffee chats:",
            f"_Round {round_date}_",
            "",
            f"{counts.get('met', 0)} out of {counts.get('total', 0)} met. Let's get that to 100% this week!",
        ]
    )
