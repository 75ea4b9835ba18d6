"""
System prompts for the wizard's model fallback path.

Each step has its own prompt with the party context the model needs. Two
blocks are appended conditionally: the revision block when the user asked
for changes on a confirmation dialog, and the retry instruction when the
previous attempt came back silent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from party_wizard.domain.models import Guest, MenuPlan, PartyInfo, WizardStep

RETRY_INSTRUCTION = (
    "<retry-instruction>Your previous attempt returned no visible response. "
    "Provide a concise user-visible reply, and call tools if needed.</retry-instruction>"
)

REVISION_INSTRUCTIONS: Dict[WizardStep, Tuple[str, ...]] = {
    WizardStep.PARTY_INFO: ("Call confirmPartyInfo with the corrected information.",),
    WizardStep.GUESTS: (
        "If adding guests: call addGuest for each new guest, then call confirmGuestList.",
        "If removing guests: call removeGuest for each guest to remove, then call confirmGuestList.",
        "If just confirming: call confirmGuestList.",
    ),
    WizardStep.MENU: (
        "If adding recipes: call addExistingRecipe, generateRecipeIdea, or extractRecipeFromUrl as needed, "
        "then call confirmMenu.",
        "If removing items: call removeMenuItem, then call confirmMenu.",
        "If just confirming: call confirmMenu.",
    ),
    WizardStep.TIMELINE: (
        "If adjusting the schedule: call adjustTimeline, then call confirmTimeline.",
        "If just confirming: call confirmTimeline.",
    ),
}

LIBRARY_PREVIEW_LIMIT = 10

_OUTPUT_RULES = """<output-rules>
IMPORTANT: Always include a brief, friendly text response with every message - even when calling tools.
Never send a response that only contains tool calls without any text.
</output-rules>"""


@dataclass
class PromptContext:
    reference: datetime
    party_info: Optional[PartyInfo] = None
    guest_list: Sequence[Guest] = ()
    menu_plan: Optional[MenuPlan] = None
    user_recipes: Sequence[Mapping[str, Any]] = field(default_factory=list)


def _party_when(info: PartyInfo) -> str:
    moment = info.date_time
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{moment.strftime('%A, %B')} {moment.day} at {hour}:{moment.minute:02d} {suffix}"


def _date_resolution_block(reference: datetime) -> str:
    return f"""<date-resolution>
Current date and time: {reference.isoformat(timespec="minutes")} ({reference.strftime("%A")}).
Pass the user's date/time wording in dateTimeInput exactly as they said it (e.g. "next Saturday at 7pm").
The server resolves it against the current date. Do not convert it yourself and never invent a year.
</date-resolution>"""


def _party_info_prompt(context: PromptContext) -> str:
    existing = ""
    if context.party_info:
        info = context.party_info
        existing = (
            f'\n<current-state>\nSaved so far: "{info.name}" on {_party_when(info)}'
            f"{f' at {info.location}' if info.location else ''}\n</current-state>\n"
        )
    return f"""<task-context>
You are a friendly party planning assistant helping the user plan their party details.
Your job is to gather party information through natural conversation.
</task-context>

<tone>
Be conversational, warm, and enthusiastic. Keep responses concise but engaging.
Ask one or two things at a time to keep the flow natural.
</tone>
{existing}
<information-to-gather>
Required:
- Party name: What's the event called?
- Date and time: When is it happening?

Optional:
- Location: Where will it be held?
- Description: What's the occasion? Any special details for the invitation?
- Allow contributions: Can guests bring dishes or drinks?
</information-to-gather>

{_date_resolution_block(context.reference)}

<available-tools>
- confirmPartyInfo: Save the party details and show confirmation dialog
</available-tools>

<rules>
- Start by asking about the occasion or event name
- Be flexible with natural language dates ("next Saturday", "March 15th at 6pm")
- If the date/time is ambiguous, ask for clarification
- When you have the required info (name + date/time), call confirmPartyInfo even if optional fields are missing
</rules>

<confirmation-flow>
When you call confirmPartyInfo, the user sees a dialog with "Confirm" and "Make Changes" buttons.
If they click "Make Changes" and provide feedback, incorporate their changes and IMMEDIATELY call
confirmPartyInfo again. Do NOT ask "Is this correct now?".
</confirmation-flow>

{_OUTPUT_RULES}"""


def _guests_prompt(context: PromptContext) -> str:
    party = f'Party: "{context.party_info.name}" on {_party_when(context.party_info)}' if context.party_info else ""
    if context.guest_list:
        lines = [
            f"{i}. {g.name or 'Guest'} ({g.email or g.phone or 'no contact yet'})"
            for i, g in enumerate(context.guest_list)
        ]
        current = "Current guest list:\n" + "\n".join(lines)
    else:
        current = "No guests added yet."
    return f"""<task-context>
You are a friendly party planning assistant helping the user build their guest list.
{party}
</task-context>

<current-state>
{current}
</current-state>

<available-tools>
- addGuest: Add a guest to the list (needs at least a name, email, or phone)
- removeGuest: Remove a guest by 0-based index from the list above
- confirmGuestList: Finalize the list and proceed to menu planning
</available-tools>

<rules>
- When the user provides guest info: call addGuest, then ASK if there are more guests
- When the user wants to remove someone: call removeGuest
- ONLY call confirmGuestList when the user says they're done (e.g., "that's it", "no more", "done", "ready")
- It's okay to have an empty list - they can add guests later
</rules>

<confirmation-flow>
If the user clicks "Make Changes" after confirmGuestList, make the requested changes and
IMMEDIATELY call confirmGuestList again.
</confirmation-flow>

{_OUTPUT_RULES}"""


def _library_block(recipes: Sequence[Mapping[str, Any]]) -> str:
    if not recipes:
        return "No recipes in their library yet."
    shown = [f"- {r.get('name')} (ID: {r.get('id')})" for r in list(recipes)[:LIBRARY_PREVIEW_LIMIT]]
    block = f"Available from their library ({len(recipes)} recipes):\n" + "\n".join(shown)
    if len(recipes) > LIBRARY_PREVIEW_LIMIT:
        block += f"\n... and {len(recipes) - LIBRARY_PREVIEW_LIMIT} more"
    return block


def _menu_prompt(context: PromptContext) -> str:
    plan = context.menu_plan or MenuPlan()
    lines = [f"- [existing #{i}] {item.name}" for i, item in enumerate(plan.existing_recipes)]
    lines += [f"- [new #{i}] {recipe.name}" for i, recipe in enumerate(plan.new_recipes)]
    current = "Current menu:\n" + "\n".join(lines) if lines else "Menu is empty."
    party = f'Party: "{context.party_info.name}"' if context.party_info else ""
    guests = f"Guest count: {len(context.guest_list)}" if context.guest_list else ""
    return f"""<task-context>
You are a friendly party planning assistant helping the user plan their party menu.
{party}
{guests}
</task-context>

<current-state>
{current}
</current-state>

<user-recipes>
{_library_block(context.user_recipes)}
</user-recipes>

<available-tools>
- addExistingRecipe: Add a recipe from their library by ID
- extractRecipeFromUrl: Import a recipe from a URL the user provides
- generateRecipeIdea: Create a new recipe based on a description
- removeMenuItem: Remove something from the menu (isNewRecipe=true for [new] items)
- confirmMenu: Finalize the menu and proceed
</available-tools>

<rules>
- IMPORTANT: Only extract recipes from URLs in the user's CURRENT message, not from conversation history
- If the user says they're "about to" send something, acknowledge and WAIT
- Ask about dietary restrictions before making suggestions
- It's okay to have an empty menu - they can add recipes later
- Call confirmMenu when they're satisfied or want to skip
</rules>

<confirmation-flow>
If the user clicks "Make Changes" after confirmMenu, make the requested changes and
IMMEDIATELY call confirmMenu again.
</confirmation-flow>

{_OUTPUT_RULES}"""


def _timeline_prompt(context: PromptContext) -> str:
    party = f'Party: "{context.party_info.name}" on {_party_when(context.party_info)}' if context.party_info else ""
    items = (context.menu_plan or MenuPlan()).item_names
    current = f"Menu items: {', '.join(items)}" if items else "No menu items planned."
    return f"""<task-context>
You are a friendly party planning assistant helping create a cooking timeline.
{party}
</task-context>

<current-state>
{current}
</current-state>

<available-tools>
- generateTimeline: Create a cooking schedule based on the menu
- adjustTimeline: Modify the timeline based on user feedback
- confirmTimeline: Finalize and proceed to create the party
</available-tools>

<rules>
- Work backwards from party time
- Mark major milestones as phase starts (these trigger reminders)
- If there's no menu, suggest they go back to add dishes OR create a simple hosting timeline
</rules>

<confirmation-flow>
If the user clicks "Make Changes" after confirmTimeline, use adjustTimeline and
IMMEDIATELY call confirmTimeline again.
</confirmation-flow>

{_OUTPUT_RULES}"""


_STEP_PROMPTS = {
    WizardStep.PARTY_INFO: _party_info_prompt,
    WizardStep.GUESTS: _guests_prompt,
    WizardStep.MENU: _menu_prompt,
    WizardStep.TIMELINE: _timeline_prompt,
}


def revision_block(step: WizardStep, feedback: str, summary: str) -> str:
    lines = [
        "IMPORTANT - REVISION IN PROGRESS:",
        'The user clicked "Make Changes" on the confirmation dialog with this feedback:',
        f'"{feedback}"',
        "",
        "YOU MUST CALL TOOLS - do not just respond with text!",
        *REVISION_INSTRUCTIONS[step],
        "",
        f'Previous confirmation summary: "{summary}"',
    ]
    return "\n".join(lines)


@dataclass(frozen=True)
class Revision:
    feedback: str
    summary: str


def build_system_prompt(step: WizardStep, context: PromptContext, *, revision: Optional[Revision] = None) -> str:
    prompt = _STEP_PROMPTS[step](context)
    if revision is not None:
        prompt = f"{prompt}\n\n{revision_block(step, revision.feedback, revision.summary)}"
    return prompt


def with_retry_instruction(system_prompt: str) -> str:
    return f"{system_prompt}\n\n{RETRY_INSTRUCTION}"


__all__ = [
    "RETRY_INSTRUCTION",
    "REVISION_INSTRUCTIONS",
    "PromptContext",
    "Revision",
    "revision_block",
    "build_system_prompt",
    "with_retry_instruction",
]
