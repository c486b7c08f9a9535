"""Exam module checkbox selection on the booking page."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from exambot.constants import MODULE_CHECKBOX_MAP, Delays, Selectors, Timeouts
from exambot.repositories.account_repository import ExamModules

MSG_ALL_SELECTED = "✅ All required modules are available and selected correctly."
MSG_FULLY_BOOKED = "⚠️ Some required modules are fully booked: {modules}"
MSG_UNEXPECTED_STATE = "⚠️ Some checkboxes are not in the expected state"
MSG_ERROR = "❌ Error selecting modules: {error}"

_READ_CHECKBOXES_JS = """
(elements) => elements.map((el) => ({
    raw_id: el.id,
    checked: el.checked,
    disabled: el.disabled,
}))
"""

_DISPATCH_FORM_CHANGE_JS = """
() => {
    document.body.offsetHeight;
    const form = document.querySelector('form');
    if (form) {
        form.dispatchEvent(new Event('change', { bubbles: true }));
    }
}
"""


@dataclass
class CheckboxState:
    """State of one module checkbox as read from the page."""

    raw_id: str
    checked: bool
    disabled: bool

    @property
    def module_id(self) -> str:
        return self.raw_id.strip().lower()


@dataclass
class CheckboxAction:
    raw_id: str
    module_id: str
    should_be_checked: bool


@dataclass
class SelectionPlan:
    """Clicks needed to bring the checkboxes to the wanted state."""

    actions: List[CheckboxAction] = field(default_factory=list)
    fully_booked: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


@dataclass
class ModuleSelectionResult:
    status: bool
    message: str


def target_states(modules: ExamModules) -> Dict[str, bool]:
    """Wanted checked state per checkbox id."""
    return {
        checkbox_id: getattr(modules, module_key)
        for checkbox_id, module_key in MODULE_CHECKBOX_MAP.items()
    }


def plan_module_selection(states: List[CheckboxState], modules: ExamModules) -> SelectionPlan:
    """
    Decide which checkboxes to click.

    Unknown checkbox ids are skipped. A disabled checkbox that should be
    checked marks the module as fully booked; a disabled checkbox that is not
    needed is left alone.

    Args:
        states: Checkbox states read from the page
        modules: Modules the account wants

    Returns:
        The selection plan
    """
    targets = target_states(modules)
    plan = SelectionPlan()

    for state in states:
        module_id = state.module_id
        if module_id not in targets:
            logger.debug(f"Skipping unknown module: {module_id}")
            continue

        should_be_checked = targets[module_id]
        if state.disabled:
            if should_be_checked:
                plan.fully_booked.append(module_id)
                plan.notes.append(f"{module_id} is fully booked")
            else:
                plan.notes.append(f"{module_id} is disabled (not needed)")
            continue

        if should_be_checked != state.checked:
            plan.actions.append(CheckboxAction(state.raw_id, module_id, should_be_checked))
        else:
            plan.notes.append(
                f"{module_id} already {'selected' if should_be_checked else 'deselected'}"
            )

    return plan


def states_match(states: List[CheckboxState], modules: ExamModules) -> bool:
    """Whether every known checkbox is in its wanted state."""
    targets = target_states(modules)
    return all(
        state.checked == targets[state.module_id]
        for state in states
        if state.module_id in targets
    )


def summarize(plan: SelectionPlan, all_correct: bool) -> ModuleSelectionResult:
    if plan.fully_booked:
        return ModuleSelectionResult(
            False, MSG_FULLY_BOOKED.format(modules=", ".join(plan.fully_booked))
        )
    if not all_correct:
        return ModuleSelectionResult(False, MSG_UNEXPECTED_STATE)
    return ModuleSelectionResult(True, MSG_ALL_SELECTED)


async def read_checkbox_states(page: Page) -> List[CheckboxState]:
    raw: List[Mapping[str, Any]] = await page.eval_on_selector_all(
        Selectors.MODULE_CHECKBOX, _READ_CHECKBOXES_JS
    )
    return [
        CheckboxState(raw_id=item["raw_id"], checked=item["checked"], disabled=item["disabled"])
        for item in raw
    ]


async def _apply(page: Page, action: CheckboxAction, plan: SelectionPlan) -> None:
    selector = f'{Selectors.MODULE_CHECKBOX}[id="{action.raw_id.strip()}"]'
    try:
        await page.click(selector, delay=Delays.CHECKBOX_CLICK_MS)
        await asyncio.sleep(Delays.AFTER_CHECKBOX_CLICK)
        checked = await page.eval_on_selector(selector, "(el) => el.checked")
    except PlaywrightError as e:
        logger.warning(f"Click on {action.module_id} failed, trying its label: {e}")
        await page.evaluate(
            """(rawId) => {
                const label = document.querySelector(`label[for="${rawId}"]`);
                if (label) { label.click(); }
            }""",
            action.raw_id.strip(),
        )
        await asyncio.sleep(Delays.AFTER_CHECKBOX_CLICK)
        plan.notes.append(f"used label click for {action.module_id}")
        return

    if checked == action.should_be_checked:
        verb = "selected" if action.should_be_checked else "deselected"
        plan.notes.append(f"{verb} {action.module_id}")
    else:
        plan.notes.append(f"failed to modify {action.module_id}")


async def select_available_modules(page: Page, modules: ExamModules) -> ModuleSelectionResult:
    """
    Bring the module checkboxes on the booking page to the account's choice.

    Args:
        page: Booking page
        modules: Modules the account wants

    Returns:
        Selection status and a user-facing message
    """
    try:
        await page.wait_for_selector(Selectors.MODULE_CHECKBOX, timeout=Timeouts.CHECKBOX_WAIT)
        states = await read_checkbox_states(page)
        plan = plan_module_selection(states, modules)

        for action in plan.actions:
            await _apply(page, action, plan)

        await page.evaluate(_DISPATCH_FORM_CHANGE_JS)
        await asyncio.sleep(Delays.AFTER_FORM_EVENT)

        all_correct = states_match(await read_checkbox_states(page), modules)
    except PlaywrightError as e:
        message = MSG_ERROR.format(error=e)
        logger.error(message)
        return ModuleSelectionResult(False, message)

    result = summarize(plan, all_correct)
    logger.info(f"Module selection: {'; '.join(plan.notes) or 'no changes'} -> {result.message}")
    return result
