"""browser_action."""

import json

from ..errors import InvalidParameterError, MissingParameterError
from ..logger import get_logger
from ..models import BrowserActionResult, ToolName
from .. import responses
from .base import ToolHandler

log = get_logger("handlers.browser")

BROWSER_ACTIONS = ("launch", "click", "type", "scroll_down", "scroll_up", "close")


class BrowserActionHandler(ToolHandler):
    tool = ToolName.BROWSER_ACTION

    @property
    def action(self) -> str:
        return f"executing browser action '{self.params.get('action', '')}'"

    async def handle_partial(self) -> None:
        action = self.remove_closing_tag("action", self.params.get("action"))
        if action not in BROWSER_ACTIONS:
            return
        prompt = self.task.prompt
        if action == "launch":
            await prompt.ask("browser_action_launch",
                             self.remove_closing_tag("url", self.params.get("url")), partial=True)
        else:
            await prompt.say("browser_action", json.dumps({
                "action": action,
                "coordinate": self.remove_closing_tag("coordinate", self.params.get("coordinate")),
                "text": self.remove_closing_tag("text", self.params.get("text")),
            }), partial=True)

    def _validate(self) -> str:
        action = self.require("action")
        if action not in BROWSER_ACTIONS:
            raise InvalidParameterError(
                self.name, "action",
                f"Invalid browser action '{action}'. Must be one of: {', '.join(BROWSER_ACTIONS)}")
        if action == "launch" and not self.optional("url"):
            raise MissingParameterError(self.name, "url")
        if action == "click" and not self.optional("coordinate"):
            raise MissingParameterError(self.name, "coordinate")
        if action == "type" and not self.optional("text"):
            raise MissingParameterError(self.name, "text")
        return action

    async def handle_complete(self) -> None:
        action = self._validate()
        browser = self.task.services.browser
        if browser is None:
            raise RuntimeError("Browser session is not available.")

        try:
            result = await self._run(browser, action)
        except Exception:
            if browser.is_open:
                await browser.close()
            raise
        if result is None:
            return

        if action == "close":
            await self.complete_success("The browser has been closed. You may now proceed to using other tools.")
            return

        await self.task.prompt.say("browser_action_result", result.model_dump_json())
        text = (
            f"The browser action '{action}' has been executed. The console logs and screenshot have "
            f"been captured for your analysis.\n\nConsole logs:\n{result.logs or '(No new logs)'}\n\n"
            "(REMEMBER: if you need to proceed to using non-`browser_action` tools or launch a new "
            "browser, you MUST first close this browser.)"
        )
        images = [result.screenshot] if result.screenshot else None
        await self.complete_success(responses.tool_result(text, images))

    async def _run(self, browser, action: str):
        params = self.params
        if action == "launch":
            if not await self.ask_approval("browser_action_launch", params["url"]):
                return None
            await self.task.prompt.say("browser_action_result", "")
            return await browser.launch(params["url"])

        await self.task.prompt.say("browser_action", json.dumps({
            "action": action, "coordinate": params.get("coordinate"), "text": params.get("text"),
        }))
        if action == "click":
            return await browser.click(params["coordinate"])
        if action == "type":
            return await browser.type(params["text"])
        if action == "scroll_down":
            return await browser.scroll_down()
        if action == "scroll_up":
            return await browser.scroll_up()
        await browser.close()
        return BrowserActionResult()
