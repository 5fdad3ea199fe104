"""Human-in-the-loop approval checkpoint."""

from typing import Iterable, Optional

from .errors import ApprovalUnavailableError
from .host import HostPrompt
from .logger import get_logger, truncate as log_truncate
from .models import ApprovalResult, AskResponseKind, ToolResult
from . import responses

log = get_logger("approval")


class ApprovalGate:
    """Asks the human before a side-effecting action.

    Categories listed in ``auto_approve`` skip the prompt. A denial is
    turned into exactly one tool result by ``rejection_result``; the
    caller pushes it and does nothing else for that invocation.
    """

    def __init__(self, prompt: HostPrompt, auto_approve: Optional[Iterable[str]] = None):
        self.prompt = prompt
        self.auto_approve = set(auto_approve or ())
        self.denied_count = 0

    def is_auto_approved(self, category: str) -> bool:
        return category in self.auto_approve

    async def ask(self, kind: str, payload: str, category: str = "") -> ApprovalResult:
        if category and self.is_auto_approved(category):
            log.info("auto-approved %s (%s)", kind, category)
            return ApprovalResult(approved=True)

        response = await self.prompt.ask(kind, payload, partial=False)
        if response is None:
            raise ApprovalUnavailableError(f"No answer received for '{kind}' approval")

        approved = response.response == AskResponseKind.YES
        result = ApprovalResult(
            approved=approved,
            feedback_text=response.text or None,
            feedback_images=list(response.images),
        )
        if not approved:
            self.denied_count += 1
        log.info("approval %s: kind=%s feedback=%s", "granted" if approved else "denied",
                 kind, log_truncate(result.feedback_text or "", 80))
        if result.has_feedback:
            await self.prompt.say("user_feedback", result.feedback_text or "", result.feedback_images)
        return result

    @staticmethod
    def rejection_result(result: ApprovalResult) -> ToolResult:
        """The single tool result reported for a denial."""
        if result.has_feedback:
            return responses.tool_result(
                responses.tool_denied_with_feedback(result.feedback_text),
                result.feedback_images,
            )
        return responses.tool_denied()

    @staticmethod
    def approval_feedback(result: ApprovalResult) -> Optional[str]:
        """Text to fold into the handler's result when approval came with feedback."""
        if result.approved and result.feedback_text:
            return responses.tool_approved_with_feedback(result.feedback_text)
        return None
